"""
Core Interfaces Module

- **cache.py**: SharedStore and InProcessEngine protocols, InMemoryStore

Usage:
------
```python
from tiercache.core.interfaces import SharedStore

def build(store: SharedStore): ...
```
"""

from tiercache.core.interfaces.cache import InMemoryStore, InProcessEngine, SharedStore

__all__ = [
    "InMemoryStore",
    "InProcessEngine",
    "SharedStore",
]
