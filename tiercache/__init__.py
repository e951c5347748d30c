"""
tiercache

Two-tier (in-process + Redis) read-through/write-through cache.

Usage:
------
```python
from tiercache import init_cache

cache = await init_cache()
user = await cache.fetch_or_compute("user:42", User, load_user, 42)
```
"""

from tiercache.core.config.constants import NEGATIVE_ENTRY
from tiercache.infrastructure.cache import (
    CacheManager,
    close_cache,
    get_cache_manager,
    init_cache,
)

__version__ = "1.0.0"

__all__ = [
    "CacheManager",
    "NEGATIVE_ENTRY",
    "close_cache",
    "get_cache_manager",
    "init_cache",
]
