"""
Exception Module

Structured exception hierarchy for tiercache.

Module Structure:
-----------------
- **base.py**: TierCacheError base class
- **cache.py**: Cache tier and codec exceptions
- **loader.py**: Producer validation/invocation exceptions

Usage:
------
```python
from tiercache.core.exceptions import CacheSerializationError, ProducerSignatureError
```
"""

from tiercache.core.exceptions.base import TierCacheError
from tiercache.core.exceptions.cache import (
    CacheConnectionError,
    CacheError,
    CacheKeyError,
    CacheSerializationError,
    CacheTimeoutError,
)
from tiercache.core.exceptions.loader import LoaderError, ProducerSignatureError

__all__ = [
    # Base
    "TierCacheError",
    # Cache
    "CacheError",
    "CacheConnectionError",
    "CacheKeyError",
    "CacheSerializationError",
    "CacheTimeoutError",
    # Loader
    "LoaderError",
    "ProducerSignatureError",
]
