"""
Configuration Module

- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Stage identifiers, tier labels and cache markers

Usage:
------
```python
from tiercache.core.config import get_settings

settings = get_settings()
ttl = settings.cache.CACHE_TTL
redis_host = settings.redis.REDIS_HOST
```
"""

from tiercache.core.config.constants import NEGATIVE_ENTRY, CacheTier, ProducerOutcome, Stage
from tiercache.core.config.settings import Settings, get_settings, reload_settings

__all__ = [
    "CacheTier",
    "NEGATIVE_ENTRY",
    "ProducerOutcome",
    "Settings",
    "Stage",
    "get_settings",
    "reload_settings",
]
