"""
Cache Module

Two-tier caching (L1 in-process + L2 Redis) with read-through lookups and
write-through producer results.
"""

from .cache_manager import (
    CacheManager,
    CacheObserver,
    close_cache,
    get_cache_manager,
    init_cache,
)
from .codec import ValueCodec
from .loader import ProducerCall, ProducerInvoker
from .memory_engine import MemoryEngine
from .redis_client import RedisClient, close_redis, get_redis_client, init_redis
from .single_flight import SingleFlight
from .storage import L1Storage, L2Storage

__all__ = [
    "CacheManager",
    "CacheObserver",
    "get_cache_manager",
    "init_cache",
    "close_cache",
    "ValueCodec",
    "ProducerCall",
    "ProducerInvoker",
    "MemoryEngine",
    "RedisClient",
    "get_redis_client",
    "init_redis",
    "close_redis",
    "SingleFlight",
    "L1Storage",
    "L2Storage",
]
