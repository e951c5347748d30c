"""
Cache-Related Exceptions

Exceptions raised by the cache tiers and the value codec.
"""

from tiercache.core.exceptions.base import TierCacheError


class CacheError(TierCacheError):
    """Base exception for cache-related errors."""
    pass


class CacheConnectionError(CacheError):
    """
    Raised when unable to connect to the shared cache (Redis).

    Common causes:
    - Redis server is down
    - Network connectivity issues
    - Incorrect host/port configuration
    - Authentication failure
    """
    pass


class CacheKeyError(CacheError):
    """Raised when a Redis command for a key fails."""
    pass


class CacheSerializationError(CacheError):
    """
    Raised when a value cannot be encoded to, or decoded from, its cached form.

    On decode this means the stored payload does not fit the requested type,
    which is a caller programming error rather than a transient fault.
    """
    pass


class CacheTimeoutError(CacheError):
    """Raised when a lookup or computation exceeds the caller's timeout."""
    pass
