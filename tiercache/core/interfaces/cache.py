"""
Cache Backend Protocols

Structural interfaces for the two collaborators the orchestrator consumes:
the shared (tier-2) store client and the in-process (tier-1) engine.

Architectural Decision: Protocol-based abstraction
- Redis, or an in-memory stand-in, can back tier-2
- Facilitates testing with fake implementations
- Runtime checking with @runtime_checkable
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class SharedStore(Protocol):
    """
    Interface of a tier-2 store client.

    Implementations:
    - RedisClient: Production Redis-backed store
    - InMemoryStore: Development/testing stand-in
    """

    async def connect(self) -> None:
        """
        Establish connection and verify it with a ping.

        Raises:
            CacheConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close the connection."""
        ...

    async def ping(self) -> bool:
        """Return True when the store answers."""
        ...

    async def get(self, key: str) -> str | None:
        """
        Get value by key.

        Returns:
            Value, or None if the key does not exist

        Raises:
            CacheKeyError: If the command fails
        """
        ...

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set value with optional TTL in seconds."""
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        ...

    async def flush_all(self) -> None:
        """Remove every key from every database."""
        ...

    async def flush_db(self) -> None:
        """Remove every key from the selected database."""
        ...

    async def health_check(self) -> dict[str, Any]:
        """Return health status and metrics."""
        ...


@runtime_checkable
class InProcessEngine(Protocol):
    """
    Interface of a tier-1 engine storing pre-serialized payloads.

    ``get_or_fetch`` must coalesce concurrent misses for the same key into a
    single ``fetch`` invocation.
    """

    async def get_or_fetch(
        self, key: str, fetch: Callable[[], Awaitable[str | None]]
    ) -> str | None:
        ...

    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str | None) -> None:
        ...

    def delete(self, key: str) -> bool:
        ...

    def clear(self) -> None:
        ...

    def keys(self) -> list[str]:
        ...

    @property
    def size(self) -> int:
        ...

    @property
    def max_size(self) -> int:
        ...


class InMemoryStore:
    """
    In-memory SharedStore for tests and local development.

    TTLs are recorded but not enforced. Not shared across processes.
    Set ``available=False`` to make connect() fail the way an unreachable
    Redis would.
    """

    def __init__(self, available: bool = True):
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.available = available
        self._connected = False

    async def connect(self) -> None:
        """Simulate connection."""
        if not self.available:
            from tiercache.core.exceptions import CacheConnectionError

            raise CacheConnectionError("In-memory store unavailable")
        self._connected = True

    async def disconnect(self) -> None:
        """Simulate disconnection."""
        self._connected = False

    async def ping(self) -> bool:
        return self._connected and self.available

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        self.data[key] = value
        if ttl:
            self.ttls[key] = ttl
        else:
            self.ttls.pop(key, None)
        return True

    async def delete(self, *keys: str) -> int:
        count = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                count += 1
            self.ttls.pop(key, None)
        return count

    async def flush_all(self) -> None:
        self.data.clear()
        self.ttls.clear()

    async def flush_db(self) -> None:
        self.data.clear()
        self.ttls.clear()

    async def health_check(self) -> dict[str, Any]:
        return {
            "status": "healthy" if self._connected else "unhealthy",
            "connected": self._connected,
            "keys_count": len(self.data),
        }
