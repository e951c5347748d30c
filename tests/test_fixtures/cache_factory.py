"""
Cache Test Factory

Sample types, producers and tier-2 store doubles for cache tests.
"""

import asyncio
from typing import Any
from unittest.mock import AsyncMock

from pydantic import BaseModel

from tiercache.core.exceptions import CacheConnectionError, CacheKeyError


class User(BaseModel):
    id: int
    name: str


class CountingProducer:
    """
    Producer that records how often it ran.

    ``result`` is returned as-is, so tests can hand back any shape
    (value, tuple, None, exception instance).
    """

    def __init__(self, result: Any = None, delay: float = 0.0):
        self.result = result
        self.delay = delay
        self.calls: list[tuple[Any, ...]] = []

    async def __call__(self, user_id: int):
        self.calls.append((user_id,))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result

    @property
    def call_count(self) -> int:
        return len(self.calls)


class CacheTestFactory:
    """Factory for creating cache test objects."""

    @staticmethod
    def redis_client_with_data(initial_data: dict[str, str] | None = None) -> AsyncMock:
        """Create a tier-2 client mock backed by a dict."""
        client = AsyncMock()
        client.connect = AsyncMock()
        client.disconnect = AsyncMock()
        client.data = dict(initial_data or {})

        async def mock_get(key):
            return client.data.get(key)

        async def mock_set(key, value, ttl=None):
            client.data[key] = value
            return True

        async def mock_delete(*keys):
            return sum(1 for key in keys if client.data.pop(key, None) is not None)

        client.get = AsyncMock(side_effect=mock_get)
        client.set = AsyncMock(side_effect=mock_set)
        client.delete = AsyncMock(side_effect=mock_delete)
        client.health_check = AsyncMock(return_value={"status": "healthy"})

        return client

    @staticmethod
    def failing_redis_client(error: Exception | None = None) -> AsyncMock:
        """Create a tier-2 client that connects but fails every command."""
        if error is None:
            error = CacheKeyError("Redis GET failed: connection reset")

        client = AsyncMock()
        client.connect = AsyncMock()
        client.disconnect = AsyncMock()
        client.get = AsyncMock(side_effect=error)
        client.set = AsyncMock(side_effect=error)
        client.delete = AsyncMock(side_effect=error)
        client.flush_all = AsyncMock(side_effect=error)
        client.flush_db = AsyncMock(side_effect=error)
        client.health_check = AsyncMock(return_value={"status": "unhealthy", "error": str(error)})

        return client

    @staticmethod
    def unreachable_redis_client() -> AsyncMock:
        """Create a tier-2 client whose connect() always fails."""
        client = AsyncMock()
        client.connect = AsyncMock(side_effect=CacheConnectionError("Failed to connect to Redis"))
        client.disconnect = AsyncMock()
        return client
