"""
Cache Tier Adapters

Architecture:
    L1Storage (in-process tier)
        └── MemoryEngine (TTL + LRU, coalesced read-through)
    L2Storage (shared tier)
        └── RedisClient (or any SharedStore)

Both adapters move pre-serialized strings only; typing is the orchestrator's
concern. Absence is always ``None``.

L2Storage never lets an unreachable Redis reach the caller: it degrades to
"always miss / writes are no-ops" and a single supervised background task
restores it.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, wait_exponential_jitter

from tiercache.core.config.constants import Stage
from tiercache.core.exceptions import CacheConnectionError, CacheError
from tiercache.core.interfaces.cache import InProcessEngine, SharedStore
from tiercache.core.logging.logger import get_logger, log_stage
from tiercache.infrastructure.monitoring.metrics_collector import MetricsCollector, get_metrics_collector

logger = get_logger(__name__)


# =============================================================================
# TIER 1: IN-PROCESS STORAGE
# =============================================================================


class L1Storage:
    """
    In-process cache storage.

    STAGE-2.1: L1 in-memory cache

    Per-process, not shared across workers. Eviction and expiry are the
    engine's job; this adapter only exposes the operations the orchestrator
    consumes.
    """

    def __init__(self, engine: InProcessEngine):
        self._engine = engine

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[str | None]]) -> str | None:
        """
        Return the cached payload for ``key`` or populate it with ``fetch``.

        Concurrent callers for one key share a single ``fetch`` invocation.
        """
        return await self._engine.get_or_fetch(key, fetch)

    async def get(self, key: str) -> str | None:
        return self._engine.get(key)

    async def set(self, key: str, value: str) -> None:
        self._engine.set(key, value)

    async def delete(self, key: str) -> bool:
        """Returns True if the key was present."""
        return self._engine.delete(key)

    async def clear(self) -> None:
        self._engine.clear()

    async def close(self) -> None:
        close = getattr(self._engine, "close", None)
        if close is not None:
            await close()

    def get_size(self) -> int:
        """Get current number of items in cache."""
        return self._engine.size

    def get_max_size(self) -> int:
        """Get maximum capacity."""
        return self._engine.max_size

    def get_keys(self) -> list[str]:
        """Live keys, oldest write first."""
        return self._engine.keys()


# =============================================================================
# TIER 2: SHARED STORAGE
# =============================================================================


class L2Storage:
    """
    Redis distributed cache storage with graceful degradation.

    STAGE-2.2: L2 Redis cache

    States:
    - available: commands go to Redis
    - degraded: get() returns None, writes are skipped, one reconnect task
      retries with exponential backoff until Redis answers again

    A command failing at runtime moves the adapter to degraded.
    """

    def __init__(
        self,
        redis_client: SharedStore,
        reconnect_initial_delay: float = 0.5,
        reconnect_max_delay: float = 30.0,
        metrics: MetricsCollector | None = None,
    ):
        self._redis = redis_client
        self._reconnect_initial_delay = reconnect_initial_delay
        self._reconnect_max_delay = reconnect_max_delay
        self._metrics = metrics or get_metrics_collector()
        self._available = False
        self._closed = False
        self._reconnect_task: asyncio.Task | None = None

    @property
    def available(self) -> bool:
        return self._available

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def connect(self) -> bool:
        """
        Probe Redis and enter the available or degraded state.

        STAGE-2.0.1: Initialize L2 (Redis) connection

        Returns:
            True if Redis answered
        """
        self._closed = False
        try:
            await self._redis.connect()
        except CacheConnectionError as e:
            self._degrade(e, "connect")
            return False

        self._set_available(True)
        return True

    async def get(self, key: str) -> str | None:
        """
        Get value from Redis.

        Returns:
            Cached value, or None if not found or Redis is unavailable
        """
        if not self._available:
            return None
        try:
            return await self._redis.get(key)
        except CacheError as e:
            self._degrade(e, "get", key)
            return None

    async def set(self, key: str, value: str, ttl: int | None = None) -> None:
        """Set value in Redis with TTL (no-op while degraded)."""
        if not self._available:
            return
        try:
            await self._redis.set(key, value, ttl=ttl)
        except CacheError as e:
            self._degrade(e, "set", key)

    async def delete(self, key: str) -> None:
        if not self._available:
            return
        try:
            await self._redis.delete(key)
        except CacheError as e:
            self._degrade(e, "delete", key)

    async def flush_all(self) -> None:
        """Remove every key in every Redis database."""
        if not self._available:
            return
        try:
            await self._redis.flush_all()
        except CacheError as e:
            self._degrade(e, "flush_all")

    async def flush_current(self) -> None:
        """Remove every key in the selected Redis database."""
        if not self._available:
            return
        try:
            await self._redis.flush_db()
        except CacheError as e:
            self._degrade(e, "flush_current")

    async def health_check(self) -> dict[str, Any]:
        """
        Check Redis health.

        Returns:
            Dict with health status and connection info
        """
        if not self._available:
            return {"status": "degraded", "available": False, "reconnecting": self.reconnecting}
        health = await self._redis.health_check()
        return {**health, "available": True}

    async def close(self) -> None:
        """Stop reconnecting and disconnect."""
        self._closed = True
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._set_available(False)
        await self._redis.disconnect()

    # -------------------------------------------------------------------------
    # Degradation and reconnect
    # -------------------------------------------------------------------------

    def _set_available(self, available: bool) -> None:
        self._available = available
        self._metrics.set_l2_available(available)

    def _degrade(self, error: Exception, operation: str, key: str | None = None) -> None:
        was_available = self._available
        self._set_available(False)
        self._metrics.record_error(type(error).__name__, Stage.L2_LOOKUP.value)
        if was_available or operation == "connect":
            log_stage(
                logger, Stage.L2_LOOKUP, "L2 cache unavailable, serving from L1 only",
                level="warning", operation=operation, cache_key=key, error=str(error),
            )
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closed or self.reconnecting:
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        """
        Retry connect() until it succeeds or the adapter is closed.

        STAGE-REDIS.RECONNECT: Supervised reconnect
        """
        std_logger = logging.getLogger(__name__)  # Tenacity needs std lib logger

        async for attempt in AsyncRetrying(
            wait=wait_exponential_jitter(
                initial=self._reconnect_initial_delay,
                max=self._reconnect_max_delay,
                jitter=self._reconnect_initial_delay,
            ),
            retry=retry_if_exception_type(CacheConnectionError),
            before_sleep=before_sleep_log(std_logger, logging.WARNING),
        ):
            with attempt:
                await self._redis.connect()

        self._set_available(True)
        log_stage(logger, Stage.RECONNECT, "L2 cache reconnected")
