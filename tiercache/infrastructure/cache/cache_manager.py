#!/usr/bin/env python3
"""
Two-Tier Cache Manager

Architecture:
    CacheManager (Public API)
        ├── L1Storage (in-process engine, coalesced read-through)
        ├── L2Storage (Redis, degrades instead of failing)
        ├── ValueCodec (typed value <-> JSON string)
        ├── ProducerInvoker (validates and calls producers on full misses)
        └── CacheObserver (counters, metrics & logging)

Read path (resolve):
    L1 hit -> value
    L1 miss -> one coalesced L2 lookup per key -> L1 filled -> value
    L2 miss -> None (L1 entry dropped)

Compute path (fetch_or_compute):
    resolve miss -> producer (coalesced per key) -> write L2 then L1 -> value
    producer reports "no value" -> negative entry written to both tiers
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Literal, TypeVar

from tiercache.core.config.constants import LOG_KEY_MAX_LENGTH, NEGATIVE_ENTRY, CacheTier, ProducerOutcome, Stage
from tiercache.core.config.settings import Settings, get_settings
from tiercache.core.exceptions import CacheTimeoutError
from tiercache.core.interfaces.cache import InProcessEngine, SharedStore
from tiercache.core.logging.logger import get_logger, log_stage
from tiercache.infrastructure.cache.codec import ValueCodec
from tiercache.infrastructure.cache.loader import ProducerCall, ProducerInvoker
from tiercache.infrastructure.cache.memory_engine import MemoryEngine
from tiercache.infrastructure.cache.redis_client import get_redis_client
from tiercache.infrastructure.cache.single_flight import SingleFlight
from tiercache.infrastructure.cache.storage import L1Storage, L2Storage
from tiercache.infrastructure.monitoring.metrics_collector import MetricsCollector, get_metrics_collector

logger = get_logger(__name__)

T = TypeVar("T")


# =============================================================================
# OBSERVABILITY
# Tracks counters, logs operations, feeds Prometheus
# =============================================================================


class CacheObserver:
    """
    Tracks cache performance counters and logs operations.

    Logging Strategy:
    - L1 hit: STAGE-2.1
    - L2 lookup / hit / miss: STAGE-2.2
    - Write-through: STAGE-2.3
    - Invalidation: STAGE-2.4
    - Producer call: STAGE-2.5

    Counters are per process and only ever increase.
    """

    def __init__(self, metrics: MetricsCollector | None = None, logger_instance=None):
        self._metrics = metrics or get_metrics_collector()
        self._logger = logger_instance or logger

        self._hits_l1 = 0
        self._hits_l2 = 0
        self._negative_hits = 0
        self._misses = 0
        self._l2_calls = 0
        self._producer_calls = 0
        self._producer_outcomes: dict[str, int] = {outcome.value: 0 for outcome in ProducerOutcome}

    @staticmethod
    def _short(key: str) -> str:
        return key[:LOG_KEY_MAX_LENGTH]

    @property
    def l2_calls(self) -> int:
        return self._l2_calls

    @property
    def producer_calls(self) -> int:
        return self._producer_calls

    def record_l1_hit(self, key: str) -> None:
        self._hits_l1 += 1
        self._metrics.record_cache_hit(CacheTier.L1.value)
        log_stage(self._logger, Stage.L1_LOOKUP, "L1 cache hit", cache_key=self._short(key))

    def record_l2_call(self, key: str) -> None:
        self._l2_calls += 1
        self._metrics.record_l2_call()
        log_stage(self._logger, Stage.L2_LOOKUP, "L1 miss, checking L2", level="debug", cache_key=self._short(key))

    def record_l2_hit(self, key: str) -> None:
        self._hits_l2 += 1
        self._metrics.record_cache_hit(CacheTier.L2.value)
        log_stage(self._logger, Stage.L2_LOOKUP, "L2 cache hit", cache_key=self._short(key))

    def record_negative_hit(self, key: str) -> None:
        self._negative_hits += 1
        log_stage(self._logger, Stage.L1_LOOKUP, "Negative cache hit", cache_key=self._short(key))

    def record_miss(self, key: str) -> None:
        self._misses += 1
        self._metrics.record_cache_miss()
        log_stage(self._logger, Stage.L2_LOOKUP, "Cache miss", cache_key=self._short(key))

    def record_producer(self, key: str, producer: str, outcome: ProducerOutcome, duration: float) -> None:
        self._producer_calls += 1
        self._producer_outcomes[outcome.value] += 1
        self._metrics.record_producer_call(outcome.value)
        log_stage(
            self._logger, Stage.PRODUCER, "Producer called",
            level="warning" if outcome is ProducerOutcome.ERROR else "info",
            cache_key=self._short(key), producer=producer, outcome=outcome.value,
            duration_ms=round(duration * 1000, 2),
        )

    def record_write(self, key: str, negative: bool) -> None:
        log_stage(
            self._logger, Stage.WRITE_THROUGH, "Cache set",
            cache_key=self._short(key), negative=negative,
        )

    def record_delete(self, key: str) -> None:
        log_stage(self._logger, Stage.INVALIDATION, "Cache invalidated", cache_key=self._short(key))

    def get_stats(self) -> dict[str, Any]:
        """
        Get cache performance statistics.

        Returns:
            Dict with hit counters, call counters and hit rates
        """
        hits = self._hits_l1 + self._hits_l2 + self._negative_hits
        total = hits + self._misses

        return {
            "l1_hits": self._hits_l1,
            "l2_hits": self._hits_l2,
            "negative_hits": self._negative_hits,
            "misses": self._misses,
            "total_requests": total,
            "hit_rate": round(hits / total, 3) if total > 0 else 0.0,
            "l1_hit_rate": round(self._hits_l1 / total, 3) if total > 0 else 0.0,
            "l2_calls": self._l2_calls,
            "producer_calls": self._producer_calls,
            "producer_outcomes": dict(self._producer_outcomes),
        }


# =============================================================================
# PUBLIC API
# =============================================================================


class CacheManager:
    """
    Two-tier read-through/write-through cache.

    Usage:
        cache = CacheManager()
        await cache.initialize()

        # Read through both tiers
        user = await cache.resolve("user:42", User)

        # Read through, computing and caching on a full miss
        user = await cache.fetch_or_compute("user:42", User, load_user, 42)

        stats = cache.stats()
        await cache.shutdown()

    Collaborators may be injected (tests, custom backends); by default they
    come from settings and the global Redis client.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        redis_client: SharedStore | None = None,
        engine: InProcessEngine | None = None,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize cache manager.

        STAGE-2.0: Cache manager initialization
        """
        self._settings = settings or get_settings()
        cache_cfg = self._settings.cache
        redis_cfg = self._settings.redis
        metrics = metrics or get_metrics_collector()

        if engine is None:
            refresh = cache_cfg.CACHE_EARLY_REFRESH_ENABLED
            engine = MemoryEngine(
                max_size=cache_cfg.CACHE_L1_MAX_SIZE,
                ttl=cache_cfg.CACHE_TTL,
                min_refresh_delay=cache_cfg.CACHE_MIN_REFRESH_DELAY if refresh else None,
                max_refresh_delay=cache_cfg.CACHE_MAX_REFRESH_DELAY if refresh else None,
                refresh_retry_delay=cache_cfg.CACHE_REFRESH_RETRY_DELAY,
            )

        self._l1 = L1Storage(engine)
        self._l2 = L2Storage(
            redis_client or get_redis_client(),
            reconnect_initial_delay=redis_cfg.REDIS_RECONNECT_INITIAL_DELAY,
            reconnect_max_delay=redis_cfg.REDIS_RECONNECT_MAX_DELAY,
            metrics=metrics,
        )
        self._codec = ValueCodec()
        self._loader = ProducerInvoker()
        self._producers = SingleFlight("producer")
        self._observer = CacheObserver(metrics=metrics)
        self._metrics = metrics

        self._enabled = cache_cfg.CACHE_ENABLED
        self._l2_ttl = cache_cfg.l2_ttl
        self._initialized = False

        logger.info(
            "Cache manager initialized",
            stage=Stage.INITIALIZATION.value,
            l1_max_size=cache_cfg.CACHE_L1_MAX_SIZE,
            ttl=cache_cfg.CACHE_TTL,
            l2_ttl=self._l2_ttl,
            caching_enabled=self._enabled,
        )

    async def initialize(self) -> None:
        """
        Connect L2. An unreachable Redis leaves the cache running on L1 only.

        STAGE-2.0.1: Initialize L2 (Redis) connection
        """
        if self._initialized:
            return

        connected = await self._l2.connect()
        self._initialized = True

        logger.info("Cache manager ready", stage="2.0.1", l2_available=connected)

    async def shutdown(self) -> None:
        """
        Cancel in-flight producer calls, clear L1 and close L2.

        STAGE-2.0.2: Cleanup cache connections
        """
        await self._producers.cancel_all()
        await self._l1.close()
        await self._l1.clear()
        await self._l2.close()
        self._initialized = False

        logger.info("Cache manager shutdown", stage="2.0.2")

    # -------------------------------------------------------------------------
    # Core Cache Operations
    # -------------------------------------------------------------------------

    async def resolve(self, key: str, model: type[T] | Any, *, timeout: float | None = None) -> T | None:
        """
        Look up ``key`` in L1, then L2.

        STAGE-2.1: L1 lookup
        STAGE-2.2: L2 lookup (if L1 miss)

        Args:
            key: Cache key
            model: Type to decode the cached value into
            timeout: Optional bound on the whole lookup, in seconds

        Returns:
            The cached value, or None on a miss or a negative entry

        Raises:
            CacheSerializationError: If the cached payload does not fit ``model``
            CacheTimeoutError: If ``timeout`` expires
        """
        if not self._enabled:
            return None
        return await self._bounded("resolve", key, timeout, self._resolve(key, model))

    async def fetch_or_compute(
        self,
        key: str,
        model: type[T] | Any,
        producer: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
    ) -> T | None:
        """
        Look up ``key``; on a full miss call ``producer(*args)`` and cache the result.

        STAGE-2.5: Producer call

        Concurrent full misses for the same key share one producer call.
        A producer reporting no value (None, ``()`` or ``(None, None)``) is
        cached as a negative entry, so it is not called again until that
        entry expires or is deleted.

        Args:
            key: Cache key
            model: Type of the value (used to check the result and to decode)
            producer: Sync or async callable computing the value
            *args: Positional arguments for ``producer``
            timeout: Optional bound on the whole operation, in seconds

        Returns:
            The cached or computed value, or None if there is none

        Raises:
            ProducerSignatureError: If ``args`` do not fit the producer's
                signature, or its result has the wrong shape or type
            CacheSerializationError: If the value cannot be encoded or decoded
            CacheTimeoutError: If ``timeout`` expires
            Exception: Whatever the producer raised or returned as its error
        """
        return await self._bounded(
            "fetch_or_compute", key, timeout, self._fetch_or_compute(key, model, producer, args)
        )

    async def set(self, key: str, value: Any, model: Any = None) -> None:
        """
        Write ``value`` to both tiers.

        STAGE-2.3: Cache population
        """
        if not self._enabled:
            return
        await self._write(key, self._codec.encode(value, model, key))

    async def delete(self, key: str) -> None:
        """
        Delete value from both cache tiers.

        STAGE-2.4: Cache invalidation
        """
        await self._l1.delete(key)
        await self._l2.delete(key)
        self._observer.record_delete(key)

    async def flush_l2(self, scope: Literal["current", "all"] = "current") -> None:
        """
        Empty the shared tier: the selected Redis database, or all of them.

        L1 caches in this and other processes keep their entries until they
        expire.
        """
        if scope == "all":
            await self._l2.flush_all()
        else:
            await self._l2.flush_current()
        log_stage(logger, Stage.INVALIDATION, "L2 cache flushed", scope=scope)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _bounded(self, operation: str, key: str, timeout: float | None, coro) -> Any:
        start = time.perf_counter()
        try:
            if timeout is None:
                return await coro
            try:
                async with asyncio.timeout(timeout) as scope:
                    return await coro
            except TimeoutError as e:
                if not scope.expired():
                    raise
                raise CacheTimeoutError(
                    f"{operation} did not complete within {timeout}s",
                    key=key,
                    details={"operation": operation, "timeout": timeout},
                ) from e
        finally:
            self._metrics.record_operation_duration(operation, time.perf_counter() - start)

    async def _lookup(self, key: str, model: Any) -> str | None:
        """Raw payload for ``key`` from L1 or L2: None, NEGATIVE_ENTRY or JSON."""
        fetched = False

        async def from_l2() -> str | None:
            nonlocal fetched
            fetched = True
            self._observer.record_l2_call(key)
            payload = await self._l2.get(key)
            if payload is None or payload == NEGATIVE_ENTRY:
                return payload
            # Re-serialize so L1 only ever holds payloads that decode as ``model``
            return self._codec.encode(self._codec.decode(payload, model, key), model, key)

        payload = await self._l1.get_or_fetch(key, from_l2)

        if payload is None:
            # Drop the empty entry unless a concurrent write already replaced it
            if await self._l1.get(key) is None:
                await self._l1.delete(key)
            self._observer.record_miss(key)
            return None

        if payload == NEGATIVE_ENTRY:
            self._observer.record_negative_hit(key)
        elif fetched:
            self._observer.record_l2_hit(key)
        else:
            self._observer.record_l1_hit(key)
        return payload

    def _decode(self, payload: str | None, model: Any, key: str) -> Any:
        if payload is None or payload == NEGATIVE_ENTRY:
            return None
        return self._codec.decode(payload, model, key)

    async def _resolve(self, key: str, model: Any) -> Any:
        return self._decode(await self._lookup(key, model), model, key)

    async def _fetch_or_compute(
        self, key: str, model: Any, producer: Callable[..., Any], args: tuple[Any, ...]
    ) -> Any:
        if not self._enabled:
            call = self._loader.prepare(producer, args)
            _, value = await self._call_producer(key, call, model)
            return value

        payload = await self._lookup(key, model)
        if payload is not None:
            return self._decode(payload, model, key)

        call = self._loader.prepare(producer, args)
        payload = await self._producers.do(key, lambda: self._compute(key, model, call))
        return self._decode(payload, model, key)

    async def _compute(self, key: str, model: Any, call: ProducerCall) -> str | None:
        # A previous flight may have filled L1 after this caller's lookup
        cached = await self._l1.get(key)
        if cached is not None:
            return cached

        outcome, value = await self._call_producer(key, call, model)
        if outcome is ProducerOutcome.VALUE:
            payload = self._codec.encode(value, model, key)
        elif outcome is ProducerOutcome.EMPTY:
            payload = NEGATIVE_ENTRY
        else:
            return None

        await self._write(key, payload)
        return payload

    async def _call_producer(self, key: str, call: ProducerCall, model: Any) -> tuple[ProducerOutcome, Any]:
        start = time.perf_counter()
        try:
            outcome, value = await self._loader.invoke(call, model)
        except Exception:
            self._observer.record_producer(key, call.name, ProducerOutcome.ERROR, time.perf_counter() - start)
            raise
        self._observer.record_producer(key, call.name, outcome, time.perf_counter() - start)
        return outcome, value

    async def _write(self, key: str, payload: str) -> None:
        await self._l2.set(key, payload, ttl=self._l2_ttl)
        await self._l1.set(key, payload)
        self._observer.record_write(key, negative=payload == NEGATIVE_ENTRY)

    # -------------------------------------------------------------------------
    # Monitoring
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """
        Get cache performance statistics.

        Returns:
            Dict with hit rates, call counters, sizes and capacity utilization
        """
        observer_stats = self._observer.get_stats()
        l1_size = self._l1.get_size()
        l1_max = self._l1.get_max_size()

        return {
            **observer_stats,
            "l1_size": l1_size,
            "l1_max_size": l1_max,
            "l1_capacity_utilization": round(l1_size / l1_max * 100, 2),
            "l2_available": self._l2.available,
            "producers_in_flight": len(self._producers),
            "caching_enabled": self._enabled,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def health_check(self) -> dict[str, Any]:
        """
        Perform health check on cache system.

        Returns:
            Dict with health status for both tiers
        """
        health = {
            "status": "healthy",
            "caching_enabled": self._enabled,
            "l1": {
                "status": "healthy",
                "size": self._l1.get_size(),
                "max_size": self._l1.get_max_size(),
            },
            "l2": None,
        }

        if not self._initialized:
            health["status"] = "degraded"
            health["l2"] = {"status": "not_connected"}
            return health

        l2_health = await self._l2.health_check()
        health["l2"] = l2_health
        if l2_health.get("status") != "healthy":
            health["status"] = "degraded"

        return health


# =============================================================================
# GLOBAL INSTANCE (SINGLETON PATTERN)
# =============================================================================

_cache_manager: CacheManager | None = None


def get_cache_manager() -> CacheManager:
    """
    Get the global cache manager instance (singleton).

    Returns:
        CacheManager: Global cache manager instance
    """
    global _cache_manager

    if _cache_manager is None:
        _cache_manager = CacheManager()

    return _cache_manager


async def init_cache() -> CacheManager:
    """
    Initialize and connect the global cache manager.

    Returns:
        CacheManager: Initialized cache manager
    """
    manager = get_cache_manager()
    await manager.initialize()
    return manager


async def close_cache() -> None:
    """Shutdown the global cache manager."""
    global _cache_manager

    if _cache_manager:
        await _cache_manager.shutdown()
        _cache_manager = None
