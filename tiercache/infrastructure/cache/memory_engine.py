"""
In-process cache engine (tier-1 backend).

A ``cachetools.TTLCache`` holds the entries; it owns capacity, LRU eviction
and expiry. On top of it the engine adds:

- ``get_or_fetch``: per-key coalesced read-through, so concurrent misses on
  one key run the fetch once and all receive its result;
- early refresh (optional): an entry read after its refresh deadline is still
  served, and a single background fetch replaces it before it expires.

Values are opaque to the engine. The orchestrator stores pre-serialized
strings (or ``None`` for "fetch found nothing").
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from cachetools import TTLCache

from tiercache.core.config.constants import Stage
from tiercache.core.logging.logger import get_logger, log_stage
from tiercache.infrastructure.cache.single_flight import SingleFlight

logger = get_logger(__name__)

_MISSING = object()


@dataclass
class _Entry:
    value: Any
    refresh_at: float | None


class MemoryEngine:
    """
    TTL + LRU in-memory store with coalesced read-through.

    Args:
        max_size: Maximum number of entries
        ttl: Entry time-to-live in seconds
        min_refresh_delay: Earliest early refresh after a write (None disables)
        max_refresh_delay: Latest early refresh after a write
        refresh_retry_delay: Delay before retrying a failed refresh
        timer: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        max_size: int,
        ttl: float,
        min_refresh_delay: float | None = None,
        max_refresh_delay: float | None = None,
        refresh_retry_delay: float = 1.0,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._store: TTLCache = TTLCache(maxsize=max_size, ttl=ttl, timer=timer)
        self._timer = timer
        self._min_refresh = min_refresh_delay
        self._max_refresh = max_refresh_delay if max_refresh_delay is not None else min_refresh_delay
        self._refresh_retry_delay = refresh_retry_delay
        self._flights = SingleFlight("l1")
        self._refresh_tasks: set[asyncio.Task] = set()
        # key -> token of the fetch allowed to store its result
        self._pending: dict[str, object] = {}

    @property
    def early_refresh(self) -> bool:
        return self._min_refresh is not None

    @property
    def size(self) -> int:
        self._store.expire()
        return len(self._store)

    @property
    def max_size(self) -> int:
        return int(self._store.maxsize)

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """
        Return the cached value for ``key``, or run ``fetch`` and cache its result.

        Concurrent misses on the same key share one ``fetch`` call. If
        ``fetch`` raises, nothing is stored and every waiter gets the error.
        """
        entry = self._store.get(key, _MISSING)
        if entry is not _MISSING:
            self._maybe_refresh(key, entry, fetch)
            return entry.value

        return await self._flights.do(key, self._fetcher(key, fetch))

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._store.get(key, _MISSING)
        if entry is _MISSING:
            return default
        return entry.value

    def set(self, key: str, value: Any) -> None:
        self._invalidate(key)
        self._store_entry(key, value)

    def delete(self, key: str) -> bool:
        """
        Remove ``key``. A fetch already running for it will not store its result.
        """
        self._invalidate(key)
        return self._store.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        for key in list(self._pending):
            self._invalidate(key)
        self._store.clear()

    def keys(self) -> list[str]:
        """Live keys, oldest write first."""
        self._store.expire()
        return list(self._store.keys())

    async def close(self) -> None:
        """Cancel in-flight fetches and pending background refreshes."""
        await self._flights.cancel_all()
        for task in list(self._refresh_tasks):
            task.cancel()
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)
        self._refresh_tasks.clear()

    # -------------------------------------------------------------------------
    # Fetch bookkeeping
    # -------------------------------------------------------------------------

    def _fetcher(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[Any]]:
        # Claimed before the flight task starts; a delete in between still wins
        token = None if self._flights.in_flight(key) else self._claim(key)

        async def fetch_and_store():
            try:
                value = await fetch()
            except BaseException:
                self._release(key, token)
                raise
            if self._release(key, token):
                self._store_entry(key, value)
            return value

        return fetch_and_store

    def _claim(self, key: str) -> object:
        token = object()
        self._pending[key] = token
        return token

    def _release(self, key: str, token: object) -> bool:
        """True if no delete or set superseded this fetch."""
        if token is not None and self._pending.get(key) is token:
            del self._pending[key]
            return True
        return False

    def _invalidate(self, key: str) -> None:
        self._pending.pop(key, None)
        self._flights.forget(key)

    def _store_entry(self, key: str, value: Any) -> None:
        self._store[key] = _Entry(value, self._next_refresh())

    # -------------------------------------------------------------------------
    # Early refresh
    # -------------------------------------------------------------------------

    def _next_refresh(self) -> float | None:
        if not self.early_refresh:
            return None
        return self._timer() + random.uniform(self._min_refresh, self._max_refresh)

    def _maybe_refresh(self, key: str, entry: _Entry, fetch: Callable[[], Awaitable[Any]]) -> None:
        if entry.refresh_at is None or self._timer() < entry.refresh_at:
            return
        if self._flights.in_flight(key):
            return

        # Push the deadline so reads during the refresh do not reschedule it
        entry.refresh_at = self._timer() + self._refresh_retry_delay
        token = self._claim(key)

        async def refresh():
            try:
                value = await fetch()
            except Exception as e:
                self._release(key, token)
                log_stage(
                    logger, Stage.L1_LOOKUP, "Background refresh failed",
                    level="warning", cache_key=key, error=str(e),
                )
                return entry.value
            if self._release(key, token):
                self._store_entry(key, value)
            return value

        task = asyncio.create_task(self._flights.do(key, refresh))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)
