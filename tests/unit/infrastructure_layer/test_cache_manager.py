"""
Unit Tests for CacheManager

Tests the read-through lookup across both tiers, producer invocation on full
misses, write-through, negative caching, coalescing and degraded operation.
"""

import asyncio
import time

import pytest

from tests.test_fixtures.cache_factory import CacheTestFactory, CountingProducer, User
from tiercache.core.config.constants import NEGATIVE_ENTRY
from tiercache.core.config.settings import Settings
from tiercache.core.exceptions import CacheSerializationError, CacheTimeoutError, ProducerSignatureError
from tiercache.infrastructure.cache import cache_manager as cache_module
from tiercache.infrastructure.cache.cache_manager import CacheManager, close_cache, get_cache_manager, init_cache

ADA_JSON = '{"id":42,"name":"Ada"}'


@pytest.mark.unit
class TestResolve:
    """Read-through lookups."""

    async def test_l2_hit_fills_l1(self, cache_manager, in_memory_store):
        """A value only in L2 is returned and copied into L1."""
        in_memory_store.data["user:42"] = ADA_JSON

        result = await cache_manager.resolve("user:42", User)

        assert result == User(id=42, name="Ada")
        assert await cache_manager._l1.get("user:42") == ADA_JSON

    async def test_l1_hit_skips_l2(self, cache_manager, in_memory_store):
        """Once L1 holds the key, L2 is not consulted again."""
        in_memory_store.data["user:42"] = ADA_JSON

        await cache_manager.resolve("user:42", User)
        await cache_manager.resolve("user:42", User)

        stats = cache_manager.stats()
        assert stats["l2_calls"] == 1
        assert stats["l2_hits"] == 1
        assert stats["l1_hits"] == 1

    async def test_absent_everywhere_returns_none(self, cache_manager):
        """A key in neither tier resolves to None without error."""
        assert await cache_manager.resolve("user:404", User) is None
        assert await cache_manager._l1.get("user:404") is None
        assert cache_manager.stats()["misses"] == 1

    async def test_miss_does_not_leave_l1_entry(self, cache_manager):
        """A full miss removes the placeholder L1 entry."""
        await cache_manager.resolve("user:404", User)

        assert "user:404" not in cache_manager._l1.get_keys()

    async def test_consecutive_resolves_are_equal(self, cache_manager, in_memory_store):
        """Resolving an unchanged key twice gives equal values."""
        in_memory_store.data["user:42"] = ADA_JSON

        first = await cache_manager.resolve("user:42", User)
        second = await cache_manager.resolve("user:42", User)

        assert first == second

    async def test_l2_payload_is_reserialized(self, cache_manager, in_memory_store):
        """L1 stores the canonical encoding, not the raw L2 text."""
        in_memory_store.data["user:42"] = '{ "name": "Ada", "id": 42 }'

        await cache_manager.resolve("user:42", User)

        assert await cache_manager._l1.get("user:42") == ADA_JSON

    async def test_undecodable_payload_raises(self, cache_manager, in_memory_store):
        """A stored payload that does not fit the model is a caller error."""
        in_memory_store.data["user:42"] = '{"id": "not-a-number"}'

        with pytest.raises(CacheSerializationError):
            await cache_manager.resolve("user:42", User)

        assert await cache_manager._l1.get("user:42") is None

    async def test_empty_string_is_a_value(self, cache_manager, in_memory_store):
        """An encoded empty string is present, not absent."""
        in_memory_store.data["greeting"] = '""'

        assert await cache_manager.resolve("greeting", str) == ""

    async def test_concurrent_resolves_share_one_l2_lookup(self, cache_manager, in_memory_store):
        """Concurrent misses on one key issue a single L2 lookup."""
        in_memory_store.data["user:42"] = ADA_JSON

        results = await asyncio.gather(*(cache_manager.resolve("user:42", User) for _ in range(10)))

        assert all(r == User(id=42, name="Ada") for r in results)
        assert cache_manager.stats()["l2_calls"] == 1

    async def test_l2_call_mirrored_to_metrics(self, cache_manager, mock_metrics):
        """Each L2 lookup increments the Prometheus counter."""
        await cache_manager.resolve("user:404", User)

        mock_metrics.record_l2_call.assert_called_once()
        mock_metrics.record_cache_miss.assert_called_once()

    async def test_timeout_raises_cache_timeout_error(self, test_settings, mock_metrics):
        """A lookup slower than the timeout raises CacheTimeoutError."""
        store = CacheTestFactory.redis_client_with_data({"user:42": ADA_JSON})

        async def slow_get(key):
            await asyncio.sleep(1.0)
            return ADA_JSON

        store.get.side_effect = slow_get
        manager = CacheManager(settings=test_settings, redis_client=store, metrics=mock_metrics)
        await manager.initialize()
        try:
            with pytest.raises(CacheTimeoutError) as exc_info:
                await manager.resolve("user:42", User, timeout=0.05)
            assert exc_info.value.key == "user:42"
        finally:
            await manager.shutdown()


@pytest.mark.unit
class TestFetchOrCompute:
    """Producer invocation and write-through."""

    async def test_computes_once_and_writes_both_tiers(self, cache_manager, in_memory_store, ada):
        """A (value, None) producer is called once; its value lands in both tiers."""
        producer = CountingProducer(result=(ada, None))

        first = await cache_manager.fetch_or_compute("user:42", User, producer, 42)
        second = await cache_manager.fetch_or_compute("user:42", User, producer, 42)

        assert first == second == ada
        assert producer.call_count == 1
        assert in_memory_store.data["user:42"] == ADA_JSON
        assert in_memory_store.ttls["user:42"] == 60
        assert await cache_manager._l1.get("user:42") == ADA_JSON

    async def test_plain_return_value(self, cache_manager, ada):
        """A producer returning just the value is a one-value result."""
        producer = CountingProducer(result=ada)

        assert await cache_manager.fetch_or_compute("user:42", User, producer, 42) == ada

    async def test_sync_producer(self, cache_manager, ada):
        """Plain functions work as producers."""

        def load_user(user_id: int) -> User:
            return User(id=user_id, name="Ada")

        assert await cache_manager.fetch_or_compute("user:42", User, load_user, 42) == ada

    async def test_l2_hit_skips_producer(self, cache_manager, in_memory_store):
        """A value in L2 is returned without calling the producer."""
        in_memory_store.data["user:42"] = ADA_JSON
        producer = CountingProducer(result=None)

        result = await cache_manager.fetch_or_compute("user:42", User, producer, 42)

        assert result == User(id=42, name="Ada")
        assert producer.call_count == 0

    async def test_argument_type_mismatch(self, cache_manager, in_memory_store):
        """Arguments that do not fit the signature raise before any call or write."""

        def load_user(user_id: int) -> tuple[User, Exception | None]:
            raise AssertionError("must not be called")

        with pytest.raises(ProducerSignatureError) as exc_info:
            await cache_manager.fetch_or_compute("user:42", User, load_user, "42")

        assert "argument 0 expected type int, got str" in str(exc_info.value)
        assert in_memory_store.data == {}
        assert cache_manager._l1.get_size() == 0

    async def test_arity_mismatch(self, cache_manager):
        """Too many arguments raise ProducerSignatureError."""
        producer = CountingProducer(result=None)

        with pytest.raises(ProducerSignatureError, match="expected 1 arguments, got 2"):
            await cache_manager.fetch_or_compute("user:42", User, producer, 42, 43)

        assert producer.call_count == 0

    async def test_returned_error_is_raised(self, cache_manager, in_memory_store, ada):
        """A (value, error) result raises the error and writes nothing."""
        producer = CountingProducer(result=(ada, RuntimeError("db down")))

        with pytest.raises(RuntimeError, match="db down"):
            await cache_manager.fetch_or_compute("user:42", User, producer, 42)

        assert in_memory_store.data == {}
        assert await cache_manager._l1.get("user:42") is None

    async def test_raised_error_propagates_and_is_not_cached(self, cache_manager, in_memory_store):
        """An exception raised by the producer reaches the caller; the next call retries."""
        calls = 0

        async def load_user(user_id: int):
            nonlocal calls
            calls += 1
            raise ConnectionError("db unreachable")

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await cache_manager.fetch_or_compute("user:42", User, load_user, 42)

        assert calls == 2
        assert in_memory_store.data == {}
        assert cache_manager.stats()["producer_outcomes"]["error"] == 2

    async def test_single_returned_exception_is_raised(self, cache_manager):
        """An exception instance returned alone is raised."""
        producer = CountingProducer(result=ValueError("bad id"))

        with pytest.raises(ValueError, match="bad id"):
            await cache_manager.fetch_or_compute("user:42", User, producer, 42)

    async def test_non_exception_error_slot(self, cache_manager, ada):
        """A second return value that is neither None nor an exception is rejected."""
        producer = CountingProducer(result=(ada, "oops"))

        with pytest.raises(ProducerSignatureError):
            await cache_manager.fetch_or_compute("user:42", User, producer, 42)

    async def test_wrong_return_type(self, cache_manager, in_memory_store):
        """A value of the wrong type raises ProducerSignatureError."""
        producer = CountingProducer(result="not a user")

        with pytest.raises(ProducerSignatureError, match="expected return type User"):
            await cache_manager.fetch_or_compute("user:42", User, producer, 42)

        assert in_memory_store.data == {}

    async def test_unsupported_arity_writes_nothing(self, cache_manager, in_memory_store):
        """Three or more return values yield None and nothing is cached."""
        producer = CountingProducer(result=(1, 2, 3))

        assert await cache_manager.fetch_or_compute("count", int, producer, 42) is None
        assert await cache_manager.fetch_or_compute("count", int, producer, 42) is None

        assert producer.call_count == 2
        assert in_memory_store.data == {}

    async def test_tuple_model_is_single_value(self, cache_manager, in_memory_store):
        """When the model is a tuple type, a tuple result is the value itself."""

        def bounds(user_id: int) -> tuple[int, int]:
            return (0, user_id)

        result = await cache_manager.fetch_or_compute("bounds", tuple[int, int], bounds, 10)

        assert result == (0, 10)
        assert in_memory_store.data["bounds"] == "[0,10]"

    async def test_concurrent_misses_share_one_producer_call(self, cache_manager, ada):
        """Concurrent full misses for a key invoke the producer once."""
        producer = CountingProducer(result=(ada, None), delay=0.05)

        results = await asyncio.gather(
            *(cache_manager.fetch_or_compute("user:42", User, producer, 42) for _ in range(10))
        )

        assert producer.call_count == 1
        assert all(r == ada for r in results)
        assert cache_manager.stats()["l2_calls"] == 1

    async def test_timeout_does_not_cancel_shared_producer(self, cache_manager, ada):
        """A caller that times out stops waiting; the producer still fills the cache."""
        producer = CountingProducer(result=ada, delay=0.1)

        with pytest.raises(CacheTimeoutError):
            await cache_manager.fetch_or_compute("user:42", User, producer, 42, timeout=0.02)

        await asyncio.sleep(0.2)

        assert await cache_manager.resolve("user:42", User) == ada
        assert producer.call_count == 1

    async def test_producer_timeout_error_is_not_rewrapped(self, cache_manager):
        """A TimeoutError raised by the producer itself propagates unchanged."""

        async def load_user(user_id: int):
            raise TimeoutError("upstream timed out")

        with pytest.raises(TimeoutError, match="upstream timed out") as exc_info:
            await cache_manager.fetch_or_compute("user:42", User, load_user, 42, timeout=5)

        assert not isinstance(exc_info.value, CacheTimeoutError)

    async def test_timeout_bounds_blocking_producer(self, cache_manager):
        """A slow sync producer does not hold the caller past its timeout."""

        def load_user(user_id: int) -> User:
            time.sleep(0.5)
            return User(id=user_id, name="Ada")

        start = time.perf_counter()
        with pytest.raises(CacheTimeoutError):
            await cache_manager.fetch_or_compute("user:42", User, load_user, 42, timeout=0.05)

        assert time.perf_counter() - start < 0.4

    async def test_sync_producer_does_not_block_other_keys(self, cache_manager, in_memory_store, ada):
        """Lookups for other keys proceed while a sync producer runs."""
        in_memory_store.data["user:7"] = ADA_JSON

        def load_user(user_id: int) -> User:
            time.sleep(0.2)
            return User(id=user_id, name="Ada")

        slow = asyncio.create_task(cache_manager.fetch_or_compute("user:42", User, load_user, 42))
        await asyncio.sleep(0.01)

        start = time.perf_counter()
        assert await cache_manager.resolve("user:7", User) == ada
        assert time.perf_counter() - start < 0.1

        assert await slow == ada


@pytest.mark.unit
class TestNegativeCaching:
    """Zero-value producer results."""

    @pytest.mark.parametrize("empty", [None, (), (None, None)])
    async def test_empty_result_is_cached(self, cache_manager, in_memory_store, empty):
        """No-value results are cached as negative entries and not recomputed."""
        producer = CountingProducer(result=empty)

        assert await cache_manager.fetch_or_compute("user:7", User, producer, 7) is None
        assert await cache_manager.fetch_or_compute("user:7", User, producer, 7) is None

        assert producer.call_count == 1
        assert in_memory_store.data["user:7"] == NEGATIVE_ENTRY
        assert await cache_manager._l1.get("user:7") == NEGATIVE_ENTRY

    async def test_resolve_sees_negative_entry_as_absent(self, cache_manager):
        """resolve returns None for a negative entry."""
        await cache_manager.fetch_or_compute("user:7", User, CountingProducer(result=None), 7)

        assert await cache_manager.resolve("user:7", User) is None
        assert cache_manager.stats()["negative_hits"] == 1

    async def test_negative_entry_from_l2(self, cache_manager, in_memory_store):
        """A negative entry written by another process suppresses the producer."""
        in_memory_store.data["user:7"] = NEGATIVE_ENTRY
        producer = CountingProducer(result=User(id=7, name="Grace"))

        assert await cache_manager.fetch_or_compute("user:7", User, producer, 7) is None
        assert producer.call_count == 0

    async def test_delete_lifts_negative_entry(self, cache_manager):
        """After delete the producer runs again."""
        producer = CountingProducer(result=None)
        await cache_manager.fetch_or_compute("user:7", User, producer, 7)

        await cache_manager.delete("user:7")
        producer.result = User(id=7, name="Grace")

        assert await cache_manager.fetch_or_compute("user:7", User, producer, 7) == User(id=7, name="Grace")
        assert producer.call_count == 2


@pytest.mark.unit
class TestDegradedL2:
    """Operation while Redis is unreachable."""

    async def test_resolve_returns_none(self, degraded_cache_manager):
        """With L2 down, a lookup is a plain miss."""
        assert await degraded_cache_manager.resolve("user:42", User) is None

    async def test_fetch_writes_l1_only(self, degraded_cache_manager, unavailable_store, ada):
        """With L2 down, computed values are cached in L1 only."""
        producer = CountingProducer(result=(ada, None))

        result = await degraded_cache_manager.fetch_or_compute("user:42", User, producer, 42)

        assert result == ada
        assert await degraded_cache_manager._l1.get("user:42") == ADA_JSON
        assert unavailable_store.data == {}

        assert await degraded_cache_manager.fetch_or_compute("user:42", User, producer, 42) == ada
        assert producer.call_count == 1

    async def test_health_is_degraded(self, degraded_cache_manager):
        """Health check reports the degraded tier."""
        health = await degraded_cache_manager.health_check()

        assert health["status"] == "degraded"
        assert health["l2"]["available"] is False

    async def test_runtime_failure_is_absorbed(self, test_settings, mock_metrics, ada):
        """Redis failing mid-flight does not surface to the caller."""
        store = CacheTestFactory.failing_redis_client()
        manager = CacheManager(settings=test_settings, redis_client=store, metrics=mock_metrics)
        await manager.initialize()
        try:
            assert await manager.resolve("user:42", User) is None
            producer = CountingProducer(result=ada)
            assert await manager.fetch_or_compute("user:42", User, producer, 42) == ada
            mock_metrics.record_error.assert_called()
        finally:
            await manager.shutdown()


@pytest.mark.unit
class TestCacheOperations:
    """Direct set/delete/flush and monitoring."""

    async def test_set_writes_to_both_tiers(self, cache_manager, in_memory_store, ada):
        """set encodes once and writes L2 then L1."""
        await cache_manager.set("user:42", ada)

        assert in_memory_store.data["user:42"] == ADA_JSON
        assert await cache_manager._l1.get("user:42") == ADA_JSON
        assert await cache_manager.resolve("user:42", User) == ada

    async def test_delete_removes_from_both_tiers(self, cache_manager, in_memory_store, ada):
        """delete invalidates both tiers."""
        await cache_manager.set("user:42", ada)

        await cache_manager.delete("user:42")

        assert "user:42" not in in_memory_store.data
        assert await cache_manager._l1.get("user:42") is None

    async def test_delete_during_lookup_is_not_undone(self, test_settings, mock_metrics):
        """A lookup still in flight when the key is deleted does not refill L1."""
        store = CacheTestFactory.redis_client_with_data({"user:42": ADA_JSON})

        async def slow_get(key):
            value = store.data.get(key)
            await asyncio.sleep(0.1)
            return value

        store.get.side_effect = slow_get
        manager = CacheManager(settings=test_settings, redis_client=store, metrics=mock_metrics)
        await manager.initialize()
        try:
            pending = asyncio.create_task(manager.resolve("user:42", User))
            await asyncio.sleep(0.02)

            await manager.delete("user:42")
            await pending

            assert await manager._l1.get("user:42") is None
            assert await manager.resolve("user:42", User) is None
        finally:
            await manager.shutdown()

    async def test_flush_l2(self, cache_manager, in_memory_store):
        """flush_l2 empties the shared tier."""
        in_memory_store.data.update({"a": "1", "b": "2"})

        await cache_manager.flush_l2()

        assert in_memory_store.data == {}

    async def test_stats_shape(self, cache_manager):
        """stats exposes counters, sizes and flags."""
        stats = cache_manager.stats()

        for field in ("l1_hits", "l2_hits", "misses", "l2_calls", "producer_calls", "l1_size", "l1_max_size"):
            assert field in stats
        assert stats["l1_max_size"] == 100
        assert stats["l2_available"] is True
        assert stats["caching_enabled"] is True

    async def test_health_check_returns_status(self, cache_manager):
        """Health check is healthy when both tiers are."""
        health = await cache_manager.health_check()

        assert health["status"] == "healthy"
        assert health["l1"]["max_size"] == 100
        assert health["l2"]["status"] == "healthy"


@pytest.mark.unit
class TestCachingDisabled:
    """CACHE_ENABLED=False."""

    @pytest.fixture
    async def disabled_manager(self, in_memory_store, mock_metrics):
        settings = Settings(_env_file=None, CACHE_ENABLED=False)
        manager = CacheManager(settings=settings, redis_client=in_memory_store, metrics=mock_metrics)
        await manager.initialize()
        yield manager
        await manager.shutdown()

    async def test_resolve_returns_none(self, disabled_manager, in_memory_store):
        """Lookups always miss."""
        in_memory_store.data["user:42"] = ADA_JSON

        assert await disabled_manager.resolve("user:42", User) is None

    async def test_producer_runs_every_time(self, disabled_manager, in_memory_store, ada):
        """Every fetch calls the producer and nothing is stored."""
        producer = CountingProducer(result=(ada, None))

        assert await disabled_manager.fetch_or_compute("user:42", User, producer, 42) == ada
        assert await disabled_manager.fetch_or_compute("user:42", User, producer, 42) == ada

        assert producer.call_count == 2
        assert in_memory_store.data == {}


@pytest.mark.unit
class TestGlobalManager:
    """Module-level singleton helpers."""

    async def test_init_and_close(self, test_settings, in_memory_store, mock_metrics, monkeypatch):
        manager = CacheManager(settings=test_settings, redis_client=in_memory_store, metrics=mock_metrics)
        monkeypatch.setattr(cache_module, "_cache_manager", manager)

        assert await init_cache() is manager
        assert get_cache_manager() is manager
        assert manager.stats()["l2_available"] is True

        await close_cache()

        assert cache_module._cache_manager is None
