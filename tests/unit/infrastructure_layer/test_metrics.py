"""
Unit Tests for Monitoring Infrastructure

Tests Prometheus metrics collection for the cache tiers.
"""

import pytest
from prometheus_client import REGISTRY

from tiercache.infrastructure.monitoring.metrics_collector import MetricsCollector, get_metrics_collector


def sample(name: str, labels: dict | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


@pytest.mark.unit
class TestMetricsCollector:
    """Test suite for MetricsCollector."""

    @pytest.fixture
    def metrics_collector(self):
        """Create MetricsCollector for testing."""
        return MetricsCollector()

    def test_cache_hits_by_tier(self, metrics_collector):
        """Test hits are counted per tier."""
        before_l1 = sample("tiercache_cache_hits_total", {"tier": "l1"})
        before_l2 = sample("tiercache_cache_hits_total", {"tier": "l2"})

        metrics_collector.record_cache_hit("l1")
        metrics_collector.record_cache_hit("l1")
        metrics_collector.record_cache_hit("l2")

        assert sample("tiercache_cache_hits_total", {"tier": "l1"}) == before_l1 + 2
        assert sample("tiercache_cache_hits_total", {"tier": "l2"}) == before_l2 + 1

    def test_misses_and_l2_calls(self, metrics_collector):
        before_misses = sample("tiercache_cache_misses_total")
        before_calls = sample("tiercache_l2_calls_total")

        metrics_collector.record_cache_miss()
        metrics_collector.record_l2_call()

        assert sample("tiercache_cache_misses_total") == before_misses + 1
        assert sample("tiercache_l2_calls_total") == before_calls + 1

    def test_producer_calls_by_outcome(self, metrics_collector):
        before = sample("tiercache_producer_calls_total", {"outcome": "empty"})

        metrics_collector.record_producer_call("empty")

        assert sample("tiercache_producer_calls_total", {"outcome": "empty"}) == before + 1

    def test_l2_available_gauge(self, metrics_collector):
        """Test availability gauge flips between 1 and 0."""
        metrics_collector.set_l2_available(True)
        assert sample("tiercache_l2_available") == 1

        metrics_collector.set_l2_available(False)
        assert sample("tiercache_l2_available") == 0

    def test_operation_duration_histogram(self, metrics_collector):
        labels = {"operation": "resolve"}
        before_count = sample("tiercache_operation_duration_seconds_count", labels)

        metrics_collector.record_operation_duration("resolve", 0.002)

        assert sample("tiercache_operation_duration_seconds_count", labels) == before_count + 1

    def test_errors_with_multiple_labels(self, metrics_collector):
        labels = {"error_type": "CacheKeyError", "stage": "2.2"}
        before = sample("tiercache_errors_total", labels)

        metrics_collector.record_error("CacheKeyError", "2.2")

        assert sample("tiercache_errors_total", labels) == before + 1

    def test_prometheus_export(self, metrics_collector):
        """Test text exposition contains cache metrics."""
        metrics_collector.record_cache_hit("l1")

        output = metrics_collector.get_prometheus_metrics()

        assert b"tiercache_cache_hits_total" in output
        assert b"tiercache_app_info" in output
        assert metrics_collector.get_content_type().startswith("text/plain")

    def test_singleton(self):
        assert get_metrics_collector() is get_metrics_collector()
