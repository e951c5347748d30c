#!/usr/bin/env python3
"""
Metrics Collector with Prometheus Integration

Prometheus-compatible metrics for the two-tier cache:
- Hits by tier and full misses
- Tier-2 lookups and producer invocations by outcome
- Tier-2 availability
- Operation latency histograms
- Errors by type and stage

Architectural Decision: prometheus-client for industry-standard metrics
- Compatible with Grafana dashboards
- Histogram buckets for latency percentiles
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from tiercache.core.config.settings import get_settings
from tiercache.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Metric Definitions
# ============================================================================

CACHE_HITS = Counter(
    'tiercache_cache_hits_total',
    'Total cache hits',
    ['tier']  # l1 or l2
)

CACHE_MISSES = Counter(
    'tiercache_cache_misses_total',
    'Total lookups that missed both tiers'
)

L2_CALLS = Counter(
    'tiercache_l2_calls_total',
    'Total tier-2 lookups issued on tier-1 misses'
)

PRODUCER_CALLS = Counter(
    'tiercache_producer_calls_total',
    'Total producer invocations',
    ['outcome']  # value, empty, error, unsupported
)

L2_AVAILABLE = Gauge(
    'tiercache_l2_available',
    'Whether the shared tier is reachable (1) or degraded (0)'
)

OPERATION_DURATION = Histogram(
    'tiercache_operation_duration_seconds',
    'Cache operation duration in seconds',
    ['operation'],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)

ERRORS = Counter(
    'tiercache_errors_total',
    'Total errors by type',
    ['error_type', 'stage']
)

APP_INFO = Info(
    'tiercache_app',
    'Application information'
)


class MetricsCollector:
    """
    Centralized metrics collector.

    STAGE-M: Metrics collection

    Usage:
        metrics = get_metrics_collector()
        metrics.record_cache_hit("l1")
        output = metrics.get_prometheus_metrics()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.settings = get_settings()

        APP_INFO.info({
            'version': self.settings.app.APP_VERSION,
            'environment': self.settings.app.ENVIRONMENT,
            'app_name': self.settings.app.APP_NAME
        })

        logger.debug("Metrics collector initialized", stage="M.0")

    # =========================================================================
    # Cache Metrics
    # =========================================================================

    def record_cache_hit(self, tier: str) -> None:
        """Record cache hit."""
        CACHE_HITS.labels(tier=tier).inc()

    def record_cache_miss(self) -> None:
        """Record a miss on both tiers."""
        CACHE_MISSES.inc()

    def record_l2_call(self) -> None:
        """Record a tier-2 lookup."""
        L2_CALLS.inc()

    def record_producer_call(self, outcome: str) -> None:
        """Record a producer invocation."""
        PRODUCER_CALLS.labels(outcome=outcome).inc()

    def set_l2_available(self, available: bool) -> None:
        """Set tier-2 availability."""
        L2_AVAILABLE.set(1 if available else 0)

    def record_operation_duration(self, operation: str, duration_seconds: float) -> None:
        """Record cache operation duration."""
        OPERATION_DURATION.labels(operation=operation).observe(duration_seconds)

    # =========================================================================
    # Error Metrics
    # =========================================================================

    def record_error(self, error_type: str, stage: str) -> None:
        """Record error."""
        ERRORS.labels(error_type=error_type, stage=stage).inc()

    # =========================================================================
    # Export
    # =========================================================================

    def get_prometheus_metrics(self) -> bytes:
        """
        Get Prometheus metrics output.

        Returns:
            bytes: Prometheus text format metrics
        """
        return generate_latest(REGISTRY)

    def get_content_type(self) -> str:
        """Get Prometheus content type."""
        return CONTENT_TYPE_LATEST


# Global metrics collector
_metrics: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Get global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
