"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

from unittest.mock import MagicMock

import pytest

from tiercache.core.config.settings import Settings
from tiercache.core.interfaces.cache import InMemoryStore
from tests.test_fixtures.cache_factory import User

# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio runs in auto mode (see pyproject.toml)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Real Settings with test-friendly values.

    .env files are ignored so local configuration cannot leak into tests.
    """
    return Settings(
        _env_file=None,
        CACHE_L1_MAX_SIZE=100,
        CACHE_TTL=60.0,
        REDIS_RECONNECT_INITIAL_DELAY=0.01,
        REDIS_RECONNECT_MAX_DELAY=0.05,
    )


@pytest.fixture
def mock_metrics():
    """MetricsCollector stand-in so tests do not depend on global Prometheus state."""
    from tiercache.infrastructure.monitoring.metrics_collector import MetricsCollector

    return MagicMock(spec=MetricsCollector)


# ============================================================================
# Mock Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def in_memory_store():
    """Reachable in-memory tier-2 store."""
    return InMemoryStore()


@pytest.fixture
def unavailable_store():
    """Tier-2 store whose connect() fails like an unreachable Redis."""
    return InMemoryStore(available=False)


@pytest.fixture
async def cache_manager(test_settings, in_memory_store, mock_metrics):
    """Initialized CacheManager over an in-memory tier-2 store."""
    from tiercache.infrastructure.cache.cache_manager import CacheManager

    manager = CacheManager(settings=test_settings, redis_client=in_memory_store, metrics=mock_metrics)
    await manager.initialize()
    yield manager
    await manager.shutdown()


@pytest.fixture
async def degraded_cache_manager(test_settings, unavailable_store, mock_metrics):
    """Initialized CacheManager whose tier-2 store is down."""
    from tiercache.infrastructure.cache.cache_manager import CacheManager

    manager = CacheManager(settings=test_settings, redis_client=unavailable_store, metrics=mock_metrics)
    await manager.initialize()
    yield manager
    await manager.shutdown()


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def ada():
    """Sample user."""
    return User(id=42, name="Ada")
