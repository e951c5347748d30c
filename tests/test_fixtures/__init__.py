"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .cache_factory import CacheTestFactory, CountingProducer, User

__all__ = ["CacheTestFactory", "CountingProducer", "User"]
