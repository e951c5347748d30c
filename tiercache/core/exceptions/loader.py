"""
Loader Exceptions

Exceptions raised while validating or invoking a producer.
"""

from tiercache.core.exceptions.base import TierCacheError


class LoaderError(TierCacheError):
    """Base exception for producer invocation errors."""
    pass


class ProducerSignatureError(LoaderError):
    """
    Raised when a producer cannot be called with the supplied arguments,
    or returns something of the wrong shape or type.

    ``details`` always names the producer.
    """
    pass
