"""
Base Exception Class

Root of the tiercache exception hierarchy. Specialised exceptions live in
their themed modules (cache.py, loader.py).
"""

from typing import Any


class TierCacheError(Exception):
    """
    Base exception for all tiercache errors.

    Attributes:
        message: Error message
        key: Cache key the error relates to (if any)
        details: Additional error details (dict)

    Example:
        raise CacheSerializationError(
            "Cannot decode cached payload",
            key="user:42",
            details={"model": "User"}
        )
    """

    def __init__(
        self, message: str, key: str | None = None, details: dict[str, Any] | None = None
    ):
        self.message = message
        self.key = key
        self.details = (details or {}).copy()
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dict with error_type, message, key, and details
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "key": self.key,
            "details": self.details,
        }

    def __repr__(self) -> str:
        details_str = f", details={self.details}" if self.details else ""
        key_str = f", key='{self.key}'" if self.key else ""
        return f"{self.__class__.__name__}(message='{self.message}'{key_str}{details_str})"
