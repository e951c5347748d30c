#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

Type-safe, environment-based configuration for the two-tier cache.
All tunables (Redis connection, tier-1 capacity and TTL, early refresh,
reconnect backoff, logging) live here.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Easy testing with override mechanisms
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseSettings):
    """
    Redis configuration for the shared (tier-2) cache.

    STAGE-0.1: Redis connection configuration

    The reconnect delays drive the background reconnect loop that restores
    tier-2 after it was found unreachable.
    """

    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_PROTOCOL: int = Field(default=3, description="RESP protocol version (2 or 3)")

    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")

    REDIS_RECONNECT_INITIAL_DELAY: float = Field(default=0.5, description="First reconnect backoff (seconds)")
    REDIS_RECONNECT_MAX_DELAY: float = Field(default=30.0, description="Reconnect backoff ceiling (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class CacheSettings(BaseSettings):
    """
    Two-tier cache configuration.

    STAGE-2: Cache capacity, TTL and refresh configuration

    CACHE_L2_TTL falls back to CACHE_TTL so both tiers expire together
    unless configured otherwise.
    """

    CACHE_ENABLED: bool = Field(default=True, description="Master switch for caching")
    CACHE_L1_MAX_SIZE: int = Field(default=10000, description="Tier-1 in-memory max entries")
    CACHE_TTL: float = Field(default=60.0, description="Tier-1 time-to-live in seconds")
    CACHE_L2_TTL: int | None = Field(default=None, description="Tier-2 TTL in seconds (default: CACHE_TTL)")

    CACHE_EARLY_REFRESH_ENABLED: bool = Field(default=False, description="Refresh tier-1 entries before expiry")
    CACHE_MIN_REFRESH_DELAY: float = Field(default=10.0, description="Earliest refresh after write (seconds)")
    CACHE_MAX_REFRESH_DELAY: float = Field(default=30.0, description="Latest refresh after write (seconds)")
    CACHE_REFRESH_RETRY_DELAY: float = Field(default=1.0, description="Delay before retrying a failed refresh")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)

    @property
    def l2_ttl(self) -> int:
        """Effective tier-2 TTL in whole seconds."""
        if self.CACHE_L2_TTL is not None:
            return self.CACHE_L2_TTL
        return max(1, int(self.CACHE_TTL))


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """General application settings."""

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="tiercache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from tiercache.core.config.settings import get_settings

        settings = get_settings()
        redis_host = settings.redis.REDIS_HOST
        l1_size = settings.cache.CACHE_L1_MAX_SIZE
    """

    # Redis settings
    REDIS_HOST: str = Field(default="localhost", description="Redis server host")
    REDIS_PORT: int = Field(default=6379, description="Redis server port")
    REDIS_DB: int = Field(default=0, description="Redis database number")
    REDIS_PASSWORD: str | None = Field(default=None, description="Redis password (if required)")
    REDIS_PROTOCOL: int = Field(default=3, description="RESP protocol version (2 or 3)")
    REDIS_MAX_CONNECTIONS: int = Field(default=50, description="Maximum pooled connections")
    REDIS_SOCKET_TIMEOUT: float = Field(default=5.0, description="Socket timeout in seconds")
    REDIS_SOCKET_CONNECT_TIMEOUT: float = Field(default=5.0, description="Connection timeout in seconds")
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(default=30, description="Health check interval in seconds")
    REDIS_RECONNECT_INITIAL_DELAY: float = Field(default=0.5, description="First reconnect backoff (seconds)")
    REDIS_RECONNECT_MAX_DELAY: float = Field(default=30.0, description="Reconnect backoff ceiling (seconds)")

    # Cache settings
    CACHE_ENABLED: bool = Field(default=True, description="Master switch for caching")
    CACHE_L1_MAX_SIZE: int = Field(default=10000, description="Tier-1 in-memory max entries")
    CACHE_TTL: float = Field(default=60.0, description="Tier-1 time-to-live in seconds")
    CACHE_L2_TTL: int | None = Field(default=None, description="Tier-2 TTL in seconds (default: CACHE_TTL)")
    CACHE_EARLY_REFRESH_ENABLED: bool = Field(default=False, description="Refresh tier-1 entries before expiry")
    CACHE_MIN_REFRESH_DELAY: float = Field(default=10.0, description="Earliest refresh after write (seconds)")
    CACHE_MAX_REFRESH_DELAY: float = Field(default=30.0, description="Latest refresh after write (seconds)")
    CACHE_REFRESH_RETRY_DELAY: float = Field(default=1.0, description="Delay before retrying a failed refresh")

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="tiercache", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("CACHE_L1_MAX_SIZE")
    @classmethod
    def validate_l1_size(cls, v):
        """Tier-1 must hold at least one entry."""
        if v < 1:
            raise ValueError("CACHE_L1_MAX_SIZE must be at least 1")
        return v

    @field_validator("CACHE_TTL")
    @classmethod
    def validate_ttl(cls, v):
        """TTL must be positive."""
        if v <= 0:
            raise ValueError("CACHE_TTL must be positive")
        return v

    @field_validator("CACHE_L2_TTL")
    @classmethod
    def validate_l2_ttl(cls, v):
        """Redis rejects an expiry below one second."""
        if v is not None and v < 1:
            raise ValueError("CACHE_L2_TTL must be at least 1 second")
        return v

    @model_validator(mode="after")
    def check_refresh_window(self):
        """Refresh window must be ordered."""
        if self.CACHE_MIN_REFRESH_DELAY > self.CACHE_MAX_REFRESH_DELAY:
            raise ValueError("CACHE_MIN_REFRESH_DELAY must not exceed CACHE_MAX_REFRESH_DELAY")
        return self

    # Nested configuration objects
    @property
    def redis(self) -> 'RedisSettings':
        """Get Redis settings."""
        return RedisSettings(
            REDIS_HOST=self.REDIS_HOST,
            REDIS_PORT=self.REDIS_PORT,
            REDIS_DB=self.REDIS_DB,
            REDIS_PASSWORD=self.REDIS_PASSWORD,
            REDIS_PROTOCOL=self.REDIS_PROTOCOL,
            REDIS_MAX_CONNECTIONS=self.REDIS_MAX_CONNECTIONS,
            REDIS_SOCKET_TIMEOUT=self.REDIS_SOCKET_TIMEOUT,
            REDIS_SOCKET_CONNECT_TIMEOUT=self.REDIS_SOCKET_CONNECT_TIMEOUT,
            REDIS_HEALTH_CHECK_INTERVAL=self.REDIS_HEALTH_CHECK_INTERVAL,
            REDIS_RECONNECT_INITIAL_DELAY=self.REDIS_RECONNECT_INITIAL_DELAY,
            REDIS_RECONNECT_MAX_DELAY=self.REDIS_RECONNECT_MAX_DELAY,
        )

    @property
    def cache(self) -> 'CacheSettings':
        """Get cache settings."""
        return CacheSettings(
            CACHE_ENABLED=self.CACHE_ENABLED,
            CACHE_L1_MAX_SIZE=self.CACHE_L1_MAX_SIZE,
            CACHE_TTL=self.CACHE_TTL,
            CACHE_L2_TTL=self.CACHE_L2_TTL,
            CACHE_EARLY_REFRESH_ENABLED=self.CACHE_EARLY_REFRESH_ENABLED,
            CACHE_MIN_REFRESH_DELAY=self.CACHE_MIN_REFRESH_DELAY,
            CACHE_MAX_REFRESH_DELAY=self.CACHE_MAX_REFRESH_DELAY,
            CACHE_REFRESH_RETRY_DELAY=self.CACHE_REFRESH_RETRY_DELAY,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
