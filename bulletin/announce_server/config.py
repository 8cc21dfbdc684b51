"""
Configuration management for the Bulletin announcement server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set an explicit REDIS_URL
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Changing ANNOUNCE_KEY_PREFIX or ANNOUNCE_REGISTRY_KEY orphans existing data
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)

MAX_CAPACITY = 1000


class StoreBackend(Enum):
    """Supported key-value store backends."""

    REDIS = "redis"
    MEMORY = "memory"


@dataclass(frozen=True)
class RedisConfig:
    """Redis store backend configuration.

    Attributes:
        url: Redis connection URL (may embed a password)
        socket_timeout: Socket timeout in seconds
        max_connections: Connection pool size
    """

    url: str = "redis://localhost:6379/0"
    socket_timeout: float = 5.0
    max_connections: int = 10

    @classmethod
    def from_env(cls) -> RedisConfig:
        """Load configuration from environment variables."""
        return cls(
            url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "5.0")),
            max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "10")),
        )


@dataclass(frozen=True)
class AnnouncementConfig:
    """Versioned announcement store configuration.

    Attributes:
        capacity: Maximum announcements in one version
        expire_seconds: Lifetime of a version before automatic rotation
        key_prefix: Prefix of version list keys, stripped for clients
        registry_key: Key holding "<versionKey>,<expireEpochSeconds>"
        revalidate_on_expiry: Skip a timer rotation when the version it was
            armed for is no longer current
        timer_poll_seconds: Longest single sleep of the expiry timer
        timer_retry_seconds: Delay before re-arming after a failed expiry rotation
    """

    capacity: int = 30
    expire_seconds: int = 604800  # one week
    key_prefix: str = "ANNOUNCE:"
    registry_key: str = "V:AND:E"
    revalidate_on_expiry: bool = True
    timer_poll_seconds: float = 1.0
    timer_retry_seconds: float = 5.0

    @classmethod
    def from_env(cls) -> AnnouncementConfig:
        """Load configuration from environment variables."""
        return cls(
            capacity=int(os.getenv("ANNOUNCE_CAPACITY", "30")),
            expire_seconds=int(os.getenv("ANNOUNCE_EXPIRE_SECONDS", "604800")),
            key_prefix=os.getenv("ANNOUNCE_KEY_PREFIX", "ANNOUNCE:"),
            registry_key=os.getenv("ANNOUNCE_REGISTRY_KEY", "V:AND:E"),
            revalidate_on_expiry=os.getenv("ANNOUNCE_REVALIDATE_ON_EXPIRY", "true").lower()
            == "true",
            timer_poll_seconds=float(os.getenv("ANNOUNCE_TIMER_POLL_SECONDS", "1.0")),
            timer_retry_seconds=float(os.getenv("ANNOUNCE_TIMER_RETRY_SECONDS", "5.0")),
        )

    def validate(self) -> None:
        """Validate announcement settings.

        Raises:
            ValueError: If a setting is out of range.
        """
        if not 1 <= self.capacity <= MAX_CAPACITY:
            raise ValueError(f"ANNOUNCE_CAPACITY must be between 1 and {MAX_CAPACITY}")
        if self.expire_seconds <= 0:
            raise ValueError("ANNOUNCE_EXPIRE_SECONDS must be positive")
        if not self.key_prefix.endswith(":"):
            raise ValueError("ANNOUNCE_KEY_PREFIX must end with ':'")
        if self.registry_key.startswith(self.key_prefix):
            raise ValueError("ANNOUNCE_REGISTRY_KEY must not start with ANNOUNCE_KEY_PREFIX")
        if self.timer_poll_seconds <= 0:
            raise ValueError("ANNOUNCE_TIMER_POLL_SECONDS must be positive")
        if self.timer_retry_seconds <= 0:
            raise ValueError("ANNOUNCE_TIMER_RETRY_SECONDS must be positive")


@dataclass(frozen=True)
class HttpConfig:
    """HTTP admin API configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins
    """

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        store_backend: Which key-value store backend to use
        redis: Redis configuration (if store_backend is REDIS)
        announcements: Announcement store configuration
        http: HTTP admin API configuration
        observability: Logging configuration
    """

    store_backend: StoreBackend = StoreBackend.REDIS
    redis: RedisConfig = field(default_factory=RedisConfig)
    announcements: AnnouncementConfig = field(default_factory=AnnouncementConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "redis").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: redis, memory")

        config = cls(
            store_backend=store_backend,
            redis=RedisConfig.from_env(),
            announcements=AnnouncementConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.store_backend == StoreBackend.REDIS and not self.redis.url:
            raise ValueError("REDIS_URL is required when STORE_BACKEND=redis")

        self.announcements.validate()

        if self.observability.log_format not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be one of: json, text")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "redis_url_set": bool(self.redis.url)
                if self.store_backend == StoreBackend.REDIS
                else None,
                "capacity": self.announcements.capacity,
                "expire_seconds": self.announcements.expire_seconds,
                "key_prefix": self.announcements.key_prefix,
                "registry_key": self.announcements.registry_key,
                "revalidate_on_expiry": self.announcements.revalidate_on_expiry,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "log_level": self.observability.log_level,
            },
        )
