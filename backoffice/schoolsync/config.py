"""
Configuration management for SchoolSync.

All configuration is done via environment variables. Connection details
for the REST backend (URL, API key) are read by RemoteSettings in
gateway/rest.py under the SCHOOLSYNC_REMOTE_ prefix; this module covers
everything else.

Invariants:
    - All settings have sensible defaults for local development
    - The API key is never logged

How to change safely:
    - Add new settings with defaults that keep current behavior
    - Validate new numeric settings in SyncConfig.validate()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class RemoteBackend(Enum):
    """Supported remote store backends."""

    REST = "rest"
    MEMORY = "memory"


@dataclass(frozen=True)
class RemoteConfig:
    """Remote store selection.

    Attributes:
        backend: Which RemoteStoreClient implementation to use
    """

    backend: RemoteBackend = RemoteBackend.REST

    @classmethod
    def from_env(cls) -> RemoteConfig:
        """Load configuration from environment variables."""
        backend_str = os.getenv("SCHOOLSYNC_REMOTE_BACKEND", "rest").lower()
        try:
            backend = RemoteBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid SCHOOLSYNC_REMOTE_BACKEND '{backend_str}'. Must be one of: rest, memory"
            )
        return cls(backend=backend)


@dataclass(frozen=True)
class BootstrapConfig:
    """Bootstrap retry configuration.

    Attributes:
        max_retries: Retries after the first failed attempt
        retry_delay_ms: Fixed delay between attempts
    """

    max_retries: int = 2
    retry_delay_ms: int = 2000

    @classmethod
    def from_env(cls) -> BootstrapConfig:
        """Load configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("BOOTSTRAP_MAX_RETRIES", "2")),
            retry_delay_ms=int(os.getenv("BOOTSTRAP_RETRY_DELAY_MS", "2000")),
        )


@dataclass(frozen=True)
class RetentionConfig:
    """Recycle-bin retention configuration.

    Attributes:
        retention_days: Days a soft-deleted record is kept before purge
        reaper_interval_seconds: Period of the background reaper; 0 runs it
            only once after bootstrap
    """

    retention_days: int = 30
    reaper_interval_seconds: int = 0

    @classmethod
    def from_env(cls) -> RetentionConfig:
        """Load configuration from environment variables."""
        return cls(
            retention_days=int(os.getenv("RETENTION_DAYS", "30")),
            reaper_interval_seconds=int(os.getenv("REAPER_INTERVAL_SECONDS", "0")),
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
class SyncConfig:
    """Complete SchoolSync configuration.

    Attributes:
        remote: Remote backend selection
        bootstrap: Bootstrap retry settings
        retention: Recycle-bin retention settings
        observability: Logging settings
    """

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    bootstrap: BootstrapConfig = field(default_factory=BootstrapConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> SyncConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            remote=RemoteConfig.from_env(),
            bootstrap=BootstrapConfig.from_env(),
            retention=RetentionConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.bootstrap.max_retries < 0:
            raise ValueError("BOOTSTRAP_MAX_RETRIES must be >= 0")
        if self.bootstrap.retry_delay_ms < 0:
            raise ValueError("BOOTSTRAP_RETRY_DELAY_MS must be >= 0")
        if self.retention.retention_days < 1:
            raise ValueError("RETENTION_DAYS must be >= 1")
        if self.retention.reaper_interval_seconds < 0:
            raise ValueError("REAPER_INTERVAL_SECONDS must be >= 0")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )

        if self.remote.backend == RemoteBackend.MEMORY:
            logger.warning("Using the in-memory remote backend; nothing will be persisted")

    def log_config(self) -> None:
        """Log configuration (secrets are not part of this object)."""
        logger.info(
            "SchoolSync configuration loaded",
            extra={
                "remote_backend": self.remote.backend.value,
                "bootstrap_max_retries": self.bootstrap.max_retries,
                "bootstrap_retry_delay_ms": self.bootstrap.retry_delay_ms,
                "retention_days": self.retention.retention_days,
                "reaper_interval_seconds": self.retention.reaper_interval_seconds,
                "log_level": self.observability.log_level,
            },
        )
