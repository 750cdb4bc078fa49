"""Configuration management for reactor.

This module provides a unified Settings class populated from the process
environment (``REACTOR_*`` variables) and an optional ``.env`` file, with the
settings organised into logical groups.

Usage:
    from reactor.config import settings

    # Access grouped settings
    settings.runtime.container_start_timeout
    settings.cleanup.cleanup_helper_image

    # Or flat access
    settings.isolation_prefix
    settings.default_image
"""

import re
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .cleanup import CleanupConfig
from .logging import LoggingConfig
from .runtime import RuntimeConfig

_PREFIX_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Flat fields map one-to-one onto ``REACTOR_<FIELD>`` environment
    variables; the grouped properties hand the relevant subset to each
    component.
    """

    model_config = SettingsConfigDict(
        env_prefix="REACTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # IDENTITY
    # ========================================================================

    # Prepended to every generated container name. Concurrent test runs set
    # distinct values so their containers never collide.
    isolation_prefix: Optional[str] = Field(default=None)

    default_image: str = Field(
        default="ghcr.io/dyluth/reactor/base:latest",
        min_length=1,
        description="Image used when a service does not resolve one itself",
    )
    default_account: Optional[str] = Field(
        default=None,
        description="Account used when a service has no override; falls back to the login name",
    )

    # ========================================================================
    # RUNTIME
    # ========================================================================

    engine_health_timeout: float = Field(default=10.0, gt=0, le=120)
    container_inspect_timeout: float = Field(default=30.0, gt=0, le=300)
    container_start_timeout: float = Field(default=30.0, gt=0, le=300)
    container_stop_timeout: float = Field(default=30.0, gt=0, le=300)
    container_create_timeout: float = Field(default=60.0, gt=0, le=600)
    container_remove_timeout: float = Field(default=60.0, gt=0, le=600)
    container_exec_timeout: float = Field(default=300.0, gt=0, le=3600)
    image_pull_timeout: float = Field(default=300.0, gt=0, le=3600)
    stop_grace_period: int = Field(
        default=10, ge=0, le=300, description="Seconds a container gets to stop gracefully"
    )

    workspace_max_parallel: int = Field(
        default=8, ge=1, le=64, description="Services handled concurrently per workspace operation"
    )
    workspace_operation_timeout: Optional[float] = Field(
        default=None, gt=0, description="Overall deadline for a workspace fan-out (seconds)"
    )

    # ========================================================================
    # CLEANUP
    # ========================================================================

    cleanup_helper_image: str = Field(default="alpine:latest", min_length=1)
    cleanup_helper_timeout: float = Field(default=60.0, gt=0, le=600)
    cleanup_scan_timeout: float = Field(default=120.0, gt=0, le=600)
    verbose_cleanup: bool = Field(default=False)

    # ========================================================================
    # LOGGING
    # ========================================================================

    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")
    log_file: Optional[str] = Field(default=None)

    # ========================================================================
    # VALIDATORS
    # ========================================================================

    @field_validator("isolation_prefix", mode="before")
    @classmethod
    def normalize_isolation_prefix(cls, v):
        """Treat a blank prefix as unset and reject characters Docker refuses."""
        if v is None:
            return None
        v = str(v).strip()
        if not v:
            return None
        if not _PREFIX_PATTERN.match(v):
            raise ValueError(
                "isolation prefix must match [a-zA-Z0-9][a-zA-Z0-9_.-]*"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is one the logging module understands."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Only console and json renderers are supported."""
        fmt = v.lower()
        if fmt not in {"console", "json"}:
            raise ValueError("log format must be 'console' or 'json'")
        return fmt

    # ========================================================================
    # GROUPED CONFIG ACCESS
    # ========================================================================

    @property
    def runtime(self) -> RuntimeConfig:
        """Access container runtime configuration group."""
        return RuntimeConfig(
            engine_health_timeout=self.engine_health_timeout,
            container_inspect_timeout=self.container_inspect_timeout,
            container_start_timeout=self.container_start_timeout,
            container_stop_timeout=self.container_stop_timeout,
            container_create_timeout=self.container_create_timeout,
            container_remove_timeout=self.container_remove_timeout,
            container_exec_timeout=self.container_exec_timeout,
            image_pull_timeout=self.image_pull_timeout,
            stop_grace_period=self.stop_grace_period,
            workspace_max_parallel=self.workspace_max_parallel,
            workspace_operation_timeout=self.workspace_operation_timeout,
        )

    @property
    def cleanup(self) -> CleanupConfig:
        """Access cleanup guard configuration group."""
        return CleanupConfig(
            cleanup_helper_image=self.cleanup_helper_image,
            cleanup_helper_timeout=self.cleanup_helper_timeout,
            cleanup_scan_timeout=self.cleanup_scan_timeout,
            verbose_cleanup=self.verbose_cleanup,
        )

    @property
    def logging(self) -> LoggingConfig:
        """Access logging configuration group."""
        return LoggingConfig(
            log_level=self.log_level,
            log_format=self.log_format,
            log_file=self.log_file,
        )


# Global settings instance
settings = Settings()

__all__ = [
    "Settings",
    "settings",
    "RuntimeConfig",
    "CleanupConfig",
    "LoggingConfig",
]
