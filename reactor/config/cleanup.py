"""Cleanup guard configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CleanupConfig(BaseSettings):
    """Settings for forced removal of container-owned state."""

    cleanup_helper_image: str = Field(default="alpine:latest", min_length=1)
    cleanup_helper_timeout: float = Field(default=60.0, gt=0, le=600)
    cleanup_scan_timeout: float = Field(default=120.0, gt=0, le=600)
    verbose_cleanup: bool = Field(default=False)

    model_config = SettingsConfigDict(env_prefix="REACTOR_", extra="ignore")
