"""Container runtime configuration."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RuntimeConfig(BaseSettings):
    """Deadlines and limits for calls into the container engine."""

    engine_health_timeout: float = Field(default=10.0, gt=0, le=120)
    container_inspect_timeout: float = Field(default=30.0, gt=0, le=300)
    container_start_timeout: float = Field(default=30.0, gt=0, le=300)
    container_stop_timeout: float = Field(default=30.0, gt=0, le=300)
    container_create_timeout: float = Field(default=60.0, gt=0, le=600)
    container_remove_timeout: float = Field(default=60.0, gt=0, le=600)
    container_exec_timeout: float = Field(default=300.0, gt=0, le=3600)
    image_pull_timeout: float = Field(default=300.0, gt=0, le=3600)
    stop_grace_period: int = Field(default=10, ge=0, le=300)

    # Workspace fan-out
    workspace_max_parallel: int = Field(default=8, ge=1, le=64)
    workspace_operation_timeout: Optional[float] = Field(default=None, gt=0)

    model_config = SettingsConfigDict(env_prefix="REACTOR_", extra="ignore")
