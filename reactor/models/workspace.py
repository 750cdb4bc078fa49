"""Workspace data models.

A Workspace is parsed from ``reactor-workspace.yml`` on every command and
never persisted. ServiceResult and WorkspaceReport carry the per-service
outcome of a concurrent workspace operation.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorResponse


class WorkspaceService(BaseModel):
    """A single service declared in a workspace file."""

    model_config = ConfigDict(frozen=True)

    name: str
    path: str = Field(..., description="Path as declared in the workspace file")
    resolved_path: Path = Field(..., description="Absolute, normalised service directory")
    account: Optional[str] = Field(None, description="Per-service account override")


class Workspace(BaseModel):
    """A validated workspace."""

    model_config = ConfigDict(frozen=True)

    version: str
    file_path: Path
    directory: Path
    workspace_hash: str
    services: Dict[str, WorkspaceService]

    def select(self, names: Optional[List[str]] = None) -> List[WorkspaceService]:
        """Services to operate on; every known service when ``names`` is empty."""
        if not names:
            return [self.services[name] for name in sorted(self.services)]
        return [self.services[name] for name in names]


class ServiceOutcome(str, Enum):
    """What happened to one service during a workspace operation."""

    # up
    REUSED = "reused"
    STARTED = "started"
    CREATED = "created"
    RECREATED = "recreated"
    # down
    REMOVED = "removed"
    ALREADY_ABSENT = "already_absent"
    # exec
    EXECUTED = "executed"
    # failures
    FAILED = "failed"
    CANCELLED = "cancelled"


class ServiceResult(BaseModel):
    """Tagged result of one service's operation."""

    model_config = ConfigDict(use_enum_values=True)

    service: str
    ok: bool
    outcome: ServiceOutcome
    container_name: Optional[str] = None
    container_id: Optional[str] = None
    exit_code: Optional[int] = None
    output: Optional[str] = None
    error: Optional[ErrorResponse] = None


class WorkspaceReport(BaseModel):
    """Aggregated results of a workspace operation, keyed by service name."""

    operation: str
    workspace_hash: str
    results: Dict[str, ServiceResult] = Field(default_factory=dict)

    @property
    def succeeded(self) -> List[ServiceResult]:
        return [r for _, r in sorted(self.results.items()) if r.ok]

    @property
    def failed(self) -> List[ServiceResult]:
        return [r for _, r in sorted(self.results.items()) if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        """Raise WorkspaceOperationError when any service failed."""
        if not self.ok:
            from .errors import WorkspaceOperationError

            raise WorkspaceOperationError(self)


class ServiceStatus(BaseModel):
    """Read-only status line for ``list``."""

    model_config = ConfigDict(use_enum_values=True)

    service: str
    path: str
    account: str
    container_name: str
    status: str
    container_id: Optional[str] = None
