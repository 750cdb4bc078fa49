"""Data models for reactor."""

from .container import (
    ContainerBlueprint,
    ContainerInfo,
    ContainerStatus,
    ExecResult,
    MountSpec,
    NamingMode,
    PortMapping,
    ResolvedConfig,
)
from .errors import (
    ErrorType,
    ErrorDetail,
    ErrorResponse,
    ReactorException,
    ConfigurationError,
    WorkspaceValidationError,
    EngineUnavailableError,
    ContainerOperationError,
    ContainerConflictError,
    ContainerNotFoundError,
    OperationTimeoutError,
    SafetyGateViolation,
    CleanupError,
    WorkspaceOperationError,
)
from .workspace import (
    ServiceOutcome,
    ServiceResult,
    ServiceStatus,
    Workspace,
    WorkspaceReport,
    WorkspaceService,
)

__all__ = [
    # Container models
    "ContainerBlueprint",
    "ContainerInfo",
    "ContainerStatus",
    "ExecResult",
    "MountSpec",
    "NamingMode",
    "PortMapping",
    "ResolvedConfig",
    # Error models
    "ErrorType",
    "ErrorDetail",
    "ErrorResponse",
    "ReactorException",
    "ConfigurationError",
    "WorkspaceValidationError",
    "EngineUnavailableError",
    "ContainerOperationError",
    "ContainerConflictError",
    "ContainerNotFoundError",
    "OperationTimeoutError",
    "SafetyGateViolation",
    "CleanupError",
    "WorkspaceOperationError",
    # Workspace models
    "ServiceOutcome",
    "ServiceResult",
    "ServiceStatus",
    "Workspace",
    "WorkspaceReport",
    "WorkspaceService",
]
