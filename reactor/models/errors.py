"""Error models and exception classes for reactor."""

import time
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .workspace import WorkspaceReport


class ErrorType(str, Enum):
    """Error type enumeration."""

    CONFIGURATION = "configuration"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    CONTAINER_OPERATION = "container_operation"
    CONTAINER_CONFLICT = "container_conflict"
    RESOURCE_NOT_FOUND = "resource_not_found"
    SAFETY_GATE = "safety_gate"
    CLEANUP = "cleanup"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    PARTIAL_FAILURE = "partial_failure"
    INTERNAL = "internal"


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: Optional[str] = Field(None, description="Field or service the error refers to")
    message: str = Field(..., description="Human-readable error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")


class ErrorResponse(BaseModel):
    """Standardized error report, used in per-service results."""

    model_config = ConfigDict(use_enum_values=True)

    error: str = Field(..., description="Main error message")
    error_type: ErrorType = Field(..., description="Error category")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Additional error details"
    )
    timestamp: float = Field(default_factory=time.time, description="Error timestamp")


# Custom Exception Classes


class ReactorException(Exception):
    """Base exception for reactor."""

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.INTERNAL,
        details: Optional[List[ErrorDetail]] = None,
    ):
        self.message = message
        self.error_type = error_type
        self.details = details or []
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to error response model."""
        return ErrorResponse(
            error=self.message,
            error_type=self.error_type,
            details=self.details if self.details else None,
        )


class ConfigurationError(ReactorException):
    """Invalid configuration or caller input. Always fatal."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        self.field = field
        if field and "details" not in kwargs:
            kwargs["details"] = [ErrorDetail(field=field, message=message)]
        super().__init__(message=message, error_type=ErrorType.CONFIGURATION, **kwargs)


class WorkspaceValidationError(ConfigurationError):
    """A workspace file failed validation.

    ``service`` names the offending service when the problem is local to
    one entry; file-level problems (version, empty service map) leave it
    unset and use ``field`` instead.
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        field: Optional[str] = None,
        **kwargs,
    ):
        self.service = service
        super().__init__(message=message, field=field or service, **kwargs)


class EngineUnavailableError(ReactorException):
    """The container engine cannot be reached."""

    def __init__(self, message: Optional[str] = None, **kwargs):
        error_message = message or (
            "Docker daemon is not accessible. Please ensure Docker is running "
            "and you have permission to use it."
        )
        super().__init__(
            message=error_message, error_type=ErrorType.ENGINE_UNAVAILABLE, **kwargs
        )


class ContainerOperationError(ReactorException):
    """A container engine call failed."""

    def __init__(
        self,
        operation: str,
        target: str,
        message: Optional[str] = None,
        error_type: ErrorType = ErrorType.CONTAINER_OPERATION,
        **kwargs,
    ):
        self.operation = operation
        self.target = target
        error_message = message or f"failed to {operation} {target}"
        super().__init__(message=error_message, error_type=error_type, **kwargs)


class ContainerConflictError(ContainerOperationError):
    """The engine rejected a create because the name is already taken."""

    def __init__(self, target: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            operation="create",
            target=target,
            message=message or f"container name already in use: {target}",
            error_type=ErrorType.CONTAINER_CONFLICT,
            **kwargs,
        )


class ContainerNotFoundError(ContainerOperationError):
    """A container expected to exist is absent or not running."""

    def __init__(self, target: str, message: Optional[str] = None, **kwargs):
        super().__init__(
            operation="find",
            target=target,
            message=message or f"container not found: {target}",
            error_type=ErrorType.RESOURCE_NOT_FOUND,
            **kwargs,
        )


class OperationTimeoutError(ContainerOperationError):
    """An engine call exceeded its deadline."""

    def __init__(self, operation: str, target: str, timeout: float, **kwargs):
        self.timeout = timeout
        super().__init__(
            operation=operation,
            target=target,
            message=f"timed out after {timeout:g}s trying to {operation} {target}",
            error_type=ErrorType.TIMEOUT,
            **kwargs,
        )


class SafetyGateViolation(ReactorException):
    """A path failed the checks required before forced removal."""

    def __init__(self, path: str, reason: str, **kwargs):
        self.path = path
        self.reason = reason
        super().__init__(
            message=f"refusing to force remove {path}: {reason}",
            error_type=ErrorType.SAFETY_GATE,
            **kwargs,
        )


class CleanupError(ReactorException):
    """Removal of container-owned state failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message=message, error_type=ErrorType.CLEANUP, **kwargs)


class WorkspaceOperationError(ReactorException):
    """One or more services failed during a workspace fan-out."""

    def __init__(self, report: "WorkspaceReport", **kwargs):
        self.report = report
        failed = report.failed
        details = [
            ErrorDetail(
                field=result.service,
                message=result.error.error if result.error else result.outcome,
                code=result.outcome,
            )
            for result in failed
        ]
        super().__init__(
            message=f"{len(failed)} service(s) failed to {report.operation}",
            error_type=ErrorType.PARTIAL_FAILURE,
            details=details,
            **kwargs,
        )
