"""Services for reactor."""

from .blueprint import BlueprintBuilder, build_state_mounts, merge_port_mappings, parse_port_mappings
from .cleanup import CleanupGuard, ContainerSweepResult, sanitize_scope_token
from .orchestrator import (
    ContainerOrchestrator,
    DownOutcome,
    DownResult,
    UpAction,
    UpRequest,
    UpResult,
)
from .resolver import ConfigResolver, DefaultConfigResolver
from .runtime import DockerRuntimeClient, InMemoryRuntimeClient, RuntimeClient
from .workspace import (
    WorkspaceEngine,
    find_workspace_file,
    load_workspace,
    parse_workspace_file,
)

__all__ = [
    "BlueprintBuilder",
    "build_state_mounts",
    "parse_port_mappings",
    "merge_port_mappings",
    "CleanupGuard",
    "ContainerSweepResult",
    "sanitize_scope_token",
    "ContainerOrchestrator",
    "UpRequest",
    "UpResult",
    "UpAction",
    "DownResult",
    "DownOutcome",
    "ConfigResolver",
    "DefaultConfigResolver",
    "RuntimeClient",
    "DockerRuntimeClient",
    "InMemoryRuntimeClient",
    "WorkspaceEngine",
    "find_workspace_file",
    "parse_workspace_file",
    "load_workspace",
]
