"""Container data models.

ResolvedConfig is produced by an external configuration resolver;
ContainerBlueprint is the immutable create request the orchestrator hands to
the runtime client; ContainerInfo is what the runtime reports back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class ContainerStatus(str, Enum):
    """Lifecycle state of a container as seen by the orchestrator."""

    RUNNING = "running"
    STOPPED = "stopped"
    ABSENT = "absent"


class NamingMode(str, Enum):
    """Container naming mode."""

    NORMAL = "normal"
    DISCOVERY = "discovery"


@dataclass(frozen=True)
class PortMapping:
    """Host port to container port forwarding."""

    host_port: int
    container_port: int

    def __str__(self) -> str:
        return f"{self.host_port}->{self.container_port}"


@dataclass(frozen=True)
class MountSpec:
    """A bind mount from the host into the container."""

    source: str  # Host path (absolute)
    target: str  # Container path
    kind: str = "bind"
    read_only: bool = False


@dataclass(frozen=True)
class ResolvedConfig:
    """Fully resolved configuration for one project.

    Only the first four fields are required; the rest carry optional
    devcontainer settings when the resolver provides them.
    """

    account: str
    project_root: str
    project_hash: str
    image: str
    forward_ports: Tuple[PortMapping, ...] = ()
    remote_user: Optional[str] = None
    project_config_dir: Optional[str] = None
    # (state sub-directory under project_config_dir, container target)
    provider_mounts: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class ContainerBlueprint:
    """Complete, immutable description of one container to create."""

    name: str
    image: str
    command: Tuple[str, ...]
    working_dir: str
    user: str
    environment: Tuple[str, ...]
    mounts: Tuple[MountSpec, ...]
    port_mappings: Tuple[PortMapping, ...]
    network_mode: str
    labels: Tuple[Tuple[str, str], ...] = ()

    @property
    def label_map(self) -> Dict[str, str]:
        """Labels as a plain dict."""
        return dict(self.labels)


@dataclass
class ContainerInfo:
    """Runtime-observed state of a container."""

    id: str
    name: str
    status: ContainerStatus
    labels: Dict[str, str] = field(default_factory=dict)
    image: str = ""

    @classmethod
    def absent(cls, name: str) -> "ContainerInfo":
        """Placeholder for a container the engine does not know about."""
        return cls(id="", name=name, status=ContainerStatus.ABSENT)

    @property
    def short_id(self) -> str:
        return self.id[:12]


@dataclass(frozen=True)
class ExecResult:
    """Outcome of a command run inside a container."""

    exit_code: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0
