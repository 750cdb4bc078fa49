"""Capability interface for the container engine.

The orchestrator, workspace engine and cleanup guard only ever talk to the
engine through this interface. DockerRuntimeClient is the production
implementation; InMemoryRuntimeClient is a substitutable fake for tests.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from ...models.container import ContainerBlueprint, ContainerInfo, ExecResult


class RuntimeClient(ABC):
    """Narrow, async view of a container engine.

    Implementations raise reactor exceptions only: EngineUnavailableError
    when the engine cannot be reached, ContainerConflictError when a create
    collides with an existing name, ContainerNotFoundError for unknown ids,
    OperationTimeoutError when a deadline expires and ContainerOperationError
    for anything else.
    """

    @abstractmethod
    async def health(self) -> None:
        """Fail fast with EngineUnavailableError if the engine is unreachable."""

    @abstractmethod
    async def create(self, blueprint: ContainerBlueprint) -> str:
        """Create a container from a blueprint and return its id."""

    @abstractmethod
    async def start(self, container_id: str) -> None:
        """Start a created or stopped container."""

    @abstractmethod
    async def stop(self, container_id: str) -> None:
        """Stop a running container."""

    @abstractmethod
    async def remove(self, container_id: str, force: bool = False) -> None:
        """Remove a container."""

    @abstractmethod
    async def inspect(self, name: str) -> Optional[ContainerInfo]:
        """Look up a container by exact name; None when it does not exist."""

    @abstractmethod
    async def list_by_label(self, key: str, value: str) -> List[ContainerInfo]:
        """All containers, running or not, carrying ``key=value``."""

    @abstractmethod
    async def pull(self, image: str) -> None:
        """Pull an image."""

    @abstractmethod
    async def image_exists(self, image: str) -> bool:
        """Whether an image is present locally."""

    @abstractmethod
    async def wait(self, container_id: str, timeout: Optional[float] = None) -> int:
        """Block until the container exits and return its exit status."""

    @abstractmethod
    async def exec(
        self,
        container_id: str,
        command: Sequence[str],
        user: Optional[str] = None,
    ) -> ExecResult:
        """Run a command in a running container."""

    def close(self) -> None:
        """Release client resources."""
