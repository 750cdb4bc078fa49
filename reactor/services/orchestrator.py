"""Single-container lifecycle orchestration.

The orchestrator owns the recovery state machine: given the deterministic
name of a container it inspects the engine and decides whether to reuse,
start or create. It never guesses at identity; the name always comes from
the BlueprintBuilder.
"""

import asyncio
import contextlib
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Dict, Optional, Sequence, Tuple

import structlog

from ..config import settings
from ..models.container import (
    ContainerBlueprint,
    ContainerInfo,
    ContainerStatus,
    ExecResult,
    MountSpec,
    PortMapping,
    ResolvedConfig,
)
from ..models.errors import (
    ContainerConflictError,
    ContainerNotFoundError,
    ContainerOperationError,
    ReactorException,
)
from .blueprint import BlueprintBuilder
from .runtime.interface import RuntimeClient

logger = structlog.get_logger(__name__)

_REMOVE_ATTEMPTS = 2


class UpAction(str, Enum):
    """What ``up`` had to do to produce a running container."""

    REUSED = "reused"
    STARTED = "started"
    CREATED = "created"
    RECREATED = "recreated"


class DownOutcome(str, Enum):
    """Result of ``down``; both values are successes."""

    REMOVED = "removed"
    ALREADY_ABSENT = "already_absent"


@dataclass(frozen=True)
class UpRequest:
    """Everything ``up`` needs to build and provision a container."""

    resolved: ResolvedConfig
    mounts: Tuple[MountSpec, ...] = ()
    discovery: bool = False
    host_integration: bool = False
    port_mappings: Tuple[PortMapping, ...] = ()
    labels: Dict[str, str] = field(default_factory=dict)
    service: Optional[str] = None


@dataclass(frozen=True)
class UpResult:
    container: ContainerInfo
    action: UpAction


@dataclass(frozen=True)
class DownResult:
    name: str
    outcome: DownOutcome
    container_id: Optional[str] = None


class ContainerOrchestrator:
    """Brings individual containers up and down idempotently."""

    def __init__(
        self,
        runtime: RuntimeClient,
        builder: Optional[BlueprintBuilder] = None,
    ):
        self._runtime = runtime
        self._builder = builder or BlueprintBuilder(settings.isolation_prefix)
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @property
    def builder(self) -> BlueprintBuilder:
        return self._builder

    @property
    def runtime(self) -> RuntimeClient:
        return self._runtime

    @contextlib.asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        """Hold the per-name lock; it is dropped once nobody holds or awaits it."""
        lock = self._locks.setdefault(name, asyncio.Lock())
        self._lock_users[name] = self._lock_users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[name] -= 1
            if not self._lock_users[name]:
                del self._lock_users[name]
                del self._locks[name]

    async def ensure_engine(self) -> None:
        """Fail fast if the container engine is unreachable."""
        await self._runtime.health()

    async def state(self, name: str) -> ContainerInfo:
        """Current state of the named container; ABSENT if the engine has none."""
        info = await self._runtime.inspect(name)
        if info is None:
            return ContainerInfo.absent(name)
        return info

    async def up(self, request: UpRequest) -> UpResult:
        """Ensure a running container exists for the request.

        Args:
            request: Resolved configuration plus mount and port intent

        Returns:
            UpResult with the running container and the action taken

        Raises:
            ConfigurationError: If the blueprint cannot be built
            ContainerOperationError: If the engine refuses a step
            EngineUnavailableError: If the engine cannot be reached
        """
        blueprint = self._builder.build(
            request.resolved,
            mounts=request.mounts,
            discovery=request.discovery,
            host_integration=request.host_integration,
            port_mappings=request.port_mappings,
            labels=request.labels,
            service=request.service,
        )

        async with self._locked(blueprint.name):
            info = await self.state(blueprint.name)
            recreated = False

            if request.discovery and info.status is not ContainerStatus.ABSENT:
                logger.info(
                    "Removing existing discovery container",
                    name=blueprint.name,
                    container_id=info.short_id,
                )
                await self._stop_and_remove(info)
                info = ContainerInfo.absent(blueprint.name)
                recreated = True

            if info.status is ContainerStatus.RUNNING:
                logger.info("Reusing running container", name=info.name, container_id=info.short_id)
                return UpResult(container=info, action=UpAction.REUSED)

            if info.status is ContainerStatus.STOPPED:
                return await self._start_existing(info)

            return await self._create_and_start(blueprint, recreated)

    async def _start_existing(self, info: ContainerInfo) -> UpResult:
        logger.info("Starting stopped container", name=info.name, container_id=info.short_id)
        try:
            await self._runtime.start(info.id)
        except ReactorException as e:
            logger.error("Failed to start existing container", name=info.name, error=e.message)
            raise
        return UpResult(
            container=ContainerInfo(
                id=info.id,
                name=info.name,
                status=ContainerStatus.RUNNING,
                labels=info.labels,
                image=info.image,
            ),
            action=UpAction.STARTED,
        )

    async def _create_and_start(self, blueprint: ContainerBlueprint, recreated: bool) -> UpResult:
        await self._ensure_image(blueprint.image)

        try:
            container_id = await self._runtime.create(blueprint)
        except ContainerConflictError:
            # Another caller created it between our inspect and create.
            info = await self.state(blueprint.name)
            if info.status is ContainerStatus.ABSENT:
                raise
            logger.info("Lost create race, recovering existing container", name=blueprint.name)
            if info.status is ContainerStatus.RUNNING:
                return UpResult(container=info, action=UpAction.REUSED)
            return await self._start_existing(info)

        try:
            await self._runtime.start(container_id)
        except ReactorException as e:
            logger.error(
                "Failed to start new container, removing it",
                name=blueprint.name,
                container_id=container_id[:12],
                error=e.message,
            )
            await self._discard(container_id, blueprint.name)
            raise

        action = UpAction.RECREATED if recreated else UpAction.CREATED
        logger.info(
            "Container is up",
            name=blueprint.name,
            container_id=container_id[:12],
            action=action.value,
        )
        return UpResult(
            container=ContainerInfo(
                id=container_id,
                name=blueprint.name,
                status=ContainerStatus.RUNNING,
                labels=blueprint.label_map,
                image=blueprint.image,
            ),
            action=action,
        )

    async def _ensure_image(self, image: str) -> None:
        if await self._runtime.image_exists(image):
            return
        logger.info("Image not present locally, pulling", image=image)
        await self._runtime.pull(image)

    async def _discard(self, container_id: str, name: str) -> None:
        """Best-effort removal of a container that never became usable."""
        try:
            await self._runtime.remove(container_id, force=True)
        except ReactorException as e:
            logger.warning("Failed to remove unusable container", name=name, error=e.message)

    async def down(self, name: str) -> DownResult:
        """Stop and remove the named container.

        An absent container is a success and causes no engine mutations.
        """
        async with self._locked(name):
            info = await self.state(name)
            if info.status is ContainerStatus.ABSENT:
                logger.debug("Container already absent", name=name)
                return DownResult(name=name, outcome=DownOutcome.ALREADY_ABSENT)

            removed = await self._stop_and_remove(info)
            outcome = DownOutcome.REMOVED if removed else DownOutcome.ALREADY_ABSENT
            logger.info("Container down", name=name, container_id=info.short_id, outcome=outcome.value)
            return DownResult(name=name, outcome=outcome, container_id=info.id)

    async def _stop_and_remove(self, info: ContainerInfo) -> bool:
        """Stop (if running) then remove; False if the container vanished meanwhile."""
        if info.status is ContainerStatus.RUNNING:
            try:
                await self._runtime.stop(info.id)
            except ContainerNotFoundError:
                return False
            except ContainerOperationError as e:
                raise ContainerOperationError(
                    "stop",
                    info.name,
                    f"failed to stop container {info.name}: {e.message}",
                    error_type=e.error_type,
                ) from e

        for attempt in range(1, _REMOVE_ATTEMPTS + 1):
            try:
                await self._runtime.remove(info.id, force=attempt > 1)
                return True
            except ContainerNotFoundError:
                return False
            except ContainerOperationError as e:
                if attempt == _REMOVE_ATTEMPTS:
                    raise ContainerOperationError(
                        "remove",
                        info.name,
                        f"failed to remove container {info.name}: {e.message}",
                        error_type=e.error_type,
                    ) from e
                logger.warning(
                    "Container removal failed, retrying",
                    name=info.name,
                    attempt=attempt,
                    error=e.message,
                )
        return False

    async def exec(
        self,
        name: str,
        command: Sequence[str],
        user: Optional[str] = None,
    ) -> ExecResult:
        """Run a command inside the named, running container."""
        info = await self.state(name)
        if info.status is ContainerStatus.ABSENT:
            raise ContainerNotFoundError(name)
        if info.status is not ContainerStatus.RUNNING:
            raise ContainerNotFoundError(name, message=f"container is not running: {name}")
        return await self._runtime.exec(info.id, command, user=user)
