"""In-memory runtime client.

A substitutable RuntimeClient that keeps containers in a dict. Used by the
test suite and for dry runs; supports injected failures and artificial
latency so concurrency and error paths can be exercised without an engine.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

import structlog

from ...models.container import (
    ContainerBlueprint,
    ContainerInfo,
    ContainerStatus,
    ExecResult,
)
from ...models.errors import (
    ContainerConflictError,
    ContainerNotFoundError,
    ContainerOperationError,
    EngineUnavailableError,
)
from .interface import RuntimeClient

logger = structlog.get_logger(__name__)

# Operations that change engine state.
MUTATING_OPERATIONS = frozenset({"create", "start", "stop", "remove", "pull"})

# Called with the blueprint when a container starts; returns the exit status
# that wait() will report.
RunHook = Callable[[ContainerBlueprint], int]


@dataclass
class FakeContainer:
    """A container held by InMemoryRuntimeClient."""

    id: str
    blueprint: ContainerBlueprint
    status: ContainerStatus = ContainerStatus.STOPPED
    exit_code: Optional[int] = None
    exec_log: List[Tuple[str, ...]] = field(default_factory=list)

    def info(self) -> ContainerInfo:
        return ContainerInfo(
            id=self.id,
            name=self.blueprint.name,
            status=self.status,
            labels=self.blueprint.label_map,
            image=self.blueprint.image,
        )


class InMemoryRuntimeClient(RuntimeClient):
    """RuntimeClient that never leaves the process."""

    def __init__(self, images: Optional[Set[str]] = None, latency: float = 0.0):
        self.containers: Dict[str, FakeContainer] = {}
        self.images: Set[str] = set(images or ())
        self.healthy = True
        self.latency = latency
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

        self._ids = itertools.count(1)
        self._failures: Dict[Tuple[str, str], List[Exception]] = {}
        self._run_hooks: Dict[str, RunHook] = {}
        self._exec_results: Dict[str, ExecResult] = {}
        self._in_flight = 0
        self.max_in_flight = 0

    # ------------------------------------------------------------------
    # Test controls
    # ------------------------------------------------------------------

    def fail(self, operation: str, target: str, error: Exception, times: int = 1) -> None:
        """Make the next ``times`` calls of ``operation`` on ``target`` raise ``error``.

        ``target`` is the container name for create and inspect, the image for
        pull, and the container name for id-based operations as well.
        """
        self._failures.setdefault((operation, target), []).extend([error] * times)

    def on_run(self, image: str, hook: RunHook) -> None:
        """Run ``hook`` whenever a container of ``image`` is started."""
        self._run_hooks[image] = hook

    def set_exec_result(self, name: str, result: ExecResult) -> None:
        self._exec_results[name] = result

    def add_container(
        self,
        blueprint: ContainerBlueprint,
        status: ContainerStatus = ContainerStatus.STOPPED,
    ) -> str:
        """Seed a container as if it had been created earlier."""
        container_id = self._next_id()
        self.containers[container_id] = FakeContainer(container_id, blueprint, status)
        return container_id

    def by_name(self, name: str) -> Optional[FakeContainer]:
        for container in self.containers.values():
            if container.blueprint.name == name:
                return container
        return None

    @property
    def mutation_calls(self) -> List[Tuple[str, str]]:
        return [call for call in self.calls if call[0] in MUTATING_OPERATIONS]

    # ------------------------------------------------------------------
    # RuntimeClient
    # ------------------------------------------------------------------

    async def health(self) -> None:
        await self._enter("health", "engine")
        try:
            if not self.healthy:
                raise EngineUnavailableError()
        finally:
            self._leave()

    async def create(self, blueprint: ContainerBlueprint) -> str:
        await self._enter("create", blueprint.name)
        try:
            self._maybe_fail("create", blueprint.name)
            if self.by_name(blueprint.name) is not None:
                raise ContainerConflictError(blueprint.name)
            if blueprint.image not in self.images:
                raise ContainerOperationError(
                    "create", blueprint.name, f"image not found: {blueprint.image}"
                )
            container_id = self._next_id()
            self.containers[container_id] = FakeContainer(container_id, blueprint)
            return container_id
        finally:
            self._leave()

    async def start(self, container_id: str) -> None:
        container = self._get(container_id)
        await self._enter("start", container.blueprint.name)
        try:
            self._maybe_fail("start", container.blueprint.name)
            container.status = ContainerStatus.RUNNING
            hook = self._run_hooks.get(container.blueprint.image)
            if hook is not None:
                container.exit_code = hook(container.blueprint)
                container.status = ContainerStatus.STOPPED
        finally:
            self._leave()

    async def stop(self, container_id: str) -> None:
        container = self._get(container_id)
        await self._enter("stop", container.blueprint.name)
        try:
            self._maybe_fail("stop", container.blueprint.name)
            container.status = ContainerStatus.STOPPED
        finally:
            self._leave()

    async def remove(self, container_id: str, force: bool = False) -> None:
        container = self._get(container_id)
        await self._enter("remove", container.blueprint.name)
        try:
            self._maybe_fail("remove", container.blueprint.name)
            if container.status is ContainerStatus.RUNNING and not force:
                raise ContainerOperationError(
                    "remove", container.blueprint.name, "container is running"
                )
            self.containers.pop(container_id, None)
        finally:
            self._leave()

    async def inspect(self, name: str) -> Optional[ContainerInfo]:
        await self._enter("inspect", name)
        try:
            self._maybe_fail("inspect", name)
            container = self.by_name(name)
            return container.info() if container else None
        finally:
            self._leave()

    async def list_by_label(self, key: str, value: str) -> List[ContainerInfo]:
        await self._enter("list", f"{key}={value}")
        try:
            return [
                c.info()
                for c in self.containers.values()
                if c.blueprint.label_map.get(key) == value
            ]
        finally:
            self._leave()

    async def pull(self, image: str) -> None:
        await self._enter("pull", image)
        try:
            self._maybe_fail("pull", image)
            self.images.add(image)
        finally:
            self._leave()

    async def image_exists(self, image: str) -> bool:
        await self._enter("image_exists", image)
        try:
            return image in self.images
        finally:
            self._leave()

    async def wait(self, container_id: str, timeout: Optional[float] = None) -> int:
        container = self._get(container_id)
        await self._enter("wait", container.blueprint.name)
        try:
            return container.exit_code if container.exit_code is not None else 0
        finally:
            self._leave()

    async def exec(
        self,
        container_id: str,
        command: Sequence[str],
        user: Optional[str] = None,
    ) -> ExecResult:
        container = self._get(container_id)
        await self._enter("exec", container.blueprint.name)
        try:
            self._maybe_fail("exec", container.blueprint.name)
            if container.status is not ContainerStatus.RUNNING:
                raise ContainerOperationError(
                    "exec", container.blueprint.name, "container is not running"
                )
            container.exec_log.append(tuple(command))
            return self._exec_results.get(container.blueprint.name, ExecResult(exit_code=0))
        finally:
            self._leave()

    def close(self) -> None:
        self.closed = True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _next_id(self) -> str:
        return f"{next(self._ids):064x}"

    def _get(self, container_id: str) -> FakeContainer:
        container = self.containers.get(container_id)
        if container is None:
            raise ContainerNotFoundError(container_id)
        return container

    def _maybe_fail(self, operation: str, target: str) -> None:
        pending = self._failures.get((operation, target))
        if pending:
            raise pending.pop(0)

    async def _enter(self, operation: str, target: str) -> None:
        self.calls.append((operation, target))
        self._in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            else:
                await asyncio.sleep(0)
        except BaseException:
            self._in_flight -= 1
            raise

    def _leave(self) -> None:
        self._in_flight -= 1
