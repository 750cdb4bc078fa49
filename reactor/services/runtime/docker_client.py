"""Docker-backed runtime client.

Wraps the blocking docker SDK behind the async RuntimeClient interface.
Every call runs in the default executor under a per-operation deadline, and
SDK exceptions are translated into reactor exceptions before they leave
this module.
"""

import re
from typing import Dict, List, Optional, Sequence, Union

import docker
import structlog
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from docker.models.containers import Container
from docker.types import Mount
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import ReadTimeout

from ...config import RuntimeConfig, settings
from ...models.container import (
    ContainerBlueprint,
    ContainerInfo,
    ExecResult,
    PortMapping,
)
from ...models.errors import (
    ContainerConflictError,
    ContainerNotFoundError,
    ContainerOperationError,
    EngineUnavailableError,
    OperationTimeoutError,
    ReactorException,
)
from .interface import RuntimeClient
from .utils import call_with_deadline, map_container_state

logger = structlog.get_logger(__name__)

_HTTP_CONFLICT = 409


class DockerRuntimeClient(RuntimeClient):
    """RuntimeClient implementation on top of the docker SDK."""

    def __init__(
        self,
        client: Optional[docker.DockerClient] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        """Initialize the client.

        Args:
            client: Pre-built docker client; created from the environment lazily
            config: Deadlines for engine calls, defaults to settings.runtime
        """
        self._client = client
        self._config = config or settings.runtime

    def _get_client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except DockerException as e:
                logger.error("Failed to initialize Docker client", error=str(e))
                raise EngineUnavailableError() from e
        return self._client

    async def _call(self, operation: str, target: str, timeout: float, func, *args, **kwargs):
        """Run an SDK call with a deadline and translate its failures."""
        try:
            return await call_with_deadline(operation, target, timeout, func, *args, **kwargs)
        except ReactorException:
            raise
        except NotFound as e:
            raise ContainerNotFoundError(target) from e
        except APIError as e:
            if e.status_code == _HTTP_CONFLICT and operation == "create":
                raise ContainerConflictError(target) from e
            raise ContainerOperationError(
                operation, target, f"failed to {operation} {target}: {e.explanation or e}"
            ) from e
        except RequestsConnectionError as e:
            raise EngineUnavailableError() from e
        except ReadTimeout:
            raise OperationTimeoutError(operation, target, timeout) from None
        except DockerException as e:
            raise ContainerOperationError(
                operation, target, f"failed to {operation} {target}: {e}"
            ) from e

    async def health(self) -> None:
        timeout = self._config.engine_health_timeout
        try:
            client = self._get_client()
            await call_with_deadline("ping", "engine", timeout, client.ping)
        except EngineUnavailableError:
            raise
        except OperationTimeoutError as e:
            raise EngineUnavailableError(
                f"Docker daemon did not respond within {timeout:g}s"
            ) from e
        except (DockerException, RequestsConnectionError) as e:
            logger.error("Docker health check failed", error=str(e))
            raise EngineUnavailableError() from e

    async def create(self, blueprint: ContainerBlueprint) -> str:
        client = self._get_client()

        def _create() -> str:
            container = client.containers.create(
                image=blueprint.image,
                command=list(blueprint.command),
                name=blueprint.name,
                working_dir=blueprint.working_dir,
                user=blueprint.user,
                environment=list(blueprint.environment),
                mounts=[
                    Mount(
                        target=m.target,
                        source=m.source,
                        type=m.kind,
                        read_only=m.read_only,
                    )
                    for m in blueprint.mounts
                ],
                ports=_port_bindings(blueprint.port_mappings),
                network_mode=blueprint.network_mode,
                labels=blueprint.label_map,
                stdin_open=True,
                tty=True,
            )
            return container.id

        container_id = await self._call(
            "create", blueprint.name, self._config.container_create_timeout, _create
        )
        logger.debug("Created container", name=blueprint.name, container_id=container_id[:12])
        return container_id

    async def start(self, container_id: str) -> None:
        client = self._get_client()
        await self._call(
            "start",
            container_id,
            self._config.container_start_timeout,
            lambda: client.containers.get(container_id).start(),
        )

    async def stop(self, container_id: str) -> None:
        client = self._get_client()
        grace = self._config.stop_grace_period
        await self._call(
            "stop",
            container_id,
            # The SDK call itself blocks for up to the grace period.
            self._config.container_stop_timeout + grace,
            lambda: client.containers.get(container_id).stop(timeout=grace),
        )

    async def remove(self, container_id: str, force: bool = False) -> None:
        client = self._get_client()
        await self._call(
            "remove",
            container_id,
            self._config.container_remove_timeout,
            lambda: client.containers.get(container_id).remove(force=force),
        )

    async def inspect(self, name: str) -> Optional[ContainerInfo]:
        client = self._get_client()
        # The name filter is a regex match on "/<name>"; anchor it and then
        # compare exactly since Docker also matches on substrings.
        containers: List[Container] = await self._call(
            "inspect",
            name,
            self._config.container_inspect_timeout,
            client.containers.list,
            all=True,
            filters={"name": f"^/{re.escape(name)}$"},
        )
        for container in containers:
            if container.name == name:
                return _to_info(container)
        return None

    async def list_by_label(self, key: str, value: str) -> List[ContainerInfo]:
        client = self._get_client()
        containers: List[Container] = await self._call(
            "list",
            f"{key}={value}",
            self._config.container_inspect_timeout,
            client.containers.list,
            all=True,
            filters={"label": f"{key}={value}"},
        )
        return [_to_info(c) for c in containers]

    async def pull(self, image: str) -> None:
        client = self._get_client()
        logger.info("Pulling image", image=image)
        try:
            await self._call(
                "pull", image, self._config.image_pull_timeout, client.images.pull, image
            )
        except ContainerNotFoundError as e:
            raise ContainerOperationError("pull", image, f"image not found: {image}") from e

    async def image_exists(self, image: str) -> bool:
        client = self._get_client()

        def _exists() -> bool:
            try:
                client.images.get(image)
                return True
            except ImageNotFound:
                return False

        return await self._call(
            "inspect", image, self._config.container_inspect_timeout, _exists
        )

    async def wait(self, container_id: str, timeout: Optional[float] = None) -> int:
        client = self._get_client()
        deadline = timeout if timeout is not None else self._config.container_exec_timeout

        def _wait() -> int:
            result = client.containers.get(container_id).wait(timeout=deadline)
            return int(result.get("StatusCode", -1))

        return await self._call("wait", container_id, deadline, _wait)

    async def exec(
        self,
        container_id: str,
        command: Sequence[str],
        user: Optional[str] = None,
    ) -> ExecResult:
        client = self._get_client()

        def _exec() -> ExecResult:
            container = client.containers.get(container_id)
            exit_code, output = container.exec_run(list(command), user=user or "")
            if isinstance(output, bytes):
                output = output.decode("utf-8", errors="replace")
            return ExecResult(
                exit_code=exit_code if exit_code is not None else -1,
                output=output or "",
            )

        return await self._call(
            "exec", container_id, self._config.container_exec_timeout, _exec
        )

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Docker client", error=str(e))
            self._client = None


def _port_bindings(
    mappings: Sequence[PortMapping],
) -> Dict[str, Union[int, List[int]]]:
    """Translate port mappings into the SDK's ``ports`` argument.

    Several host ports may forward to the same container port, in which case
    the SDK expects a list.
    """
    bindings: Dict[str, Union[int, List[int]]] = {}
    for mapping in mappings:
        key = f"{mapping.container_port}/tcp"
        existing = bindings.get(key)
        if existing is None:
            bindings[key] = mapping.host_port
        elif isinstance(existing, list):
            existing.append(mapping.host_port)
        else:
            bindings[key] = [existing, mapping.host_port]
    return bindings


def _to_info(container: Container) -> ContainerInfo:
    attrs = container.attrs or {}
    return ContainerInfo(
        id=container.id,
        name=container.name,
        status=map_container_state(container.status),
        labels=dict(container.labels or {}),
        image=(attrs.get("Config") or {}).get("Image", ""),
    )
