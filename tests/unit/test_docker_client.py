"""Unit tests for DockerRuntimeClient."""

import time
from unittest.mock import MagicMock, patch

import pytest
from docker.errors import APIError, DockerException, ImageNotFound, NotFound
from requests.exceptions import ConnectionError as RequestsConnectionError

from reactor.config import RuntimeConfig
from reactor.models.container import (
    ContainerBlueprint,
    ContainerStatus,
    MountSpec,
    PortMapping,
)
from reactor.models.errors import (
    ContainerConflictError,
    ContainerNotFoundError,
    ContainerOperationError,
    EngineUnavailableError,
    OperationTimeoutError,
)
from reactor.services.runtime.docker_client import DockerRuntimeClient, _port_bindings
from reactor.services.runtime.utils import map_container_state


def api_error(status_code: int, explanation: str = "boom") -> APIError:
    response = MagicMock()
    response.status_code = status_code
    return APIError("engine error", response=response, explanation=explanation)


def fake_container(name="reactor-cam-app-1234abcd", status="running", labels=None):
    container = MagicMock()
    container.id = "f" * 64
    container.name = name
    container.status = status
    container.labels = labels or {"com.reactor.managed": "true"}
    container.attrs = {"Config": {"Image": "ghcr.io/dyluth/reactor/base:latest"}}
    return container


@pytest.fixture
def docker_client():
    return MagicMock()


@pytest.fixture
def client(docker_client):
    return DockerRuntimeClient(client=docker_client, config=RuntimeConfig())


@pytest.fixture
def blueprint():
    return ContainerBlueprint(
        name="reactor-cam-app-1234abcd",
        image="ghcr.io/dyluth/reactor/base:latest",
        command=("/bin/bash",),
        working_dir="/workspace",
        user="claude",
        environment=("REACTOR_DOCKER_HOST_INTEGRATION=true",),
        mounts=(MountSpec(source="/home/cam/app", target="/workspace"),),
        port_mappings=(PortMapping(8080, 80), PortMapping(9229, 9229)),
        network_mode="bridge",
        labels=(("com.reactor.managed", "true"),),
    )


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_passes_blueprint(self, client, docker_client, blueprint):
        docker_client.containers.create.return_value = MagicMock(id="abc123")

        container_id = await client.create(blueprint)

        assert container_id == "abc123"
        kwargs = docker_client.containers.create.call_args.kwargs
        assert kwargs["name"] == blueprint.name
        assert kwargs["image"] == blueprint.image
        assert kwargs["command"] == ["/bin/bash"]
        assert kwargs["user"] == "claude"
        assert kwargs["working_dir"] == "/workspace"
        assert kwargs["environment"] == ["REACTOR_DOCKER_HOST_INTEGRATION=true"]
        assert kwargs["ports"] == {"80/tcp": 8080, "9229/tcp": 9229}
        assert kwargs["labels"] == {"com.reactor.managed": "true"}
        assert kwargs["network_mode"] == "bridge"
        assert kwargs["tty"] is True and kwargs["stdin_open"] is True

        mount = kwargs["mounts"][0]
        assert mount["Source"] == "/home/cam/app"
        assert mount["Target"] == "/workspace"
        assert mount["Type"] == "bind"

    @pytest.mark.asyncio
    async def test_name_conflict_translated(self, client, docker_client, blueprint):
        docker_client.containers.create.side_effect = api_error(409, "Conflict")

        with pytest.raises(ContainerConflictError):
            await client.create(blueprint)

    @pytest.mark.asyncio
    async def test_other_api_error_translated(self, client, docker_client, blueprint):
        docker_client.containers.create.side_effect = api_error(500, "no space left")

        with pytest.raises(ContainerOperationError, match="no space left") as exc_info:
            await client.create(blueprint)
        assert not isinstance(exc_info.value, ContainerConflictError)


class TestPortBindings:
    def test_empty(self):
        assert _port_bindings(()) == {}

    def test_shared_container_port_becomes_list(self):
        bindings = _port_bindings(
            (PortMapping(8080, 80), PortMapping(8081, 80), PortMapping(8082, 80))
        )
        assert bindings == {"80/tcp": [8080, 8081, 8082]}


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start(self, client, docker_client):
        container = MagicMock()
        docker_client.containers.get.return_value = container

        await client.start("abc")

        docker_client.containers.get.assert_called_with("abc")
        container.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_stop_uses_grace_period(self, docker_client):
        client = DockerRuntimeClient(
            client=docker_client, config=RuntimeConfig(stop_grace_period=3)
        )
        container = MagicMock()
        docker_client.containers.get.return_value = container

        await client.stop("abc")

        container.stop.assert_called_once_with(timeout=3)

    @pytest.mark.asyncio
    async def test_remove_force(self, client, docker_client):
        container = MagicMock()
        docker_client.containers.get.return_value = container

        await client.remove("abc", force=True)

        container.remove.assert_called_once_with(force=True)

    @pytest.mark.asyncio
    async def test_missing_container_translated(self, client, docker_client):
        docker_client.containers.get.side_effect = NotFound("no such container")

        with pytest.raises(ContainerNotFoundError):
            await client.remove("abc")

    @pytest.mark.asyncio
    async def test_wait_returns_status_code(self, client, docker_client):
        docker_client.containers.get.return_value.wait.return_value = {"StatusCode": 2}
        assert await client.wait("abc", timeout=5) == 2

    @pytest.mark.asyncio
    async def test_exec_decodes_output(self, client, docker_client):
        docker_client.containers.get.return_value.exec_run.return_value = (1, b"nope\n")

        result = await client.exec("abc", ["false"], user="claude")

        assert result.exit_code == 1
        assert result.output == "nope\n"
        assert not result.ok
        docker_client.containers.get.return_value.exec_run.assert_called_once_with(
            ["false"], user="claude"
        )


class TestInspect:
    @pytest.mark.asyncio
    async def test_exact_name_match(self, client, docker_client):
        docker_client.containers.list.return_value = [
            fake_container(name="reactor-cam-app-1234abcd-old"),
            fake_container(name="reactor-cam-app-1234abcd", status="exited"),
        ]

        info = await client.inspect("reactor-cam-app-1234abcd")

        assert info.name == "reactor-cam-app-1234abcd"
        assert info.status == ContainerStatus.STOPPED
        assert info.image == "ghcr.io/dyluth/reactor/base:latest"
        filters = docker_client.containers.list.call_args.kwargs["filters"]
        assert filters == {"name": "^/reactor\\-cam\\-app\\-1234abcd$"}

    @pytest.mark.asyncio
    async def test_absent_returns_none(self, client, docker_client):
        docker_client.containers.list.return_value = []
        assert await client.inspect("reactor-cam-app-1234abcd") is None

    @pytest.mark.asyncio
    async def test_list_by_label(self, client, docker_client):
        docker_client.containers.list.return_value = [fake_container()]

        infos = await client.list_by_label("com.reactor.workspace.instance", "abc")

        assert [i.status for i in infos] == [ContainerStatus.RUNNING]
        assert docker_client.containers.list.call_args.kwargs == {
            "all": True,
            "filters": {"label": "com.reactor.workspace.instance=abc"},
        }


class TestImages:
    @pytest.mark.asyncio
    async def test_image_exists(self, client, docker_client):
        assert await client.image_exists("alpine:latest") is True

    @pytest.mark.asyncio
    async def test_image_missing(self, client, docker_client):
        docker_client.images.get.side_effect = ImageNotFound("missing")
        assert await client.image_exists("alpine:latest") is False

    @pytest.mark.asyncio
    async def test_pull_missing_image(self, client, docker_client):
        docker_client.images.pull.side_effect = NotFound("manifest unknown")
        with pytest.raises(ContainerOperationError, match="image not found"):
            await client.pull("does/not:exist")


class TestEngineErrors:
    @pytest.mark.asyncio
    async def test_health_ok(self, client, docker_client):
        await client.health()
        docker_client.ping.assert_called_once()

    @pytest.mark.asyncio
    async def test_health_connection_error(self, client, docker_client):
        docker_client.ping.side_effect = RequestsConnectionError("refused")
        with pytest.raises(EngineUnavailableError):
            await client.health()

    @pytest.mark.asyncio
    async def test_from_env_failure(self):
        with patch(
            "reactor.services.runtime.docker_client.docker.from_env",
            side_effect=DockerException("no socket"),
        ):
            client = DockerRuntimeClient(config=RuntimeConfig())
            with pytest.raises(EngineUnavailableError):
                await client.health()

    @pytest.mark.asyncio
    async def test_connection_error_during_call(self, client, docker_client):
        docker_client.containers.list.side_effect = RequestsConnectionError("refused")
        with pytest.raises(EngineUnavailableError):
            await client.inspect("x")

    @pytest.mark.asyncio
    async def test_deadline_exceeded(self, docker_client):
        client = DockerRuntimeClient(
            client=docker_client, config=RuntimeConfig(container_inspect_timeout=0.05)
        )
        docker_client.containers.list.side_effect = lambda **kwargs: time.sleep(0.5)

        with pytest.raises(OperationTimeoutError) as exc_info:
            await client.inspect("slow")
        assert exc_info.value.error_type == "timeout"

    def test_close(self, client, docker_client):
        client.close()
        docker_client.close.assert_called_once()
        assert client._client is None


@pytest.mark.parametrize(
    "state,expected",
    [
        ("running", ContainerStatus.RUNNING),
        ("paused", ContainerStatus.RUNNING),
        ("restarting", ContainerStatus.RUNNING),
        ("created", ContainerStatus.STOPPED),
        ("exited", ContainerStatus.STOPPED),
        ("dead", ContainerStatus.STOPPED),
        ("", ContainerStatus.STOPPED),
    ],
)
def test_map_container_state(state, expected):
    assert map_container_state(state) == expected
