"""Pytest configuration and shared fixtures."""

import os
import shutil
import tempfile
import textwrap
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

# Keep the developer's environment from leaking into settings-derived defaults.
os.environ.pop("REACTOR_ISOLATION_PREFIX", None)
os.environ.setdefault("REACTOR_LOG_LEVEL", "WARNING")

from reactor.config import RuntimeConfig
from reactor.models.container import ResolvedConfig
from reactor.services.blueprint import BlueprintBuilder
from reactor.services.cleanup import sanitize_scope_token
from reactor.services.identity import generate_project_hash
from reactor.services.orchestrator import ContainerOrchestrator
from reactor.services.resolver import DefaultConfigResolver
from reactor.services.runtime.memory import InMemoryRuntimeClient
from reactor.services.workspace import WorkspaceEngine

TEST_IMAGE = "ghcr.io/dyluth/reactor/base:latest"
TEST_ACCOUNT = "cam"


@pytest.fixture
def runtime():
    """In-memory runtime with the default image already present."""
    return InMemoryRuntimeClient(images={TEST_IMAGE})


@pytest.fixture
def builder():
    return BlueprintBuilder()


@pytest.fixture
def orchestrator(runtime, builder):
    return ContainerOrchestrator(runtime, builder)


@pytest.fixture
def runtime_config():
    return RuntimeConfig(workspace_max_parallel=4, workspace_operation_timeout=None)


@pytest.fixture
def resolver():
    return DefaultConfigResolver(TEST_IMAGE, TEST_ACCOUNT)


@pytest.fixture
def workspace_engine(orchestrator, resolver, runtime_config):
    return WorkspaceEngine(orchestrator, resolver, runtime_config)


@pytest.fixture
def project_dir(tmp_path):
    project = tmp_path / "my-project"
    project.mkdir()
    return project


@pytest.fixture
def resolved_config(project_dir):
    """ResolvedConfig for a project directory on disk."""
    return ResolvedConfig(
        account=TEST_ACCOUNT,
        project_root=str(project_dir),
        project_hash=generate_project_hash(project_dir),
        image=TEST_IMAGE,
    )


@pytest.fixture
def write_workspace(tmp_path) -> Callable[..., Path]:
    """Factory writing a workspace file plus its service directories.

    ``services`` maps a service name to a definition dict; each relative path
    that does not escape the workspace is created as a directory.
    """

    def _write(
        services: Optional[Dict[str, dict]] = None,
        version: str = '"1"',
        file_name: str = "reactor-workspace.yml",
        body: Optional[str] = None,
        create_dirs: bool = True,
    ) -> Path:
        root = tmp_path / "workspace"
        root.mkdir(exist_ok=True)
        workspace_file = root / file_name

        if body is not None:
            workspace_file.write_text(textwrap.dedent(body))
            return workspace_file

        services = services if services is not None else {
            "api": {"path": "./api"},
            "web": {"path": "./web"},
        }
        lines = [f"version: {version}", "services:"]
        for name, definition in services.items():
            lines.append(f"  {name}:")
            for key, value in definition.items():
                lines.append(f"    {key}: {value}")
            path = definition.get("path")
            if create_dirs and path and not path.startswith(("/", "..")):
                (root / path).mkdir(parents=True, exist_ok=True)

        workspace_file.write_text("\n".join(lines) + "\n")
        return workspace_file

    return _write


@pytest.fixture
def scoped_temp_dir(request):
    """A directory under the system temp dir that carries the test's scope token."""
    token = sanitize_scope_token(request.node.name)
    base = Path(tempfile.mkdtemp(prefix="reactor-test-"))
    scoped = base / token
    scoped.mkdir()
    yield token, scoped
    shutil.rmtree(base, ignore_errors=True)
