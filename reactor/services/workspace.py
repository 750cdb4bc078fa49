"""Multi-service workspaces.

A workspace file (``reactor-workspace.yml``) declares several services, each
a directory under the workspace root. This module finds and validates that
file and fans lifecycle operations out over the services concurrently,
collecting one ServiceResult per service.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import structlog
import yaml

from ..config import RuntimeConfig, settings
from ..models.container import ContainerInfo, ContainerStatus, PortMapping, ResolvedConfig
from ..models.errors import (
    ConfigurationError,
    ContainerNotFoundError,
    ErrorResponse,
    ErrorType,
    ReactorException,
    WorkspaceValidationError,
)
from ..models.workspace import (
    ServiceOutcome,
    ServiceResult,
    ServiceStatus,
    Workspace,
    WorkspaceReport,
    WorkspaceService,
)
from .blueprint import build_state_mounts, merge_port_mappings
from .identity import generate_workspace_hash, validate_account
from .labels import WORKSPACE_INSTANCE_LABEL, WORKSPACE_SERVICE_LABEL, workspace_labels
from .orchestrator import ContainerOrchestrator, DownOutcome, UpAction, UpRequest
from .resolver import ConfigResolver

logger = structlog.get_logger(__name__)

WORKSPACE_FILE_NAMES = ("reactor-workspace.yml", "reactor-workspace.yaml")
REQUIRED_VERSION = "1"

_UP_OUTCOMES = {
    UpAction.REUSED: ServiceOutcome.REUSED,
    UpAction.STARTED: ServiceOutcome.STARTED,
    UpAction.CREATED: ServiceOutcome.CREATED,
    UpAction.RECREATED: ServiceOutcome.RECREATED,
}

PathLike = Union[str, os.PathLike]


# ============================================================================
# Workspace file discovery and validation
# ============================================================================


def find_workspace_file(directory: Optional[PathLike] = None) -> Optional[Path]:
    """Locate the workspace file in ``directory`` (default: the current directory).

    ``.yml`` wins over ``.yaml``. Returns None when neither exists.
    """
    base = Path(os.path.abspath(directory if directory is not None else os.getcwd()))
    for file_name in WORKSPACE_FILE_NAMES:
        candidate = base / file_name
        if candidate.is_file():
            return candidate
    return None


def parse_workspace_file(path: PathLike) -> Workspace:
    """Read and validate a workspace file.

    Args:
        path: Path to ``reactor-workspace.yml``

    Returns:
        A fully validated Workspace; nothing partial is ever returned

    Raises:
        WorkspaceValidationError: If the file is unreadable or invalid. The
            offending service is named when the problem is local to one.
    """
    file_path = Path(os.path.abspath(path))
    try:
        raw = file_path.read_text(encoding="utf-8")
    except OSError as e:
        raise WorkspaceValidationError(
            f"failed to read workspace file {file_path}: {e}", field="file"
        ) from e

    try:
        document = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise WorkspaceValidationError(
            f"failed to parse workspace YAML: {e}", field="file"
        ) from e

    if not isinstance(document, dict):
        raise WorkspaceValidationError(
            "workspace file must contain a mapping with 'version' and 'services'",
            field="file",
        )

    version = _normalize_version(document.get("version"))
    if version != REQUIRED_VERSION:
        raise WorkspaceValidationError(
            f"unsupported workspace version '{document.get('version')}', "
            f"expected '{REQUIRED_VERSION}'",
            field="version",
        )

    raw_services = document.get("services")
    if raw_services is None or (isinstance(raw_services, dict) and not raw_services):
        raise WorkspaceValidationError(
            "workspace must define at least one service", field="services"
        )
    if not isinstance(raw_services, dict):
        raise WorkspaceValidationError(
            "'services' must be a mapping of service name to definition",
            field="services",
        )

    directory = file_path.parent
    services: Dict[str, WorkspaceService] = {}
    for raw_name, definition in raw_services.items():
        name = str(raw_name)
        services[name] = _validate_service(name, definition, directory)

    return Workspace(
        version=version,
        file_path=file_path,
        directory=directory,
        workspace_hash=generate_workspace_hash(file_path),
        services=services,
    )


def load_workspace(location: Optional[PathLike] = None) -> Workspace:
    """Find and parse a workspace from a file path or a directory.

    Raises:
        WorkspaceValidationError: If no workspace file can be found
    """
    if location is not None and Path(location).suffix:
        file_path = Path(location)
        if not file_path.exists():
            raise WorkspaceValidationError(
                f"workspace file not found: {file_path}", field="file"
            )
        return parse_workspace_file(file_path)

    found = find_workspace_file(location)
    if found is None:
        where = location if location is not None else "current directory"
        raise WorkspaceValidationError(
            f"no {' or '.join(WORKSPACE_FILE_NAMES)} found in {where}", field="file"
        )
    return parse_workspace_file(found)


def _normalize_version(value: Any) -> Optional[str]:
    # "version: 1" arrives from YAML as an int
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, str)):
        return str(value).strip()
    return None


def _validate_service(name: str, definition: Any, directory: Path) -> WorkspaceService:
    if not name.strip():
        raise WorkspaceValidationError("service names must not be empty", field="services")
    if not isinstance(definition, dict):
        raise WorkspaceValidationError(
            f"service '{name}' must be a mapping with a 'path'", service=name
        )

    declared = definition.get("path")
    if not isinstance(declared, str) or not declared.strip():
        raise WorkspaceValidationError(f"service '{name}' must define a path", service=name)

    account = definition.get("account")
    if account is not None and not isinstance(account, str):
        raise WorkspaceValidationError(
            f"service '{name}' account must be a string", service=name
        )
    account = (account or "").strip() or None
    if account is not None:
        try:
            validate_account(account)
        except ConfigurationError as e:
            raise WorkspaceValidationError(
                f"service '{name}' has an invalid account: {e.message}", service=name
            ) from e

    resolved = os.path.normpath(os.path.join(str(directory), declared))
    if not _is_within(resolved, str(directory)) or not _is_within(
        os.path.realpath(resolved), os.path.realpath(str(directory))
    ):
        raise WorkspaceValidationError(
            f"service '{name}' path '{declared}' must be within the workspace directory",
            service=name,
        )

    if not os.path.exists(resolved):
        raise WorkspaceValidationError(
            f"service '{name}' path '{declared}' does not exist", service=name
        )
    if not os.path.isdir(resolved):
        raise WorkspaceValidationError(
            f"service '{name}' path '{declared}' is not a directory", service=name
        )

    return WorkspaceService(
        name=name,
        path=declared,
        resolved_path=Path(resolved),
        account=account,
    )


def _is_within(path: str, root: str) -> bool:
    """True if ``path`` equals ``root`` or lies below it."""
    try:
        return os.path.commonpath([path, root]) == root
    except ValueError:
        return False


# ============================================================================
# Concurrent workspace operations
# ============================================================================


class WorkspaceEngine:
    """Runs up, down, exec and list across the services of a workspace."""

    def __init__(
        self,
        orchestrator: ContainerOrchestrator,
        resolver: ConfigResolver,
        config: Optional[RuntimeConfig] = None,
    ):
        self._orchestrator = orchestrator
        self._resolver = resolver
        self._config = config or settings.runtime

    async def up(
        self,
        workspace: Workspace,
        services: Optional[Sequence[str]] = None,
        discovery: bool = False,
        host_integration: bool = False,
        port_mappings: Sequence[PortMapping] = (),
    ) -> WorkspaceReport:
        """Bring the selected services (default: all) up concurrently.

        ``port_mappings`` are merged over every selected service's forward
        ports; a caller mapping replaces a forwarded one on the same host port.

        Raises:
            ConfigurationError: Unknown service names, ports combined with
                discovery mode, or a host port claimed by more than one
                service; raised before any engine call
            EngineUnavailableError: If the engine is unreachable
        """
        if discovery and port_mappings:
            raise ConfigurationError(
                "port mappings cannot be used in discovery mode", field="port_mappings"
            )

        selected = self._select(workspace, services)
        resolved = {s.name: self._resolve(s) for s in selected}
        if not discovery:
            _check_port_conflicts(resolved, port_mappings)

        async def _up(service: WorkspaceService) -> ServiceResult:
            config = resolved[service.name]
            result = await self._orchestrator.up(
                UpRequest(
                    resolved=config,
                    mounts=() if discovery else build_state_mounts(config),
                    discovery=discovery,
                    host_integration=host_integration,
                    port_mappings=()
                    if discovery
                    else merge_port_mappings(config.forward_ports, port_mappings),
                    labels=workspace_labels(workspace.workspace_hash, service.name),
                    service=service.name,
                )
            )
            return ServiceResult(
                service=service.name,
                ok=True,
                outcome=_UP_OUTCOMES[result.action],
                container_name=result.container.name,
                container_id=result.container.id,
            )

        names = {
            s.name: self._orchestrator.builder.container_name(
                resolved[s.name], discovery=discovery, service=s.name
            )
            for s in selected
        }
        return await self._fan_out("up", workspace, selected, _up, names)

    async def down(
        self,
        workspace: Workspace,
        services: Optional[Sequence[str]] = None,
    ) -> WorkspaceReport:
        """Stop and remove the selected services' containers.

        Containers are found by their workspace labels, so normal and
        discovery containers of a service are both removed. A service with no
        container is reported as ``already_absent``.
        """
        selected = self._select(workspace, services)

        async def _down(service: WorkspaceService) -> ServiceResult:
            names = sorted(c.name for c in await self._service_containers(workspace, service))
            if not names:
                logger.debug("No container for service", service=service.name)
                return ServiceResult(
                    service=service.name, ok=True, outcome=ServiceOutcome.ALREADY_ABSENT
                )

            outcome = ServiceOutcome.ALREADY_ABSENT
            container_id = None
            first_error: Optional[ReactorException] = None
            for name in names:
                try:
                    result = await self._orchestrator.down(name)
                except ReactorException as e:
                    logger.warning(
                        "Failed to bring container down",
                        service=service.name,
                        name=name,
                        error=e.message,
                    )
                    first_error = first_error or e
                    continue
                if result.outcome is DownOutcome.REMOVED:
                    outcome = ServiceOutcome.REMOVED
                    container_id = container_id or result.container_id
            if first_error is not None:
                raise first_error
            return ServiceResult(
                service=service.name,
                ok=True,
                outcome=outcome,
                container_name=", ".join(names),
                container_id=container_id,
            )

        return await self._fan_out("down", workspace, selected, _down)

    async def exec(
        self,
        workspace: Workspace,
        command: Sequence[str],
        services: Optional[Sequence[str]] = None,
        user: Optional[str] = None,
    ) -> WorkspaceReport:
        """Run ``command`` in each selected service's running container.

        The container is found by its workspace labels, so a service brought
        up in discovery mode is reachable too. A command that exits non-zero
        is reported as a failed result carrying its exit code and output.
        """
        if not command:
            raise ConfigurationError("a command is required", field="command")

        selected = self._select(workspace, services)
        names = {
            s.name: self._orchestrator.builder.container_name(
                self._resolve(s), service=s.name
            )
            for s in selected
        }

        async def _exec(service: WorkspaceService) -> ServiceResult:
            name = await self._exec_target(workspace, service, names[service.name])
            result = await self._orchestrator.exec(name, command, user=user)
            return ServiceResult(
                service=service.name,
                ok=result.ok,
                outcome=ServiceOutcome.EXECUTED,
                container_name=name,
                exit_code=result.exit_code,
                output=result.output,
            )

        return await self._fan_out("exec", workspace, selected, _exec, names)

    async def list_services(self, workspace: Workspace) -> List[ServiceStatus]:
        """Lifecycle state of every service, without changing anything."""
        selected = self._select(workspace, None)
        await self._orchestrator.ensure_engine()
        semaphore = asyncio.Semaphore(self._config.workspace_max_parallel)

        async def _status(service: WorkspaceService) -> ServiceStatus:
            config = self._resolve(service)
            name = self._orchestrator.builder.container_name(config, service=service.name)
            async with semaphore:
                info = await self._orchestrator.state(name)
            return ServiceStatus(
                service=service.name,
                path=service.path,
                account=config.account,
                container_name=name,
                status=info.status.value,
                container_id=info.id or None,
            )

        return list(await asyncio.gather(*(_status(s) for s in selected)))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select(
        self, workspace: Workspace, services: Optional[Sequence[str]]
    ) -> List[WorkspaceService]:
        unknown = [name for name in services or () if name not in workspace.services]
        if unknown:
            raise ConfigurationError(
                f"service(s) not found in workspace: {', '.join(unknown)}",
                field="services",
            )
        # Preserve order, drop duplicates
        names = list(dict.fromkeys(services or ()))
        return workspace.select(names)

    def _resolve(self, service: WorkspaceService) -> ResolvedConfig:
        return self._resolver.resolve(str(service.resolved_path), account=service.account)

    async def _service_containers(
        self, workspace: Workspace, service: WorkspaceService
    ) -> List[ContainerInfo]:
        owned = await self._orchestrator.runtime.list_by_label(
            WORKSPACE_INSTANCE_LABEL, workspace.workspace_hash
        )
        return [c for c in owned if c.labels.get(WORKSPACE_SERVICE_LABEL) == service.name]

    async def _exec_target(
        self, workspace: Workspace, service: WorkspaceService, preferred: str
    ) -> str:
        """Name of the running container to exec in, preferring the normal one."""
        containers = await self._service_containers(workspace, service)
        if not containers:
            raise ContainerNotFoundError(
                preferred,
                f"container for service '{service.name}' not found, "
                f"start it first with 'workspace up {service.name}'",
            )

        running = sorted(c.name for c in containers if c.status is ContainerStatus.RUNNING)
        if not running:
            raise ContainerNotFoundError(
                preferred,
                f"container for service '{service.name}' is not running, "
                f"start it first with 'workspace up {service.name}'",
            )
        return preferred if preferred in running else running[0]

    async def _fan_out(
        self,
        operation: str,
        workspace: Workspace,
        selected: List[WorkspaceService],
        func: Callable[[WorkspaceService], Awaitable[ServiceResult]],
        names: Optional[Dict[str, str]] = None,
    ) -> WorkspaceReport:
        """Run ``func`` once per service, bounded and isolated.

        Every task settles before the results are merged; one failure never
        cancels its siblings. Tasks still pending at the overall deadline are
        cancelled and reported as such.
        """
        names = names or {}
        await self._orchestrator.ensure_engine()

        semaphore = asyncio.Semaphore(self._config.workspace_max_parallel)
        timeout = self._config.workspace_operation_timeout

        async def _bounded(service: WorkspaceService) -> ServiceResult:
            async with semaphore:
                logger.debug("Service operation started", operation=operation, service=service.name)
                return await func(service)

        tasks = {asyncio.ensure_future(_bounded(s)): s for s in selected}
        logger.info(
            "Workspace operation started",
            operation=operation,
            workspace=str(workspace.file_path),
            services=[s.name for s in selected],
        )

        try:
            _, pending = await asyncio.wait(tasks, timeout=timeout)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

        results: Dict[str, ServiceResult] = {}
        for task, service in tasks.items():
            container_name = names.get(service.name)
            if task.cancelled():
                results[service.name] = ServiceResult(
                    service=service.name,
                    ok=False,
                    outcome=ServiceOutcome.CANCELLED,
                    container_name=container_name,
                    error=ErrorResponse(
                        error=_cancel_message(timeout),
                        error_type=ErrorType.CANCELLED,
                    ),
                )
            elif task.exception() is not None:
                results[service.name] = _failure(
                    operation, service.name, container_name, task.exception()
                )
            else:
                results[service.name] = task.result()

        report = WorkspaceReport(
            operation=operation,
            workspace_hash=workspace.workspace_hash,
            results=results,
        )
        logger.info(
            "Workspace operation finished",
            operation=operation,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
        )
        return report


def _failure(
    operation: str,
    service: str,
    container_name: Optional[str],
    exc: BaseException,
) -> ServiceResult:
    if isinstance(exc, ReactorException):
        error = exc.to_response()
        logger.error(
            "Service operation failed",
            operation=operation,
            service=service,
            error=exc.message,
            error_type=exc.error_type,
        )
    else:
        error = ErrorResponse(error=str(exc) or type(exc).__name__, error_type=ErrorType.INTERNAL)
        logger.error(
            "Unexpected error in service operation",
            operation=operation,
            service=service,
            error=str(exc),
            exc_info=exc,
        )
    return ServiceResult(
        service=service,
        ok=False,
        outcome=ServiceOutcome.FAILED,
        container_name=container_name,
        error=error,
    )


def _check_port_conflicts(
    resolved: Dict[str, ResolvedConfig],
    overrides: Sequence[PortMapping] = (),
) -> None:
    claims: Dict[int, List[str]] = {}
    for service_name in sorted(resolved):
        for mapping in resolved[service_name].forward_ports:
            claims.setdefault(mapping.host_port, []).append(service_name)

    # Caller mappings replace forwarded ones on the same host port
    for mapping in overrides:
        if mapping.host_port in claims:
            logger.warning(
                "Port mapping overrides forwarded port",
                host_port=mapping.host_port,
                services=claims[mapping.host_port],
            )
        claims[mapping.host_port] = []

    conflicts = [
        f"port {port} used by services: {', '.join(names)}"
        for port, names in sorted(claims.items())
        if len(names) > 1
    ]
    if conflicts:
        raise ConfigurationError(
            "port conflicts detected: " + "; ".join(conflicts), field="ports"
        )


def _cancel_message(timeout: Optional[float]) -> str:
    if timeout is None:
        return "operation cancelled"
    return f"cancelled after the {timeout:g}s workspace deadline"
