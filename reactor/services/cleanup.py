"""Safety-gated cleanup of container-owned state.

Containers frequently leave root-owned files in bind-mounted directories,
which the invoking user then cannot delete. CleanupGuard removes such
directories: ordinary removal first, and on a permission error a disposable
helper container that deletes the contents with the engine's privileges.

The helper path is only ever taken after the safety gate has confirmed the
target is an absolute path strictly under the system temp directory that
carries the caller's scope token as a full path segment.
"""

import asyncio
import os
import re
import shutil
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from ..config import CleanupConfig, settings
from ..models.container import ContainerBlueprint, MountSpec
from ..models.errors import (
    CleanupError,
    ConfigurationError,
    ContainerNotFoundError,
    OperationTimeoutError,
    ReactorException,
    SafetyGateViolation,
)
from .labels import CLEANUP_SCOPE_LABEL, MANAGED_LABEL
from .runtime.interface import RuntimeClient
from .runtime.utils import run_in_executor

logger = structlog.get_logger(__name__)

HELPER_MOUNT_TARGET = "/work"
# Removes regular and hidden entries; the mount point itself stays.
HELPER_COMMAND = ("sh", "-c", "rm -rf /work/* /work/.[!.]* /work/..?*")

_UNSAFE_TOKEN_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")

PathLike = Union[str, os.PathLike]


def sanitize_scope_token(name: str) -> str:
    """Turn an arbitrary identifier (e.g. a test node id) into one path segment."""
    token = _UNSAFE_TOKEN_CHARS.sub("_", name).strip(".")
    if not token:
        raise ConfigurationError("scope token is empty after sanitisation", field="scope_token")
    return token


@dataclass
class ContainerSweepResult:
    """Outcome of a label or prefix scoped container sweep."""

    removed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class CleanupGuard:
    """Removes container-created state without risking unrelated host data."""

    def __init__(
        self,
        runtime: RuntimeClient,
        config: Optional[CleanupConfig] = None,
        temp_dir: Optional[str] = None,
    ):
        """Initialize the guard.

        Args:
            runtime: Engine used for the helper container and sweeps
            config: Helper image and deadlines, defaults to settings.cleanup
            temp_dir: Root that forced removal is confined to; defaults to
                the system temp directory
        """
        self._runtime = runtime
        self._config = config or settings.cleanup
        self._temp_dir = temp_dir or tempfile.gettempdir()
        self._verbose = self._config.verbose_cleanup

    def _note(self, event: str, **kw) -> None:
        if self._verbose:
            logger.info(event, **kw)
        else:
            logger.debug(event, **kw)

    def check_safe_to_remove(self, path: PathLike, scope_token: str) -> Path:
        """Run the safety gate and return the canonical target.

        Raises:
            SafetyGateViolation: If any check fails
        """
        raw = os.fspath(path)

        if not scope_token or not scope_token.strip():
            raise self._violation(raw, "no scope token was provided")
        if not os.path.isabs(raw):
            raise self._violation(raw, "path is not absolute")

        try:
            resolved = Path(raw).resolve(strict=True)
        except (OSError, RuntimeError) as e:
            raise self._violation(raw, f"path cannot be resolved: {e}") from e

        temp_root = Path(os.path.realpath(self._temp_dir))
        if temp_root not in resolved.parents:
            raise self._violation(raw, f"path is not strictly inside the temp directory {temp_root}")

        segments = resolved.relative_to(temp_root).parts
        if scope_token not in segments:
            raise self._violation(raw, f"path does not contain the scope token '{scope_token}' as a path segment")

        return resolved

    def _violation(self, path: str, reason: str) -> SafetyGateViolation:
        logger.error("Safety gate violation", path=path, reason=reason)
        return SafetyGateViolation(path, reason)

    async def robust_remove_all(self, path: PathLike, scope_token: str) -> None:
        """Remove ``path`` recursively, escalating to the helper on permission errors.

        A path that does not exist counts as removed.

        Raises:
            SafetyGateViolation: If escalation is needed and the gate rejects the path
            CleanupError: If removal fails for any other reason
        """
        try:
            await run_in_executor(_remove_path, os.fspath(path))
            return
        except FileNotFoundError:
            return
        except PermissionError as e:
            self._note("Standard removal hit a permission error, escalating", path=os.fspath(path), error=str(e))
        except OSError as e:
            raise CleanupError(f"standard removal of {os.fspath(path)} failed: {e}") from e

        await self.force_remove_all(path, scope_token)

    async def force_remove_all(self, path: PathLike, scope_token: str) -> None:
        """Remove ``path`` using a disposable helper container.

        The safety gate runs first; nothing is removed if it fails.
        """
        target = self.check_safe_to_remove(path, scope_token)

        await self._runtime.health()
        image = self._config.cleanup_helper_image
        if not await self._runtime.image_exists(image):
            self._note("Pulling cleanup helper image", image=image)
            await self._runtime.pull(image)

        blueprint = ContainerBlueprint(
            name=f"reactor-cleanup-{uuid.uuid4().hex[:12]}",
            image=image,
            command=HELPER_COMMAND,
            working_dir=HELPER_MOUNT_TARGET,
            user="root",
            environment=(),
            mounts=(MountSpec(source=str(target), target=HELPER_MOUNT_TARGET),),
            port_mappings=(),
            network_mode="none",
            labels=tuple(
                sorted({MANAGED_LABEL: "true", CLEANUP_SCOPE_LABEL: scope_token}.items())
            ),
        )

        self._note("Force removing directory with helper container", path=str(target), helper=blueprint.name)
        container_id = await self._runtime.create(blueprint)
        try:
            await self._runtime.start(container_id)
            exit_code = await self._runtime.wait(
                container_id, timeout=self._config.cleanup_helper_timeout
            )
        finally:
            try:
                await self._runtime.remove(container_id, force=True)
            except ReactorException as e:
                logger.warning("Failed to remove cleanup helper", helper=blueprint.name, error=e.message)

        if exit_code != 0:
            raise CleanupError(
                f"cleanup helper for {target} exited with non-zero status {exit_code}"
            )

        try:
            await run_in_executor(_remove_path, str(target))
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CleanupError(f"failed to remove emptied directory {target}: {e}") from e

        self._note("Force removal complete", path=str(target))

    async def cleanup_containers(self, label_key: str, label_value: str) -> ContainerSweepResult:
        """Force-remove every container carrying ``label_key=label_value``.

        Individual failures are recorded and the sweep continues.

        Raises:
            OperationTimeoutError: If the sweep exceeds the scan deadline
        """
        target = f"{label_key}={label_value}"

        async def _sweep() -> ContainerSweepResult:
            containers = await self._runtime.list_by_label(label_key, label_value)
            return await self._remove_all(containers)

        return await self._bounded_sweep(_sweep, target)

    async def cleanup_isolated_containers(self, isolation_prefix: str) -> ContainerSweepResult:
        """Force-remove managed containers whose name carries the isolation prefix."""
        if not isolation_prefix or not isolation_prefix.strip():
            raise ConfigurationError("isolation prefix cannot be empty", field="isolation_prefix")

        async def _sweep() -> ContainerSweepResult:
            managed = await self._runtime.list_by_label(MANAGED_LABEL, "true")
            return await self._remove_all(
                [c for c in managed if c.name.startswith(f"{isolation_prefix}-")]
            )

        return await self._bounded_sweep(_sweep, isolation_prefix)

    async def _bounded_sweep(self, sweep, target: str) -> ContainerSweepResult:
        timeout = self._config.cleanup_scan_timeout
        try:
            result = await asyncio.wait_for(sweep(), timeout)
        except asyncio.TimeoutError:
            raise OperationTimeoutError("clean up containers", target, timeout) from None

        if result.removed or result.failed:
            logger.info(
                "Container sweep finished",
                scope=target,
                removed=len(result.removed),
                failed=len(result.failed),
            )
        return result

    async def _remove_all(self, containers) -> ContainerSweepResult:
        result = ContainerSweepResult()
        for container in containers:
            try:
                await self._runtime.remove(container.id, force=True)
                result.removed.append(container.name)
            except ContainerNotFoundError:
                result.removed.append(container.name)
            except ReactorException as e:
                logger.warning("Failed to remove container", name=container.name, error=e.message)
                result.failed[container.name] = e.message
        return result


def _remove_path(path: str) -> None:
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)
