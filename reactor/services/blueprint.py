"""Container blueprint construction.

Turns a ResolvedConfig plus mount and port intent into an immutable
ContainerBlueprint. Building twice from the same input yields equal
blueprints, which the orchestrator relies on for idempotent recovery.
"""

import os
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from ..models.container import (
    ContainerBlueprint,
    MountSpec,
    NamingMode,
    PortMapping,
    ResolvedConfig,
)
from ..models.errors import ConfigurationError
from .identity import generate_container_name
from .labels import MANAGED_LABEL

logger = structlog.get_logger(__name__)

DEFAULT_COMMAND: Tuple[str, ...] = ("/bin/bash",)
DEFAULT_WORKING_DIR = "/workspace"
DEFAULT_USER = "claude"
DEFAULT_NETWORK_MODE = "bridge"

DOCKER_SOCKET_PATH = "/var/run/docker.sock"
HOST_INTEGRATION_ENV = "REACTOR_DOCKER_HOST_INTEGRATION=true"

_MIN_PORT = 1
_MAX_PORT = 65535


class BlueprintBuilder:
    """Builds ContainerBlueprints with a fixed isolation prefix."""

    def __init__(self, isolation_prefix: Optional[str] = None):
        self._isolation_prefix = isolation_prefix

    @property
    def isolation_prefix(self) -> Optional[str]:
        return self._isolation_prefix

    def container_name(
        self,
        resolved: ResolvedConfig,
        discovery: bool = False,
        service: Optional[str] = None,
    ) -> str:
        """Deterministic container name for a resolved project."""
        return generate_container_name(
            resolved.account,
            resolved.project_root,
            resolved.project_hash,
            NamingMode.DISCOVERY if discovery else NamingMode.NORMAL,
            isolation_prefix=self._isolation_prefix,
            service=service,
        )

    def build(
        self,
        resolved: ResolvedConfig,
        mounts: Sequence[MountSpec] = (),
        discovery: bool = False,
        host_integration: bool = False,
        port_mappings: Sequence[PortMapping] = (),
        labels: Optional[Dict[str, str]] = None,
        service: Optional[str] = None,
    ) -> ContainerBlueprint:
        """Create a container blueprint.

        Args:
            resolved: Resolved project configuration
            mounts: Bind mounts to apply (ignored in discovery mode)
            discovery: Produce a clean container with no mounts at all
            host_integration: Expose the host Docker socket to the container
            port_mappings: Host to container port forwards
            labels: Extra labels, merged over the managed label
            service: Workspace service name, if any

        Returns:
            Immutable ContainerBlueprint

        Raises:
            ConfigurationError: If the flag combination or a port is invalid
        """
        if discovery and port_mappings:
            raise ConfigurationError(
                "discovery mode cannot be used with port forwarding",
                field="port_mappings",
            )
        if discovery and host_integration:
            raise ConfigurationError(
                "discovery mode cannot be used with docker host integration",
                field="host_integration",
            )
        for mapping in port_mappings:
            _validate_port_mapping(mapping)

        final_mounts: List[MountSpec] = [] if discovery else list(mounts)
        environment: List[str] = []

        if host_integration:
            final_mounts.append(
                MountSpec(source=DOCKER_SOCKET_PATH, target=DOCKER_SOCKET_PATH)
            )
            environment.append(HOST_INTEGRATION_ENV)

        merged_labels = {MANAGED_LABEL: "true"}
        merged_labels.update(labels or {})

        name = self.container_name(resolved, discovery=discovery, service=service)
        logger.debug(
            "Built container blueprint",
            name=name,
            image=resolved.image,
            mounts=len(final_mounts),
            ports=[str(p) for p in port_mappings],
            discovery=discovery,
            host_integration=host_integration,
        )

        return ContainerBlueprint(
            name=name,
            image=resolved.image,
            command=DEFAULT_COMMAND,
            working_dir=DEFAULT_WORKING_DIR,
            user=resolved.remote_user or DEFAULT_USER,
            environment=tuple(environment),
            mounts=tuple(final_mounts),
            port_mappings=tuple(port_mappings),
            network_mode=DEFAULT_NETWORK_MODE,
            labels=tuple(sorted(merged_labels.items())),
        )


def build_state_mounts(resolved: ResolvedConfig) -> Tuple[MountSpec, ...]:
    """Default mounts for a project: provider state directories, then the project root.

    Provider mounts are only produced when the resolver supplied a project
    configuration directory to hold them.
    """
    mounts: List[MountSpec] = []

    if resolved.project_config_dir:
        for source, target in resolved.provider_mounts:
            mounts.append(
                MountSpec(
                    source=os.path.join(resolved.project_config_dir, source),
                    target=target,
                )
            )

    mounts.append(MountSpec(source=resolved.project_root, target=DEFAULT_WORKING_DIR))
    return tuple(mounts)


def parse_port_mappings(port_strings: Iterable[str]) -> List[PortMapping]:
    """Parse ``host:container`` strings into PortMappings.

    Raises:
        ConfigurationError: On a malformed entry or a port outside 1-65535
    """
    mappings: List[PortMapping] = []

    for port_str in port_strings:
        parts = port_str.split(":")
        if len(parts) != 2:
            raise ConfigurationError(
                f"invalid port mapping format '{port_str}': expected 'host:container'",
                field="ports",
            )

        host_str, container_str = parts
        try:
            host_port = int(host_str)
        except ValueError:
            raise ConfigurationError(
                f"invalid host port '{host_str}': must be a number", field="ports"
            ) from None
        try:
            container_port = int(container_str)
        except ValueError:
            raise ConfigurationError(
                f"invalid container port '{container_str}': must be a number",
                field="ports",
            ) from None

        mapping = PortMapping(host_port=host_port, container_port=container_port)
        _validate_port_mapping(mapping)
        mappings.append(mapping)

    return mappings


def merge_port_mappings(
    base: Sequence[PortMapping], overrides: Sequence[PortMapping]
) -> Tuple[PortMapping, ...]:
    """Merge two port lists; an override replaces a base entry with the same host port."""
    result = list(base)

    for override in overrides:
        for i, existing in enumerate(result):
            if existing.host_port == override.host_port:
                result[i] = override
                break
        else:
            result.append(override)

    return tuple(result)


def _validate_port_mapping(mapping: PortMapping) -> None:
    if not _MIN_PORT <= mapping.host_port <= _MAX_PORT:
        raise ConfigurationError(
            f"host port {mapping.host_port} is out of valid range (1-65535)",
            field="ports",
        )
    if not _MIN_PORT <= mapping.container_port <= _MAX_PORT:
        raise ConfigurationError(
            f"container port {mapping.container_port} is out of valid range (1-65535)",
            field="ports",
        )
