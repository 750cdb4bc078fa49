"""Deterministic identities for containers and workspaces.

Everything here is a pure function of its arguments: the same inputs always
produce byte-identical output, which is what lets the orchestrator find an
existing container again instead of creating a duplicate. The isolation
prefix is passed in explicitly rather than read from the environment.
"""

import hashlib
import os
import re
from pathlib import PurePath
from typing import Optional, Union

from ..models.container import NamingMode
from ..models.errors import ConfigurationError

NAME_ROOT = "reactor"
WORKSPACE_SEGMENT = "ws"
DISCOVERY_SEGMENT = "discovery"

MAX_SEGMENT_LENGTH = 20
FALLBACK_SEGMENT = "project"

# Docker container names must match [a-zA-Z0-9][a-zA-Z0-9_.-]*
_INVALID_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
_STARTS_ALNUM = re.compile(r"^[a-zA-Z0-9]")
_VALID_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


def sanitize_name_segment(name: str) -> str:
    """Make an arbitrary string safe for use inside a container name.

    Invalid characters become ``-``, a non-alphanumeric start gets a
    ``project-`` prefix, and the result is capped at 20 characters with any
    trailing ``-`` trimmed. An empty result falls back to ``project``.
    """
    sanitized = _INVALID_CHARS.sub("-", name)

    if sanitized and not _STARTS_ALNUM.match(sanitized):
        sanitized = "project-" + sanitized

    if len(sanitized) > MAX_SEGMENT_LENGTH:
        sanitized = sanitized[:MAX_SEGMENT_LENGTH].rstrip("-")

    return sanitized or FALLBACK_SEGMENT


def validate_account(account: str) -> str:
    """Check that an account is usable as a directory and a name segment.

    Returns the account unchanged.

    Raises:
        ConfigurationError: If the account could escape its state directory
            or is not a valid container name segment
    """
    if not account:
        raise ConfigurationError("account cannot be empty", field="account")
    if "/" in account or "\\" in account:
        raise ConfigurationError(
            f"account name '{account}' cannot contain path separators", field="account"
        )
    if ".." in account:
        raise ConfigurationError(f"account name '{account}' cannot contain '..'", field="account")
    if account.startswith("."):
        raise ConfigurationError(f"account name '{account}' cannot start with '.'", field="account")
    if not _VALID_NAME.match(account):
        raise ConfigurationError(
            f"account name '{account}' may only contain letters, digits, '_', '.' and '-'",
            field="account",
        )
    return account


def generate_container_name(
    account: str,
    project_path: str,
    project_hash: str,
    mode: Union[NamingMode, str] = NamingMode.NORMAL,
    isolation_prefix: Optional[str] = None,
    service: Optional[str] = None,
) -> str:
    """Build the container name for a project.

    Normal mode yields ``reactor-<account>-<folder>-<hash>``, discovery mode
    ``reactor-discovery-<account>-<folder>-<hash>``. Workspace services insert
    ``ws-<service>`` after the root. With an isolation prefix the whole name
    becomes ``<prefix>-<name>``.
    """
    mode = NamingMode(mode)
    folder = sanitize_name_segment(PurePath(project_path).name)

    parts = [NAME_ROOT]
    if service is not None:
        parts.extend([WORKSPACE_SEGMENT, sanitize_name_segment(service)])
    if mode is NamingMode.DISCOVERY:
        parts.append(DISCOVERY_SEGMENT)
    parts.extend([account, folder, project_hash])

    name = "-".join(parts)
    if isolation_prefix:
        return f"{isolation_prefix}-{name}"
    return name


def generate_discovery_container_name(
    account: str,
    project_path: str,
    project_hash: str,
    isolation_prefix: Optional[str] = None,
    service: Optional[str] = None,
) -> str:
    """Shorthand for :func:`generate_container_name` in discovery mode."""
    return generate_container_name(
        account,
        project_path,
        project_hash,
        NamingMode.DISCOVERY,
        isolation_prefix=isolation_prefix,
        service=service,
    )


def generate_workspace_hash(workspace_file: Union[str, os.PathLike]) -> str:
    """SHA-256 hex digest of the canonical absolute workspace file path."""
    canonical = os.path.realpath(os.path.abspath(workspace_file))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def generate_project_hash(project_root: Union[str, os.PathLike]) -> str:
    """Short, stable hash of a project directory (first 8 hex characters)."""
    absolute = os.path.abspath(project_root)
    return hashlib.sha256(absolute.encode("utf-8")).hexdigest()[:8]


def is_managed_name(name: str, isolation_prefix: Optional[str] = None) -> bool:
    """Check whether a container name follows the reactor naming pattern.

    Only used for diagnostics; ownership is decided by labels.
    """
    name = name.lstrip("/")
    if isolation_prefix and name.startswith(f"{isolation_prefix}-"):
        name = name[len(isolation_prefix) + 1 :]

    parts = name.split("-")
    return len(parts) >= 4 and parts[0] == NAME_ROOT
