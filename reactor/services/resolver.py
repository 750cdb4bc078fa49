"""Resolution of a service directory into a ResolvedConfig.

Full devcontainer parsing lives outside this package and plugs in by
implementing ConfigResolver. DefaultConfigResolver covers the case where no
such parser is wired in: it derives everything from settings and the path.
"""

import getpass
import os
from abc import ABC, abstractmethod
from typing import Optional

import structlog

from ..models.container import ResolvedConfig
from ..models.errors import ConfigurationError
from .identity import generate_project_hash, validate_account

logger = structlog.get_logger(__name__)


class ConfigResolver(ABC):
    """Turns a project directory into a ResolvedConfig."""

    @abstractmethod
    def resolve(self, project_root: str, account: Optional[str] = None) -> ResolvedConfig:
        """Resolve configuration for a project.

        Args:
            project_root: Absolute project directory
            account: Account override; takes precedence over any default
        """


class DefaultConfigResolver(ConfigResolver):
    """Resolver using the configured default image and account."""

    def __init__(self, default_image: str, default_account: Optional[str] = None):
        self._default_image = default_image
        self._default_account = default_account

    def resolve(self, project_root: str, account: Optional[str] = None) -> ResolvedConfig:
        root = os.path.abspath(project_root)
        return ResolvedConfig(
            account=validate_account(account or self._default_account or self._login_name()),
            project_root=root,
            project_hash=generate_project_hash(root),
            image=self._default_image,
        )

    @staticmethod
    def _login_name() -> str:
        try:
            return getpass.getuser()
        except (KeyError, OSError) as e:
            raise ConfigurationError(
                "could not determine the current user; set REACTOR_DEFAULT_ACCOUNT",
                field="account",
            ) from e
