"""Component wiring.

Cached factories that build each component from the global settings. Tests
construct components directly instead of going through these.
"""

from functools import lru_cache

import structlog

from .config import settings
from .services.blueprint import BlueprintBuilder
from .services.cleanup import CleanupGuard
from .services.orchestrator import ContainerOrchestrator
from .services.resolver import ConfigResolver, DefaultConfigResolver
from .services.runtime import DockerRuntimeClient, RuntimeClient
from .services.workspace import WorkspaceEngine

logger = structlog.get_logger(__name__)


@lru_cache()
def get_runtime_client() -> RuntimeClient:
    """Get the Docker runtime client."""
    return DockerRuntimeClient(config=settings.runtime)


@lru_cache()
def get_blueprint_builder() -> BlueprintBuilder:
    """Get the blueprint builder bound to the configured isolation prefix."""
    if settings.isolation_prefix:
        logger.info("Using container isolation prefix", prefix=settings.isolation_prefix)
    return BlueprintBuilder(settings.isolation_prefix)


@lru_cache()
def get_config_resolver() -> ConfigResolver:
    return DefaultConfigResolver(settings.default_image, settings.default_account)


@lru_cache()
def get_orchestrator() -> ContainerOrchestrator:
    """Get the container orchestrator."""
    return ContainerOrchestrator(get_runtime_client(), get_blueprint_builder())


@lru_cache()
def get_workspace_engine() -> WorkspaceEngine:
    """Get the workspace engine."""
    return WorkspaceEngine(get_orchestrator(), get_config_resolver(), settings.runtime)


@lru_cache()
def get_cleanup_guard() -> CleanupGuard:
    """Get the cleanup guard."""
    return CleanupGuard(get_runtime_client(), settings.cleanup)


def shutdown() -> None:
    """Close the runtime client and drop cached components."""
    if get_runtime_client.cache_info().currsize:
        get_runtime_client().close()
    for factory in (
        get_runtime_client,
        get_blueprint_builder,
        get_config_resolver,
        get_orchestrator,
        get_workspace_engine,
        get_cleanup_guard,
    ):
        factory.cache_clear()
