"""Container runtime clients."""

from .docker_client import DockerRuntimeClient
from .interface import RuntimeClient
from .memory import InMemoryRuntimeClient

__all__ = ["RuntimeClient", "DockerRuntimeClient", "InMemoryRuntimeClient"]
