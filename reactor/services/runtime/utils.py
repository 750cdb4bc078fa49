"""Shared utilities for runtime client implementations."""

import asyncio
import functools
from typing import Any, Callable

from ...models.container import ContainerStatus
from ...models.errors import OperationTimeoutError

# Engine states that mean the container process is alive.
_RUNNING_STATES = {"running", "restarting", "paused"}


def map_container_state(state: str) -> ContainerStatus:
    """Collapse a Docker state string into the orchestrator's three states.

    Anything the engine reports is at least STOPPED: a container that exists
    in "created" or "exited" state still holds the name.
    """
    if (state or "").lower() in _RUNNING_STATES:
        return ContainerStatus.RUNNING
    return ContainerStatus.STOPPED


async def run_in_executor(func: Callable[..., Any], *args, **kwargs) -> Any:
    """
    Run a blocking function in the default thread pool executor.

    Args:
        func: Blocking function to run
        *args: Positional arguments to pass to the function
        **kwargs: Keyword arguments to pass to the function

    Returns:
        Result of the function
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


async def call_with_deadline(
    operation: str,
    target: str,
    timeout: float,
    func: Callable[..., Any],
    *args,
    **kwargs,
) -> Any:
    """
    Run a blocking engine call off the event loop, bounded by a deadline.

    Cancellation of the awaiting task propagates immediately; the worker
    thread finishes the in-flight HTTP call on its own.

    Raises:
        OperationTimeoutError: If the call does not finish within ``timeout``
    """
    try:
        return await asyncio.wait_for(run_in_executor(func, *args, **kwargs), timeout)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(operation, target, timeout) from None
