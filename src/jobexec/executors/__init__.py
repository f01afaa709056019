"""
This package provides command executors for the supported execution
backends: a local process, Sun Grid Engine and Slurm.
"""

from typing import Any, Dict, Optional, Type

from ..errors import ConfigurationError
from ..polling import PollSettings
from .base import CommandExecutor
from .batch import BatchCommandExecutor
from .local import LocalCommandExecutor
from .sge import SgeCommandExecutor
from .slurm import SlurmCommandExecutor

EXECUTORS: Dict[str, Type[CommandExecutor]] = {
    LocalCommandExecutor.backend: LocalCommandExecutor,
    SgeCommandExecutor.backend: SgeCommandExecutor,
    SlurmCommandExecutor.backend: SlurmCommandExecutor,
}


def get_executor_class(backend_type: str) -> Type[CommandExecutor]:
    """
    Look up the executor class registered for a backend tag.

    Raises:
        ConfigurationError: If the backend type is not supported.
    """
    try:
        return EXECUTORS[backend_type]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported backend type: {backend_type!r}. "
            f"Expected one of: {', '.join(sorted(EXECUTORS))}"
        ) from None


def create_executor(
    backend_type: str,
    workroot: str,
    settings: Optional[PollSettings] = None,
    **kwargs: Any,
) -> CommandExecutor:
    """
    Create a command executor of the specified type.

    Args:
        backend_type: The type of backend ("local", "sge" or "slurm").
        workroot: Working-state root; job directories live under
            ``<workroot>/commandtmp``.
        settings: Polling settings for ``wait_for()``.
        **kwargs: Additional arguments to pass to the executor constructor
            (e.g. ``tool_timeout`` for batch backends).

    Returns:
        A new, unstarted executor. Create one per command.
    """
    executor_class = get_executor_class(backend_type)
    # Filter out None values so that constructor defaults apply
    executor_kwargs = {k: v for k, v in kwargs.items() if v is not None}
    if not issubclass(executor_class, BatchCommandExecutor):
        # No external tools are run by non-batch executors
        executor_kwargs.pop("tool_timeout", None)
    return executor_class(workroot, settings=settings, **executor_kwargs)


__all__ = [
    "EXECUTORS",
    "BatchCommandExecutor",
    "CommandExecutor",
    "LocalCommandExecutor",
    "SgeCommandExecutor",
    "SlurmCommandExecutor",
    "create_executor",
    "get_executor_class",
]
