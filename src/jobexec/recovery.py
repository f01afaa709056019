"""
Reattaching to in-flight commands after a controller restart.

Every executor writes an `ExecutorState` snapshot into its job directory when
the wrapper script is in place and again once the backend job id is known.
A restarted controller rebuilds executors from those snapshots; nothing is
resubmitted, and status and exit codes are observed from the job directory
exactly as the original executor would have observed them.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from .errors import ConfigurationError, RecoveryError
from .executors import BatchCommandExecutor, CommandExecutor, get_executor_class
from .jobdir import STATE_FILENAME, JobDirectory, commandtmp_root
from .polling import PollSettings
from .state import ExecutorState

logger = logging.getLogger(__name__)


def save_state(executor: CommandExecutor) -> Path:
    """Write an executor's snapshot into its job directory."""
    state = executor.to_state()
    job_dir = JobDirectory(state.workroot, state.command_id)
    job_dir.write_state(state.to_dict())
    return job_dir.state_path


def load_state(job_dir: Union[JobDirectory, str, Path]) -> ExecutorState:
    """Read the snapshot stored in a job directory.

    Raises:
        RecoveryError: If the snapshot is missing or unreadable.
    """
    if isinstance(job_dir, JobDirectory):
        state_path = job_dir.state_path
    else:
        state_path = Path(job_dir) / STATE_FILENAME
    try:
        with open(state_path, "r") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise RecoveryError(f"No executor state found at {state_path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise RecoveryError(f"Unreadable executor state {state_path}: {e}") from e
    return ExecutorState.from_dict(data)


def restore_executor(
    state: ExecutorState,
    settings: Optional[PollSettings] = None,
    tool_timeout: Optional[float] = None,
) -> CommandExecutor:
    """Rebuild the executor described by ``state``.

    Raises:
        RecoveryError: If the snapshot names an unknown backend.
    """
    try:
        executor_class = get_executor_class(state.backend)
    except ConfigurationError as e:
        raise RecoveryError(str(e)) from e

    if issubclass(executor_class, BatchCommandExecutor) and tool_timeout is not None:
        return executor_class.from_state(state, settings, tool_timeout=tool_timeout)
    return executor_class.from_state(state, settings)


def recover_executors(
    workroot: Union[str, Path],
    settings: Optional[PollSettings] = None,
    tool_timeout: Optional[float] = None,
) -> List[CommandExecutor]:
    """Restore an executor for every job directory under ``workroot``.

    Job directories without a snapshot, or with an unreadable one, are skipped
    with a warning. Completed commands are included; callers decide whether
    to wait on them.
    """
    root = commandtmp_root(workroot)
    if not root.is_dir():
        logger.debug("No command directory at %s; nothing to recover", root)
        return []

    executors: List[CommandExecutor] = []
    for path in sorted(root.iterdir()):
        if not path.is_dir():
            continue
        try:
            state = load_state(path)
            executors.append(restore_executor(state, settings, tool_timeout))
        except RecoveryError as e:
            logger.warning("Skipping job directory %s: %s", path, e)
            continue
        logger.debug("Recovered command %s from %s", state.command_id, path)

    return executors


def find_executor(
    workroot: Union[str, Path],
    command_id: str,
    settings: Optional[PollSettings] = None,
    tool_timeout: Optional[float] = None,
) -> CommandExecutor:
    """Restore the executor of a single command.

    Raises:
        RecoveryError: If the command has no readable snapshot.
    """
    return restore_executor(
        load_state(JobDirectory(workroot, command_id)), settings, tool_timeout
    )
