"""
Status polling for batch-style executors.

Status is never tracked incrementally. Every call re-evaluates three
observations of the job directory (wrapper script present, job id known,
exit code recorded) against the lifecycle ladder, so changes made by the
scheduler or by another controller process cannot be missed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .command import CommandStatus
from .errors import StatusIndeterminateError
from .jobdir import JobDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollSettings:
    """Timing of ``wait_for()`` polling.

    Attributes:
        interval: Seconds between checks while the exit-code file is absent.
        fine_interval: Seconds between re-reads of an exit-code file that
            exists but does not yet hold a parseable integer.
        exit_code_retries: How many such re-reads to attempt before the exit
            code is declared indeterminate.
    """

    interval: float = 5.0
    fine_interval: float = 0.5
    exit_code_retries: int = 10

    def __post_init__(self) -> None:
        if self.interval <= 0 or self.fine_interval <= 0:
            raise ValueError("poll intervals must be positive")
        if self.exit_code_retries < 0:
            raise ValueError("exit_code_retries must not be negative")


def evaluate_status(
    script_exists: bool, job_id: Optional[str], exit_code: Optional[int]
) -> CommandStatus:
    """Map job directory observations onto the lifecycle ladder."""
    if not script_exists:
        return CommandStatus.UNKNOWN
    if not job_id:
        return CommandStatus.QUEUEING
    if exit_code is None:
        return CommandStatus.RUNNING
    return CommandStatus.COMPLETE


def observe_status(job_dir: JobDirectory, job_id: Optional[str]) -> CommandStatus:
    """Evaluate the current status of a job directory without blocking."""
    exit_code = job_dir.read_exit_code() if job_dir.has_exit_file() else None
    return evaluate_status(job_dir.has_script(), job_id, exit_code)


def wait_for_exit_code(
    job_dir: JobDirectory,
    stopped: threading.Event,
    settings: PollSettings,
    label: str = "",
) -> Optional[int]:
    """Block until the exit-code file holds an exit code or ``stopped`` is set.

    The exit-code file is always checked before the stop flag, so a job that
    finished just as it was being stopped still reports its real exit code.

    Returns:
        The exit code, or None if ``stopped`` was set first.

    Raises:
        StatusIndeterminateError: If the exit-code file exists but stays
            unparseable for ``settings.exit_code_retries`` re-reads.
    """
    unparseable_reads = 0
    while True:
        if job_dir.has_exit_file():
            exit_code = job_dir.read_exit_code()
            if exit_code is not None:
                return exit_code

            # Latency in the file system: the file exists but its content
            # has not arrived yet.
            unparseable_reads += 1
            if unparseable_reads > settings.exit_code_retries:
                raise StatusIndeterminateError(
                    f"Exit code file {job_dir.exit_path} for command '{label}' "
                    f"still unparseable after {settings.exit_code_retries} retries"
                )
            delay = settings.fine_interval
        else:
            delay = settings.interval

        if stopped.is_set():
            logger.debug("Stopped while waiting for command '%s'", label)
            return None

        stopped.wait(delay)
