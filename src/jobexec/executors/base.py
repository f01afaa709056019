"""
Base module for command executors.

This module defines the abstract base class every execution backend
implements, so that a pipeline can run a command locally or on a batch
scheduler through one uniform interface.
"""

import abc
from typing import Any, List, Mapping, Optional, TextIO

from ..command import Command, CommandStatus
from ..polling import PollSettings
from ..state import ExecutorState


class CommandExecutor(abc.ABC):
    """
    Abstract base class for command executors.

    One executor owns the execution of exactly one Command. Concrete
    implementations include the local process executor and one executor per
    batch scheduler (SGE, Slurm).

    ``wait_for()`` blocks for the life of the job and needs a thread of its
    own. ``status()`` never blocks and may be called from any thread.
    """

    #: Tag recorded in recovery snapshots to pick the class on restore.
    backend: str = ""

    @abc.abstractmethod
    def start(
        self,
        config: Optional[Mapping[str, Any]],
        command: Command,
        output_log: Optional[TextIO] = None,
        error_log: Optional[TextIO] = None,
    ) -> None:
        """
        Begin executing ``command.command``.

        Creates the job directory, writes any wrapper artifacts, and spawns a
        process or invokes the backend submission tool. Call at most once per
        executor; create one executor per Command.

        Args:
            config: Backend configuration (queue, account, procs, ...). Never
                mutated.
            command: The command to execute. Its ``executor`` is set to self.
            output_log: Optional stream receiving the job's stdout as it is
                produced.
            error_log: Optional stream receiving the job's stderr.

        Raises:
            ConfigurationError: If ``config`` is malformed.
            SubmissionError: If the job directory cannot be created or the
                submission tool fails.
        """

    @abc.abstractmethod
    def status(self) -> CommandStatus:
        """
        Return the current status and store it on the owning command.

        Never blocks; safe to call repeatedly and concurrently with
        ``wait_for()``.
        """

    @abc.abstractmethod
    def wait_for(self) -> int:
        """
        Block until the command completes or the executor is stopped.

        Returns:
            int: The command's exit code, or ``EXIT_CODE_UNKNOWN`` if it cannot
            be determined or the executor was stopped first.
        """

    @abc.abstractmethod
    def stop(self) -> None:
        """
        Cancel the command using the backend's native cancellation.

        Sets the stopped flag first so that a blocked ``wait_for()`` returns
        promptly.

        Raises:
            StopError: If the cancellation tool fails. The job may already
                have completed; re-check ``status()``.
        """

    @abc.abstractmethod
    def get_ignorable_outputs(self) -> List[str]:
        """
        Return file patterns that are executor bookkeeping, not stage output.
        """

    @abc.abstractmethod
    def status_message(self) -> str:
        """Return a one-line human readable description for diagnostics."""

    @abc.abstractmethod
    def to_state(self) -> ExecutorState:
        """
        Return a snapshot sufficient to reattach to the job after the
        controller restarts. Live handles are never included.
        """

    @classmethod
    @abc.abstractmethod
    def from_state(
        cls, state: ExecutorState, settings: Optional[PollSettings] = None
    ) -> "CommandExecutor":
        """
        Rebuild an executor, and its Command, from a snapshot without
        resubmitting anything.
        """
