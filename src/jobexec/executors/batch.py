"""
Common behaviour of executors backed by a batch scheduler.

A batch executor describes its scheduler (configuration normalization,
script directives, submit and cancel command lines, job id parsing) and
delegates everything else to a composed `TemplateSubmission`.
"""

import abc
import logging
from typing import Any, Dict, List, Mapping, Optional, TextIO

from ..command import EXIT_CODE_UNKNOWN, Command, CommandStatus
from ..jobdir import JobDirectory, resolve_path
from ..polling import PollSettings
from ..state import ExecutorState
from .base import CommandExecutor
from .template import DEFAULT_TOOL_TIMEOUT, TemplateSubmission

logger = logging.getLogger(__name__)


class BatchCommandExecutor(CommandExecutor):
    """Executor that submits a rendered wrapper script to a batch scheduler."""

    #: Scheduler name used in diagnostics.
    label: str = ""

    def __init__(
        self,
        workroot: str,
        settings: Optional[PollSettings] = None,
        tool_timeout: Optional[float] = DEFAULT_TOOL_TIMEOUT,
    ):
        self.workroot = resolve_path(workroot)
        self.settings = settings or PollSettings()
        self.tool_timeout = tool_timeout
        self.config: Dict[str, Any] = {}
        self.command: Optional[Command] = None
        self.job_dir: Optional[JobDirectory] = None
        self._submission: Optional[TemplateSubmission] = None

    @property
    def job_id(self) -> Optional[str]:
        return self._submission.job_id if self._submission else None

    @property
    def stopped(self) -> bool:
        return self._submission is not None and self._submission.stopped.is_set()

    @abc.abstractmethod
    def normalize_config(self, config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Return a validated copy of ``config``; raise ConfigurationError."""

    @abc.abstractmethod
    def build_directives(self, command: Command) -> List[str]:
        """Scheduler header lines for the wrapper script."""

    @abc.abstractmethod
    def build_submit_command(self, script_path: str) -> str:
        """Command line submitting ``script_path``."""

    @abc.abstractmethod
    def build_cancel_command(self, job_id: str) -> str:
        """Command line cancelling ``job_id``."""

    @abc.abstractmethod
    def parse_job_id(self, text: str) -> str:
        """Extract the job id from the submission tool's stdout.

        Raises:
            ValueError: If ``text`` holds no job id.
        """

    def start(
        self,
        config: Optional[Mapping[str, Any]],
        command: Command,
        output_log: Optional[TextIO] = None,
        error_log: Optional[TextIO] = None,
    ) -> None:
        # Validate before touching the filesystem or the scheduler
        self.config = self.normalize_config(config)
        command.command = (command.command or "").strip()
        self.command = command
        command.executor = self

        self.job_dir = JobDirectory(self.workroot, command.id)
        self._submission = TemplateSubmission(
            self.job_dir, self.backend, self.settings, self.tool_timeout
        )
        self._submission.launch(
            command.command,
            self.build_directives(command),
            self.build_submit_command,
            self.parse_job_id,
            self._persist,
            metadata={
                "queue": self.config.get("queue"),
                "account": self.config.get("account"),
            },
        )
        self._submission.forward_output(output_log, error_log)

    def status(self) -> CommandStatus:
        if self._submission is None:
            return CommandStatus.UNKNOWN
        result = self._submission.status()
        self.command.status = result
        return result

    def wait_for(self) -> int:
        if self._submission is None:
            raise RuntimeError("wait_for() called before start()")
        if self.job_id is None:
            # Never accepted by the scheduler, so no exit code can appear
            logger.warning(
                "Command %s has no %s job id; returning %d",
                self.command.id,
                self.label,
                EXIT_CODE_UNKNOWN,
            )
            return EXIT_CODE_UNKNOWN
        exit_code = self._submission.wait(self.command.id)
        self.status()
        return exit_code

    def stop(self) -> None:
        if self._submission is None:
            raise RuntimeError("stop() called before start()")
        cancel_cmd = self.build_cancel_command(self.job_id) if self.job_id else None
        self._submission.cancel(cancel_cmd, self.command.id)

    def get_ignorable_outputs(self) -> List[str]:
        if self.job_dir is None:
            return []
        return self.job_dir.bookkeeping_paths()

    def status_message(self) -> str:
        cmd = self.command.command if self.command else ""
        return f"{self.label} Job ID: {self.job_id} command: {cmd}"

    def get_stdout(self) -> str:
        """Read what the command has written to stdout so far."""
        return self.job_dir.read_text(self.job_dir.stdout_path)

    def get_stderr(self) -> str:
        return self.job_dir.read_text(self.job_dir.stderr_path)

    def get_script(self) -> str:
        """Read the rendered wrapper script that was submitted."""
        return self.job_dir.read_text(self.job_dir.script_path)

    def _persist(self) -> None:
        self.job_dir.write_state(self.to_state().to_dict())

    def to_state(self) -> ExecutorState:
        if self.command is None or self.job_dir is None:
            raise RuntimeError("to_state() called before start()")
        return ExecutorState(
            backend=self.backend,
            command_id=self.command.id,
            name=self.command.name,
            command_text=self.command.command,
            workroot=self.workroot,
            job_dir=str(self.job_dir.path),
            job_id=self.job_id,
            config=dict(self.config),
        )

    @classmethod
    def from_state(
        cls,
        state: ExecutorState,
        settings: Optional[PollSettings] = None,
        tool_timeout: Optional[float] = DEFAULT_TOOL_TIMEOUT,
    ) -> "BatchCommandExecutor":
        executor = cls(state.workroot, settings=settings, tool_timeout=tool_timeout)
        executor.config = dict(state.config)
        executor.command = Command(
            id=state.command_id,
            name=state.name,
            command=state.command_text,
            executor=executor,
        )
        executor.job_dir = JobDirectory(state.workroot, state.command_id)
        executor._submission = TemplateSubmission(
            executor.job_dir,
            cls.backend,
            executor.settings,
            tool_timeout,
            job_id=state.job_id,
        )
        executor.status()
        logger.debug("[%s] Restored %s executor", state.command_id, cls.backend)
        return executor
