"""Custom error types for jobexec."""

from __future__ import annotations

from typing import Any, Dict, Optional

from rich.console import Console, ConsoleRenderable
from rich.syntax import Syntax


class ExecutorError(Exception):
    """Base class for every error raised by jobexec."""


class SubmissionError(ExecutorError):
    """Raised when a command could not be handed to its backend.

    The job directory is left in place so that the rendered wrapper script and
    any tool output can be inspected.

    Common causes:
        - The submission tool (qsub, sbatch) exited non-zero
        - The submission tool is not installed or timed out
        - The job directory could not be created
        - The tool output did not contain a recognizable job identifier

    Attributes:
        message: Error description
        script: The rendered wrapper script that failed to submit (if available)
        metadata: Dictionary with submission context (backend, queue, job dir, ...)
    """

    def __init__(
        self,
        message: str,
        *,
        script: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.script = script
        self.metadata = {k: v for k, v in (metadata or {}).items() if v is not None}
        self._syntax: Optional[ConsoleRenderable] = self._build_syntax(script)

    @staticmethod
    def _build_syntax(script: Optional[str]) -> Optional[ConsoleRenderable]:
        if not script:
            return None
        try:
            return Syntax(script, "bash", theme="monokai", line_numbers=True)
        except Exception:
            return None

    def _context_line(self) -> Optional[str]:
        if not self.metadata:
            return None
        return "context: " + ", ".join(f"{k}={v}" for k, v in self.metadata.items())

    def __str__(self) -> str:
        parts = [self.message]
        context = self._context_line()
        if context:
            parts.append(context)
        if self.script:
            parts.append("rendered wrapper script:\n" + self.script)
        return "\n\n".join(parts)

    def __rich_console__(self, console: Console, options):  # pragma: no cover
        yield self.message
        context = self._context_line()
        if context:
            yield context
        if self._syntax is not None:
            yield "rendered wrapper script:"
            yield self._syntax
        elif self.script:
            yield "rendered wrapper script:"
            yield self.script


class ConfigurationError(SubmissionError):
    """Raised when a backend configuration value is malformed.

    This is detected while the configuration is being normalized, before any
    external submission tool is invoked. It is fatal for the command being
    started only, and like any other `SubmissionError` means the command was
    never handed to its backend.

    Common causes:
        - Legacy ``procs`` value with a single token (e.g. ``"orte"``)
        - Non-numeric process counts
        - Unknown backend name passed to ``create_executor``

    Examples:
        >>> executor.start({"procs": "orte"}, command)
        ConfigurationError: Bad format for procs parameter: 'orte'...
    """


class StatusIndeterminateError(ExecutorError):
    """Raised when a job's exit code cannot be determined.

    The exit-code file appeared but never contained a parseable integer within
    the retry budget. ``wait_for()`` converts this into the sentinel exit code
    rather than blocking forever.
    """


class StopError(ExecutorError):
    """Raised when the backend cancellation tool returns non-zero.

    A failed cancellation does not mean the job is still alive: it may have
    completed in the meantime. Re-check ``status()`` before treating this as
    a failure.

    Attributes:
        stderr: Standard error of the cancellation tool
        exit_code: Exit code of the cancellation tool
    """

    def __init__(
        self, message: str, *, stderr: str = "", exit_code: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.stderr = stderr
        self.exit_code = exit_code


class RecoveryError(ExecutorError):
    """Raised when a persisted executor snapshot cannot be restored."""


class BackendError(ExecutorError):
    """Base class for errors running an external backend tool."""


class BackendTimeout(BackendError, TimeoutError):
    """Raised when an external backend tool does not finish in time.

    What to check:
        - Verify the scheduler is responsive (``qstat``, ``squeue``)
        - Consider increasing ``submit_timeout`` in the Jobfile
    """


class BackendCommandError(BackendError):
    """Raised when an external backend tool cannot be executed at all."""


class JobfileError(ExecutorError):
    """Base class for Jobfile configuration errors.

    Jobfiles are TOML configuration files that select an execution backend and
    its settings per environment.
    """


class JobfileNotFoundError(JobfileError):
    """Raised when a Jobfile cannot be located.

    jobexec searches for Jobfile, Jobfile.toml, jobfile, or jobfile.toml in the
    current directory and parent directories.

    What to check:
        - Ensure a Jobfile exists in your project
        - Set the JOBEXEC_FILE environment variable to specify an explicit path
    """


class JobfileInvalidError(JobfileError):
    """Raised when a Jobfile contains invalid TOML syntax or schema."""


class JobfileEnvironmentNotFoundError(JobfileError):
    """Raised when a requested environment is missing from the Jobfile.

    Examples:
        >>> load_environment(env="producton")  # Typo!
        JobfileEnvironmentNotFoundError: Environment 'producton' not defined in Jobfile
    """
