"""
Shared machinery for executors that submit a rendered wrapper script.

Batch executors compose a `TemplateSubmission` rather than inheriting from it.
The helper owns the job directory, the rendered script, the backend job id
and the stopped flag; the executor supplies the scheduler specific command
lines and job id parser.
"""

import logging
import os
import re
import subprocess
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, TextIO, Tuple

from ..command import EXIT_CODE_UNKNOWN, CommandStatus
from ..errors import (
    BackendCommandError,
    BackendError,
    BackendTimeout,
    ConfigurationError,
    StatusIndeterminateError,
    StopError,
    SubmissionError,
)
from ..forwarding import OutputForwarder
from ..jobdir import JobDirectory
from ..logging import command_logger
from ..polling import PollSettings, observe_status, wait_for_exit_code
from ..rendering import render_wrapper_script

logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 60


def run_command(
    cmd: str,
    timeout: Optional[float] = DEFAULT_TOOL_TIMEOUT,
    env: Optional[Dict[str, str]] = None,
) -> Tuple[str, str, int]:
    """
    Run an external backend tool through the shell.

    Args:
        cmd: The command line to run
        timeout: Timeout in seconds
        env: Extra environment variables merged over the current environment

    Returns:
        Tuple[str, str, int]: A tuple of (stdout, stderr, return_code)

    Raises:
        BackendTimeout: If the command times out
        BackendCommandError: If the command cannot be executed at all
    """
    logger.debug("Running command: %s", cmd)

    merged_env = os.environ.copy()
    if env:
        merged_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            shell=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=merged_env,
        )
    except subprocess.TimeoutExpired as e:
        raise BackendTimeout(
            f"Command timed out after {timeout} seconds: {cmd}"
        ) from e
    except OSError as e:
        raise BackendCommandError(f"Failed to execute command: {e}") from e

    logger.debug("Command exit code: %d", result.returncode)
    if result.stdout:
        logger.debug("Command stdout: %s", result.stdout[:500])
    if result.stderr:
        logger.debug("Command stderr: %s", result.stderr[:500])

    return result.stdout, result.stderr, result.returncode


def normalize_procs(
    config: Optional[Mapping[str, Any]], pe_key: str
) -> Dict[str, Any]:
    """Return a normalized copy of ``config``.

    ``procs`` may be a plain process count or the legacy ``"<pe> <count>"``
    form. The legacy form is split into an integer ``procs`` and the parallel
    environment stored under ``pe_key``. The caller's mapping is never
    modified.

    Raises:
        ConfigurationError: If ``procs`` cannot be interpreted.
    """
    normalized = dict(config or {})
    procs = normalized.get("procs")
    if procs is None or procs == "":
        normalized.pop("procs", None)
        return normalized

    if isinstance(procs, bool):
        raise ConfigurationError(f"Bad format for procs parameter: {procs!r}")

    if isinstance(procs, int):
        count = procs
    else:
        text = str(procs).strip()
        if re.fullmatch(r"\d+", text):
            count = int(text)
        else:
            parts = text.split()
            if len(parts) < 2:
                raise ConfigurationError(
                    f"Bad format for procs parameter: {procs!r}. "
                    "Expect either integer or form: '<pe> <integer>'"
                )
            try:
                count = int(parts[1])
            except ValueError as e:
                raise ConfigurationError(
                    f"Bad process count in procs parameter: {procs!r}"
                ) from e
            normalized[pe_key] = parts[0]

    if count < 1:
        raise ConfigurationError(f"procs must be a positive integer, got {procs!r}")
    normalized["procs"] = count
    return normalized


def sanitize_job_name(name: str) -> str:
    """Reduce a command name to characters every scheduler accepts."""
    sanitized = re.sub(r"[^A-Za-z0-9_.-]", "_", name.strip()) or "job"
    if not sanitized[0].isalpha():
        sanitized = "j" + sanitized
    return sanitized


class TemplateSubmission:
    """Render, submit, observe and cancel one wrapper-script job."""

    def __init__(
        self,
        job_dir: JobDirectory,
        backend: str,
        settings: Optional[PollSettings] = None,
        tool_timeout: Optional[float] = DEFAULT_TOOL_TIMEOUT,
        job_id: Optional[str] = None,
    ) -> None:
        self.job_dir = job_dir
        self.backend = backend
        self.settings = settings or PollSettings()
        self.tool_timeout = tool_timeout
        self.job_id = job_id
        self.script: Optional[str] = None
        self.stopped = threading.Event()
        self._forwarder: Optional[OutputForwarder] = None
        self.log = command_logger(logger, job_dir.command_id)

    def prepare(self) -> None:
        """Create the job directory.

        Raises:
            SubmissionError: If the directory cannot be created.
        """
        try:
            self.job_dir.create()
        except OSError as e:
            raise SubmissionError(
                f"Failed to create job directory {self.job_dir.path}: {e}",
                metadata={"backend": self.backend},
            ) from e

    def render(
        self, command_text: str, directives: List[str], cwd: Optional[str] = None
    ) -> str:
        """Render the wrapper script and write it into the job directory."""
        self.script = render_wrapper_script(command_text, self.job_dir, directives, cwd)
        try:
            self.job_dir.write_script(self.script)
        except OSError as e:
            raise SubmissionError(
                f"Failed to write wrapper script {self.job_dir.script_path}: {e}",
                script=self.script,
                metadata={"backend": self.backend},
            ) from e
        logger.debug(
            "--- BEGIN SCRIPT CONTENT ---\n%s\n--- END SCRIPT CONTENT ---", self.script
        )
        return self.script

    def submit(
        self,
        submit_cmd: str,
        parse_job_id: Callable[[str], str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Run the submission tool and record the job id it reports.

        Raises:
            SubmissionError: If the tool fails, exits non-zero, or its output
                holds no job id. The job directory is left in place.
        """
        metadata = dict(metadata or {})
        metadata.setdefault("backend", self.backend)
        metadata.setdefault("job_dir", str(self.job_dir.path))

        self.log.debug("Submitting with command: %s", submit_cmd)
        try:
            stdout, stderr, return_code = run_command(
                submit_cmd, timeout=self.tool_timeout
            )
        except BackendError as e:
            raise SubmissionError(
                f"Failed to submit job: {e}", script=self.script, metadata=metadata
            ) from e

        if return_code != 0:
            metadata["exit_code"] = return_code
            raise SubmissionError(
                f"Failed to submit job: {stderr.strip() or stdout.strip()}",
                script=self.script,
                metadata=metadata,
            )

        try:
            job_id = parse_job_id(stdout)
        except ValueError as e:
            raise SubmissionError(
                f"Failed to parse job ID from submission output: {stdout!r}",
                script=self.script,
                metadata=metadata,
            ) from e

        self.job_id = job_id
        self.log.info("Job submitted: %s", job_id)
        return job_id

    def launch(
        self,
        command_text: str,
        directives: List[str],
        build_submit_command: Callable[[str], str],
        parse_job_id: Callable[[str], str],
        persist: Callable[[], None],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Prepare the job directory, render the script and submit it.

        ``persist`` is called once the script exists and again once the job
        id is known, so a restarted controller can reattach at either point.
        A failed submission discards the snapshot: the command was never in
        flight, so there is nothing to reattach to. The rest of the job
        directory stays for diagnostics.
        """
        self.prepare()
        self.render(command_text, directives)
        persist()
        try:
            job_id = self.submit(
                build_submit_command(str(self.job_dir.script_path)),
                parse_job_id,
                metadata,
            )
        except SubmissionError:
            self.job_dir.discard_state()
            raise
        persist()
        return job_id

    def status(self) -> CommandStatus:
        return observe_status(self.job_dir, self.job_id)

    def wait(self, label: str) -> int:
        """Block until the exit code is recorded or the job is stopped."""
        try:
            exit_code = wait_for_exit_code(
                self.job_dir, self.stopped, self.settings, label
            )
        except StatusIndeterminateError as e:
            logger.warning(
                "Missing exit code value for command '%s'. Returning %d by default: %s",
                label,
                EXIT_CODE_UNKNOWN,
                e,
            )
            return EXIT_CODE_UNKNOWN

        if exit_code is None:
            return EXIT_CODE_UNKNOWN
        return exit_code

    def cancel(self, cancel_cmd: Optional[str], label: str) -> None:
        """Set the stopped flag, then run the cancellation tool.

        Raises:
            StopError: If the cancellation tool fails.
        """
        self.stopped.set()
        if self._forwarder is not None:
            self._forwarder.stop()

        if not cancel_cmd:
            logger.info(
                "Command %s has no %s job id yet; nothing to cancel", label, self.backend
            )
            return

        logger.info("Executing command to stop command %s: %s", label, cancel_cmd)
        try:
            stdout, stderr, return_code = run_command(
                cancel_cmd, timeout=self.tool_timeout
            )
        except BackendError as e:
            raise StopError(
                f"{self.backend} failed to stop command {label}: {e}"
            ) from e

        if return_code != 0:
            message = (
                f"{self.backend} failed to stop command {label}, returned exit code "
                f"{return_code} from command line: {cancel_cmd}"
            )
            logger.error(
                "Failed stop command produced output: \n%s\n%s", stdout, stderr
            )
            if stderr.strip():
                message += "\n" + "\n".join(
                    "    " + line for line in stderr.strip().splitlines()
                )
            raise StopError(message, stderr=stderr, exit_code=return_code)

        logger.info("Successfully called script to stop command %s", label)

    def forward_output(
        self, output_log: Optional[TextIO], error_log: Optional[TextIO]
    ) -> None:
        targets = []
        if output_log is not None:
            targets.append((self.job_dir.stdout_path, output_log))
        if error_log is not None:
            targets.append((self.job_dir.stderr_path, error_log))
        if not targets:
            return
        self._forwarder = OutputForwarder(
            targets,
            finished=lambda: self.stopped.is_set() or self.job_dir.has_exit_file(),
            interval=min(self.settings.interval, 1.0),
            name=f"jobexec-forward-{self.job_dir.command_id}",
        )
        self._forwarder.start()
