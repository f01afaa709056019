"""
Local process executor.

Runs the wrapper script as a child process of the controller. There is no
submission tool: the process id is the job id, liveness of that process is
the RUNNING signal, and ``wait_for()`` joins the child. The wrapper still
records the exit code in the job directory so that a restarted controller,
which no longer owns the child, can observe completion.
"""

import logging
import os
import signal
import subprocess
import threading
from typing import Any, List, Mapping, Optional, TextIO

from ..command import EXIT_CODE_UNKNOWN, Command, CommandStatus
from ..errors import StopError, SubmissionError
from ..forwarding import OutputForwarder
from ..jobdir import JobDirectory, resolve_path
from ..polling import PollSettings
from ..rendering import render_wrapper_script
from ..state import ExecutorState
from .base import CommandExecutor

logger = logging.getLogger(__name__)


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


class LocalCommandExecutor(CommandExecutor):
    """Executes a command as a local child process."""

    backend = "local"

    def __init__(self, workroot: str, settings: Optional[PollSettings] = None):
        self.workroot = resolve_path(workroot)
        self.settings = settings or PollSettings()
        self.config: dict = {}
        self.command: Optional[Command] = None
        self.job_dir: Optional[JobDirectory] = None
        self.pid: Optional[int] = None
        self._process: Optional[subprocess.Popen] = None
        self._stopped = threading.Event()
        self._exit_lock = threading.Lock()
        self._forwarder: Optional[OutputForwarder] = None

    @property
    def job_id(self) -> Optional[str]:
        return str(self.pid) if self.pid is not None else None

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def start(
        self,
        config: Optional[Mapping[str, Any]],
        command: Command,
        output_log: Optional[TextIO] = None,
        error_log: Optional[TextIO] = None,
    ) -> None:
        self.config = dict(config or {})
        command.command = (command.command or "").strip()
        self.command = command
        command.executor = self

        self.job_dir = JobDirectory(self.workroot, command.id)
        script = render_wrapper_script(command.command, self.job_dir)
        try:
            self.job_dir.create()
            self.job_dir.write_script(script)
        except OSError as e:
            raise SubmissionError(
                f"Failed to prepare job directory {self.job_dir.path}: {e}",
                script=script,
                metadata={"backend": self.backend},
            ) from e

        try:
            with open(self.job_dir.scheduler_log_path, "w") as log:
                self._process = subprocess.Popen(
                    ["/bin/bash", str(self.job_dir.script_path)],
                    stdin=subprocess.DEVNULL,
                    stdout=log,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as e:
            raise SubmissionError(
                f"Failed to start local process: {e}",
                script=script,
                metadata={"backend": self.backend, "job_dir": str(self.job_dir.path)},
            ) from e

        self.pid = self._process.pid
        logger.info("Started local process %d for command %s", self.pid, command.id)
        self.job_dir.write_state(self.to_state().to_dict())

        targets = []
        if output_log is not None:
            targets.append((self.job_dir.stdout_path, output_log))
        if error_log is not None:
            targets.append((self.job_dir.stderr_path, error_log))
        if targets:
            self._forwarder = OutputForwarder(
                targets,
                finished=lambda: not self._alive(),
                interval=min(self.settings.interval, 1.0),
                name=f"jobexec-forward-{command.id}",
            )
            self._forwarder.start()

    def _alive(self) -> bool:
        if self._process is not None:
            return self._process.poll() is None
        if self.pid is not None:
            return _pid_alive(self.pid)
        return False

    def status(self) -> CommandStatus:
        if self.job_dir is None:
            return CommandStatus.UNKNOWN

        if self.job_dir.read_exit_code() is not None:
            result = CommandStatus.COMPLETE
        elif not self.job_dir.has_script():
            result = CommandStatus.UNKNOWN
        elif self._alive():
            result = CommandStatus.RUNNING
        elif self._process is not None:
            # Child exited without recording an exit code (e.g. killed);
            # its return code is still known to us
            self._record_exit(self._process.returncode)
            result = CommandStatus.COMPLETE
        else:
            # Process gone and nothing recorded: state was lost
            result = CommandStatus.UNKNOWN

        self.command.status = result
        return result

    def wait_for(self) -> int:
        if self.job_dir is None:
            raise RuntimeError("wait_for() called before start()")
        if self._process is not None:
            exit_code = self._join()
        else:
            exit_code = self._poll_recovered()
        self.status()
        return exit_code

    def _join(self) -> int:
        while True:
            try:
                return_code = self._process.wait(timeout=self.settings.interval)
                break
            except subprocess.TimeoutExpired:
                if self._stopped.is_set():
                    return EXIT_CODE_UNKNOWN

        recorded = self.job_dir.read_exit_code()
        if recorded is not None:
            return recorded
        if self._stopped.is_set():
            return EXIT_CODE_UNKNOWN

        return self._record_exit(return_code)

    def _record_exit(self, return_code: int) -> int:
        """Write the child's return code unless the wrapper already did."""
        if return_code < 0:
            # Killed by a signal: report it the way the shell would
            return_code = 128 - return_code
        with self._exit_lock:
            recorded = self.job_dir.read_exit_code()
            if recorded is not None:
                return recorded
            self.job_dir.write_exit_code(return_code)
        return return_code

    def _poll_recovered(self) -> int:
        while True:
            recorded = self.job_dir.read_exit_code()
            if recorded is not None:
                return recorded
            if self._stopped.is_set():
                return EXIT_CODE_UNKNOWN
            if not self._alive():
                recorded = self.job_dir.read_exit_code()
                if recorded is not None:
                    return recorded
                logger.warning(
                    "Process %s for command '%s' ended without recording an exit "
                    "code. Returning %d by default",
                    self.pid,
                    self.command.id,
                    EXIT_CODE_UNKNOWN,
                )
                return EXIT_CODE_UNKNOWN
            self._stopped.wait(self.settings.interval)

    def stop(self) -> None:
        if self.job_dir is None:
            raise RuntimeError("stop() called before start()")
        self._stopped.set()
        if self._forwarder is not None:
            self._forwarder.stop()

        if self.pid is None or not self._alive():
            logger.info("Command %s is not running; nothing to stop", self.command.id)
            return

        logger.info(
            "Terminating local process group %d for command %s",
            self.pid,
            self.command.id,
        )
        try:
            os.killpg(self.pid, signal.SIGTERM)
        except ProcessLookupError:
            logger.info("Process %d already exited", self.pid)
        except OSError as e:
            raise StopError(
                f"Failed to stop local process {self.pid} "
                f"for command {self.command.id}: {e}",
                stderr=str(e),
            ) from e

    def get_ignorable_outputs(self) -> List[str]:
        if self.job_dir is None:
            return []
        return self.job_dir.bookkeeping_paths()

    def status_message(self) -> str:
        cmd = self.command.command if self.command else ""
        return f"Local process PID: {self.pid} command: {cmd}"

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
        cls, state: ExecutorState, settings: Optional[PollSettings] = None
    ) -> "LocalCommandExecutor":
        executor = cls(state.workroot, settings=settings)
        executor.config = dict(state.config)
        executor.command = Command(
            id=state.command_id,
            name=state.name,
            command=state.command_text,
            executor=executor,
        )
        executor.job_dir = JobDirectory(state.workroot, state.command_id)
        executor.pid = int(state.job_id) if state.job_id else None
        executor.status()
        return executor
