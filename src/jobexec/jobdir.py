"""
On-disk protocol shared by an executor and the job it submitted.

Each command owns ``<workroot>/commandtmp/<command-id>/`` for its whole life.
The wrapper script, the redirected stdout/stderr and the exit-code file all
live there. The exit-code file is written by the wrapper as its very last
action (write to a temporary name, then rename), so its presence is the
single source of truth for "the command has finished".
"""

from __future__ import annotations

import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

COMMANDTMP_DIRNAME = "commandtmp"
CMD_SCRIPT_FILENAME = "cmd.sh"
CMD_EXIT_FILENAME = "cmd.exit"
CMD_OUT_FILENAME = "cmd.out"
CMD_ERR_FILENAME = "cmd.err"
SCHEDULER_LOG_FILENAME = "scheduler.log"
STATE_FILENAME = "state.json"

PathLike = Union[str, "os.PathLike[str]"]


def resolve_path(path: PathLike) -> str:
    """Expand ~ and environment variables and make ``path`` absolute."""
    expanded = os.path.expanduser(os.path.expandvars(str(path)))
    return os.path.abspath(expanded)


def commandtmp_root(workroot: PathLike) -> Path:
    """Directory under which every job directory of a workroot lives."""
    return Path(workroot).expanduser() / COMMANDTMP_DIRNAME


class JobDirectory:
    """Accessor for the job directory of one command."""

    def __init__(self, workroot: PathLike, command_id: str):
        if not command_id or "/" in command_id or command_id in (".", ".."):
            raise ValueError(f"Invalid command id for a job directory: {command_id!r}")
        self.workroot = Path(workroot).expanduser()
        self.command_id = command_id
        self.path = commandtmp_root(self.workroot) / command_id

    def __repr__(self) -> str:
        return f"JobDirectory({str(self.path)!r})"

    @property
    def script_path(self) -> Path:
        return self.path / CMD_SCRIPT_FILENAME

    @property
    def exit_path(self) -> Path:
        return self.path / CMD_EXIT_FILENAME

    @property
    def exit_tmp_path(self) -> Path:
        return self.path / (CMD_EXIT_FILENAME + ".tmp")

    @property
    def stdout_path(self) -> Path:
        return self.path / CMD_OUT_FILENAME

    @property
    def stderr_path(self) -> Path:
        return self.path / CMD_ERR_FILENAME

    @property
    def scheduler_log_path(self) -> Path:
        return self.path / SCHEDULER_LOG_FILENAME

    @property
    def state_path(self) -> Path:
        return self.path / STATE_FILENAME

    def bookkeeping_paths(self) -> List[str]:
        """Files written by jobexec itself rather than by the user command."""
        return [
            str(self.script_path),
            str(self.exit_path),
            str(self.exit_tmp_path),
            str(self.scheduler_log_path),
            str(self.state_path),
        ]

    def create(self, retries: int = 5, delay: float = 0.2) -> Path:
        """Create the job directory if absent and wait until it is visible.

        On networked filesystems a freshly created directory can take a moment
        to show up. Visibility is re-checked ``retries`` times before giving up.

        Raises:
            OSError: If the directory cannot be created or never becomes visible.
        """
        self.path.mkdir(parents=True, exist_ok=True)
        for attempt in range(retries + 1):
            if self.path.is_dir():
                return self.path
            logger.debug(
                "Job directory %s not yet visible (attempt %d)", self.path, attempt + 1
            )
            time.sleep(delay)
        raise OSError(f"Job directory {self.path} not visible after creation")

    def exists(self) -> bool:
        return self.path.is_dir()

    def has_script(self) -> bool:
        return self.script_path.exists()

    def has_exit_file(self) -> bool:
        return self.exit_path.exists()

    def write_script(self, script: str) -> Path:
        with open(self.script_path, "w", newline="\n") as f:
            f.write(script)
        os.chmod(self.script_path, 0o755)
        return self.script_path

    def read_exit_code(self) -> Optional[int]:
        """Return the recorded exit code, or None if absent or not yet parseable."""
        try:
            text = self.exit_path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            logger.debug("Exit code file %s is not text yet", self.exit_path)
            return None
        try:
            return int(text)
        except ValueError:
            logger.debug("Exit code file %s holds %r", self.exit_path, text)
            return None

    def write_exit_code(self, exit_code: int) -> None:
        """Atomically record an exit code (temporary file, then rename)."""
        with open(self.exit_tmp_path, "w") as f:
            f.write(f"{exit_code}\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(self.exit_tmp_path, self.exit_path)

    def read_text(self, path: Path) -> str:
        try:
            with open(path, "r") as f:
                return f.read()
        except FileNotFoundError as e:
            raise FileNotFoundError(
                f"File not found in job directory: {path}\n"
                "This usually means the job has not started yet or the "
                "job directory was cleaned up."
            ) from e

    def write_state(self, state: Dict[str, Any]) -> None:
        """Persist a JSON snapshot atomically."""
        tmp_path = self.state_path.with_suffix(".json.tmp")
        with open(tmp_path, "w") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_path, self.state_path)

    def discard_state(self) -> None:
        """Remove the snapshot so recovery no longer sees this command."""
        try:
            self.state_path.unlink()
        except FileNotFoundError:
            pass

    def read_state(self) -> Dict[str, Any]:
        with open(self.state_path, "r") as f:
            return json.load(f)
