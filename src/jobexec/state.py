"""Persistable snapshot of an in-flight executor."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from .errors import RecoveryError

STATE_VERSION = 1


@dataclass
class ExecutorState:
    """Everything needed to reattach to a job after a controller restart.

    Live handles (processes, threads, open streams) are never part of the
    snapshot; executors reacquire what they need lazily after restore.

    Attributes:
        backend: Backend tag selecting the executor class on restore.
        command_id: Identifier of the command (names the job directory).
        name: Human readable command name.
        command_text: Literal shell command text.
        workroot: Absolute working-state root the job directory lives under.
        job_dir: Absolute path of the job directory.
        job_id: Backend job identifier (the process id for the local
            backend), if submission completed.
        config: Normalized backend configuration used for submission.
    """

    backend: str
    command_id: str
    name: str
    command_text: str
    workroot: str
    job_dir: str
    job_id: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["version"] = STATE_VERSION
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutorState":
        if not isinstance(data, dict):
            raise RecoveryError("Executor state must be a JSON object.")
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise RecoveryError(f"Unsupported executor state version: {version!r}")
        missing = [
            key
            for key in ("backend", "command_id", "command_text", "workroot", "job_dir")
            if not data.get(key)
        ]
        if missing:
            raise RecoveryError(
                f"Executor state is missing required keys: {', '.join(missing)}"
            )
        return cls(
            backend=str(data["backend"]),
            command_id=str(data["command_id"]),
            name=str(data.get("name") or data["command_id"]),
            command_text=str(data["command_text"]),
            workroot=str(data["workroot"]),
            job_dir=str(data["job_dir"]),
            job_id=str(data["job_id"]) if data.get("job_id") else None,
            config=dict(data.get("config") or {}),
        )
