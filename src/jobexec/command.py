"""Commands and their lifecycle status."""

from __future__ import annotations

import enum
import functools
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .executors.base import CommandExecutor

# Returned by wait_for() when the exit code cannot be determined or the
# executor was stopped before the job finished.
EXIT_CODE_UNKNOWN = -1


@functools.total_ordering
class CommandStatus(enum.Enum):
    """Lifecycle of a command, ordered UNKNOWN < QUEUEING < RUNNING < COMPLETE.

    - UNKNOWN: no wrapper script exists yet (pre-submission or lost state)
    - QUEUEING: wrapper script exists but no backend job id is known
    - RUNNING: a job id is known but the exit-code file has not appeared
    - COMPLETE: the exit-code file holds a parseable exit code (terminal)
    """

    UNKNOWN = 0
    QUEUEING = 1
    RUNNING = 2
    COMPLETE = 3

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, CommandStatus):
            return NotImplemented
        return self.value < other.value

    def __str__(self) -> str:
        return self.name


@dataclass
class Command:
    """A unit of work dispatched for one pipeline stage.

    Attributes:
        id: Identifier, unique within a pipeline run. Names the job directory.
        name: Human readable name (used as the scheduler job name).
        command: Literal shell command text.
        status: Last observed status, updated by the owning executor.
        executor: The executor that owns this command's execution.
    """

    id: str
    name: str
    command: str
    status: CommandStatus = CommandStatus.UNKNOWN
    executor: Optional["CommandExecutor"] = field(
        default=None, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if not self.id or not str(self.id).strip():
            raise ValueError(f"command id must be a non-empty string, got {self.id!r}")
        self.id = str(self.id)
