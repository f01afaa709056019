# jobexec/__init__.py

"""
This package runs pipeline commands on interchangeable execution backends
(a local process, Sun Grid Engine, Slurm) and tracks each job from submission
to completion, including across restarts of the controlling process.
"""

__version__ = "0.1.0"

from .command import EXIT_CODE_UNKNOWN, Command, CommandStatus
from .config import ExecutorEnvironment, load_environment
from .errors import (
    ConfigurationError,
    StatusIndeterminateError,
    StopError,
    SubmissionError,
)
from .executors import (
    CommandExecutor,
    LocalCommandExecutor,
    SgeCommandExecutor,
    SlurmCommandExecutor,
    create_executor,
)
from .polling import PollSettings
from .recovery import recover_executors, restore_executor
from .state import ExecutorState

__all__ = [
    "EXIT_CODE_UNKNOWN",
    "Command",
    "CommandStatus",
    "CommandExecutor",
    "LocalCommandExecutor",
    "SgeCommandExecutor",
    "SlurmCommandExecutor",
    "create_executor",
    "PollSettings",
    "ExecutorEnvironment",
    "ExecutorState",
    "load_environment",
    "recover_executors",
    "restore_executor",
    "ConfigurationError",
    "SubmissionError",
    "StatusIndeterminateError",
    "StopError",
]
