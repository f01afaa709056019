"""Jobs subcommand for the jobexec CLI."""

from __future__ import annotations

import sys
from typing import Annotated, Optional

import cyclopts
from rich.console import Console

from ..recovery import find_executor, recover_executors
from .formatters import print_command_details, print_commands_table
from .utils import resolve_workroot

jobs_app = cyclopts.App(
    name="jobs",
    help="Inspect and control commands recorded under a workroot.",
)

console = Console(stderr=True)

WorkrootOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--workroot", "-w"],
        help="Working-state root holding commandtmp/.",
    ),
]
EnvOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--env", "-e"],
        help="Environment name from Jobfile.",
    ),
]
JobfileOption = Annotated[
    Optional[str],
    cyclopts.Parameter(
        name=["--jobfile", "-f"],
        help="Path to Jobfile.",
    ),
]
CommandIdArgument = Annotated[
    str,
    cyclopts.Parameter(
        help="Command ID (name of its job directory).",
    ),
]


@jobs_app.command(name="list")
def list_jobs(
    workroot: WorkrootOption = None,
    env: EnvOption = None,
    jobfile: JobfileOption = None,
) -> None:
    """List commands and their current state."""
    root, settings = resolve_workroot(workroot, env, jobfile)
    print_commands_table(recover_executors(root, settings))


@jobs_app.command(name="show")
def show_job(
    command_id: CommandIdArgument,
    workroot: WorkrootOption = None,
    env: EnvOption = None,
    jobfile: JobfileOption = None,
) -> None:
    """Show details for a specific command."""
    root, settings = resolve_workroot(workroot, env, jobfile)
    print_command_details(find_executor(root, command_id, settings))


@jobs_app.command(name="wait")
def wait_job(
    command_id: CommandIdArgument,
    workroot: WorkrootOption = None,
    env: EnvOption = None,
    jobfile: JobfileOption = None,
) -> None:
    """Wait for a command to complete and exit with its exit code."""
    root, settings = resolve_workroot(workroot, env, jobfile)
    executor = find_executor(root, command_id, settings)
    console.print(f"[dim]Waiting for {executor.status_message()}[/dim]")
    exit_code = executor.wait_for()
    console.print(f"Command {command_id} finished with exit code {exit_code}")
    sys.exit(exit_code if exit_code >= 0 else 1)


@jobs_app.command(name="stop")
def stop_job(
    command_id: CommandIdArgument,
    workroot: WorkrootOption = None,
    env: EnvOption = None,
    jobfile: JobfileOption = None,
) -> None:
    """Cancel a command through its backend."""
    root, settings = resolve_workroot(workroot, env, jobfile)
    executor = find_executor(root, command_id, settings)
    executor.stop()
    console.print(f"[green]Stop requested for command {command_id}.[/green]")
