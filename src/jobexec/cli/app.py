"""Root application for the jobexec CLI."""

from __future__ import annotations

import logging
import os
import sys

import cyclopts
from rich.console import Console

from ..logging import configure_logging
from .jobs import jobs_app

console = Console(stderr=True)


def _get_version() -> str:
    """Get package version for --version flag."""
    try:
        from importlib.metadata import version

        return version("jobexec")
    except Exception:
        return "unknown"


app = cyclopts.App(
    name="jobexec",
    help="CLI for jobexec - inspect and control commands run on execution backends.",
    version=_get_version(),
)

app.command(jobs_app)


def _handle_error(e: Exception) -> None:
    """Handle exceptions with user-friendly messages."""
    from ..errors import (
        JobfileEnvironmentNotFoundError,
        JobfileError,
        JobfileInvalidError,
        JobfileNotFoundError,
        RecoveryError,
        StopError,
    )

    if isinstance(e, JobfileNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Create a Jobfile in your project directory, "
            "or use --workroot to point at the working-state directory.[/dim]"
        )
    elif isinstance(e, JobfileEnvironmentNotFoundError):
        console.print(f"[red]Error:[/red] {e}")
        console.print("\n[dim]Hint: Check the environment names in your Jobfile.[/dim]")
    elif isinstance(e, JobfileInvalidError):
        console.print(f"[red]Error:[/red] {e}")
        console.print("\n[dim]Hint: Check your Jobfile for TOML syntax errors.[/dim]")
    elif isinstance(e, JobfileError):
        console.print(f"[red]Jobfile Error:[/red] {e}")
    elif isinstance(e, RecoveryError):
        console.print(f"[red]Recovery Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: Use 'jobexec jobs list' to see recorded commands.[/dim]"
        )
    elif isinstance(e, StopError):
        console.print(f"[red]Stop Error:[/red] {e}")
        console.print(
            "\n[dim]Hint: The command may already have completed; "
            "check 'jobexec jobs show'.[/dim]"
        )
    else:
        console.print(f"[red]Error:[/red] {e}")

    sys.exit(1)


def main() -> None:
    """Entry point for the jobexec CLI."""
    level = logging.DEBUG if os.getenv("JOBEXEC_DEBUG") else logging.WARNING
    configure_logging(level, tool_trace=bool(os.getenv("JOBEXEC_TRACE_TOOLS")))
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(130)
    except SystemExit:
        raise
    except Exception as e:
        _handle_error(e)
