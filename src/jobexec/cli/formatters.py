"""Rich output formatters for the jobexec CLI."""

from __future__ import annotations

from typing import Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..command import CommandStatus
from ..executors import CommandExecutor

console = Console()

# Color mapping for command states
STATE_COLORS: Dict[CommandStatus, str] = {
    CommandStatus.UNKNOWN: "magenta",
    CommandStatus.QUEUEING: "yellow",
    CommandStatus.RUNNING: "green",
    CommandStatus.COMPLETE: "blue",
}


def _styled_state(state: CommandStatus) -> str:
    color = STATE_COLORS.get(state, "white")
    return f"[{color}]{state}[/{color}]"


def print_commands_table(executors: List[CommandExecutor]) -> None:
    """Display recovered commands as a Rich table with color-coded states.

    Args:
        executors: Executors restored from a workroot.
    """
    if not executors:
        console.print("[dim]No commands found.[/dim]")
        return

    table = Table(title="Commands")
    table.add_column("Command ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="white")
    table.add_column("Backend", style="dim")
    table.add_column("Job ID", style="dim")
    table.add_column("State", style="white")

    for executor in executors:
        state = executor.to_state()
        table.add_row(
            state.command_id,
            state.name,
            state.backend,
            state.job_id or "",
            _styled_state(executor.status()),
        )

    console.print(table)


def print_command_details(executor: CommandExecutor) -> None:
    """Display detailed command info in a panel."""
    state = executor.to_state()
    status = executor.status()
    color = STATE_COLORS.get(status, "white")

    details: List[str] = []
    details.append(f"[bold]State:[/bold] {_styled_state(status)}")
    details.append(f"[bold]Backend:[/bold] {state.backend}")
    if state.job_id:
        details.append(f"[bold]Job ID:[/bold] {state.job_id}")
    details.append(f"[bold]Job Dir:[/bold] {state.job_dir}")
    for key, value in sorted(state.config.items()):
        details.append(f"[bold]{key}:[/bold] {value}")
    details.append(f"[bold]Command:[/bold] {state.command_text}")

    panel = Panel(
        "\n".join(details),
        title=f"Command {state.command_id} ({state.name})",
        border_style=color,
    )
    console.print(panel)
