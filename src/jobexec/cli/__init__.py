"""Command-line interface for jobexec.

This module provides the `jobexec` CLI command for inspecting commands whose
state is recorded under a workroot, including after a controller restart.

Usage:
    jobexec jobs list [--workroot DIR] [--env ENV] [--jobfile PATH]
    jobexec jobs show <command-id> [--workroot DIR]
    jobexec jobs wait <command-id> [--workroot DIR]
    jobexec jobs stop <command-id> [--workroot DIR]
"""

from .app import app, main

__all__ = ["app", "main"]
