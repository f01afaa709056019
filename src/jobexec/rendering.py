"""
This module renders the wrapper scripts handed to batch schedulers.
"""

import os
import shlex
from typing import List, Optional, Sequence

from .jobdir import JobDirectory


def render_wrapper_script(
    command_text: str,
    job_dir: JobDirectory,
    directives: Sequence[str] = (),
    cwd: Optional[str] = None,
) -> str:
    """
    Renders a wrapper script for a command.

    The script runs the command from ``cwd`` (the submission-time working
    directory), redirects its stdout/stderr into the job directory, and writes
    its numeric exit code to the exit-code file as the final action. The exit
    code is written to a temporary file and renamed, so the exit-code file
    never exists without its content.

    Args:
        command_text: Literal shell command, possibly spanning several lines.
        job_dir: Job directory owning the redirection targets and exit file.
        directives: Scheduler header lines (``#$ ...``, ``#SBATCH ...``).
        cwd: Working directory; defaults to the current directory.
    """
    if cwd is None:
        cwd = os.getcwd()

    stdout_path = shlex.quote(str(job_dir.stdout_path))
    stderr_path = shlex.quote(str(job_dir.stderr_path))
    exit_tmp_path = shlex.quote(str(job_dir.exit_tmp_path))
    exit_path = shlex.quote(str(job_dir.exit_path))

    script_lines: List[str] = ["#!/bin/bash"]
    script_lines.extend(directives)
    script_lines.append("")
    script_lines.append(f"cd {shlex.quote(cwd)} || exit 1")
    script_lines.append("")

    # A subshell keeps an 'exit' inside the command from skipping the
    # exit-code bookkeeping below.
    script_lines.append("(")
    script_lines.extend(command_text.strip().splitlines() or [":"])
    script_lines.append(f") > {stdout_path} 2> {stderr_path}")
    script_lines.append("EXECUTION_STATUS=$?")
    script_lines.append("")
    script_lines.append(f"echo $EXECUTION_STATUS > {exit_tmp_path}")
    script_lines.append(f"mv -f {exit_tmp_path} {exit_path}")
    script_lines.append("exit $EXECUTION_STATUS")

    final_script = "\n".join(
        line.rstrip("\r") for line in "\n".join(script_lines).splitlines()
    )
    return final_script + "\n"
