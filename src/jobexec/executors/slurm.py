"""
Slurm executor.

Submits the wrapper script with ``sbatch --parsable`` and cancels with
``scancel``. Like the SGE executor, completion is detected from the exit-code
file in the job directory rather than from ``squeue``/``sacct``.
"""

import logging
import re
import shlex
from typing import Any, Dict, List, Mapping, Optional

from ..command import Command
from .batch import BatchCommandExecutor
from .template import normalize_procs, sanitize_job_name

logger = logging.getLogger(__name__)

_SUBMITTED_RE = re.compile(r"Submitted batch job (\d+)")
_PARSABLE_RE = re.compile(r"^(\d+)(?:;\S+)?$")


def parse_slurm_job_id(text: str) -> str:
    """Parse ``sbatch`` output in either parsable or human readable form."""
    match = _SUBMITTED_RE.search(text)
    if match:
        return match.group(1)
    for line in reversed(text.strip().splitlines()):
        match = _PARSABLE_RE.match(line.strip())
        if match:
            return match.group(1)
    raise ValueError(f"no job id in sbatch output: {text!r}")


class SlurmCommandExecutor(BatchCommandExecutor):
    """
    Executes commands through Slurm.

    Recognized configuration keys: ``queue`` (partition), ``account``,
    ``procs``, ``walltime``, ``memory`` and ``slurm_request_options``
    (appended verbatim to the sbatch command line).
    """

    backend = "slurm"
    label = "Slurm"

    def normalize_config(self, config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        normalized = normalize_procs(config, "parallel_environment")
        pe = normalized.pop("parallel_environment", None)
        if pe:
            logger.debug("Ignoring parallel environment %r for Slurm", pe)
        return normalized

    def build_directives(self, command: Command) -> List[str]:
        directives = [
            f"#SBATCH --job-name={sanitize_job_name(command.name)}",
            f"#SBATCH --output={shlex.quote(str(self.job_dir.scheduler_log_path))}",
        ]
        if self.config.get("procs"):
            directives.append(f"#SBATCH --ntasks={self.config['procs']}")
        if self.config.get("walltime"):
            directives.append(f"#SBATCH --time={self.config['walltime']}")
        if self.config.get("memory"):
            directives.append(f"#SBATCH --mem={self.config['memory']}")
        return directives

    def build_submit_command(self, script_path: str) -> str:
        # sbatch exports the submission environment by default
        parts = ["sbatch", "--parsable"]
        if self.config.get("queue"):
            parts.append(f"--partition={shlex.quote(str(self.config['queue']))}")
        if self.config.get("account"):
            parts.append(f"--account={shlex.quote(str(self.config['account']))}")
        if self.config.get("slurm_request_options"):
            parts.append(str(self.config["slurm_request_options"]))
        parts.append(shlex.quote(script_path))
        return " ".join(parts)

    def build_cancel_command(self, job_id: str) -> str:
        return f"scancel {shlex.quote(job_id)}"

    def parse_job_id(self, text: str) -> str:
        return parse_slurm_job_id(text)
