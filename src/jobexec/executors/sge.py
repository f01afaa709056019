"""
Sun Grid Engine (SGE) executor.

Commands are wrapped in a script that is handed to ``qsub``. The script
records the command's exit code in ``cmd.exit`` inside the job directory and
completion is detected by polling for that file, so ``qstat`` is never
needed. Cancellation uses ``qdel``.
"""

import logging
import shlex
from typing import Any, Dict, List, Mapping, Optional

from ..command import Command
from .batch import BatchCommandExecutor
from .template import normalize_procs, sanitize_job_name

logger = logging.getLogger(__name__)


def parse_sge_job_id(text: str) -> str:
    """Parse the output of ``qsub -terse``.

    Array submissions print ``<id>.<range>``; only the job id is kept.
    """
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        raise ValueError("empty qsub output")
    job_id = lines[-1].split(".", 1)[0]
    if not job_id.isdigit():
        raise ValueError(f"unexpected qsub output: {text!r}")
    return job_id


class SgeCommandExecutor(BatchCommandExecutor):
    """
    Executes commands through Sun Grid Engine.

    Recognized configuration keys: ``queue``, ``account``, ``procs``,
    ``sge_pe``, ``walltime``, ``memory`` and ``sge_request_options`` (appended
    verbatim to the qsub command line).
    """

    backend = "sge"
    label = "SGE"

    def normalize_config(self, config: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        # Backwards compatibility for the original procs format "orte 1"
        normalized = normalize_procs(config, "sge_pe")
        logger.info("Using account: %s", normalized.get("account"))
        return normalized

    def build_directives(self, command: Command) -> List[str]:
        directives = [
            "#$ -S /bin/bash",
            f"#$ -N {sanitize_job_name(command.name)}",
            f"#$ -o {shlex.quote(str(self.job_dir.scheduler_log_path))}",
            "#$ -j y",
        ]
        procs = self.config.get("procs")
        if procs:
            pe = self.config.get("sge_pe")
            if pe:
                directives.append(f"#$ -pe {pe} {procs}")
            elif procs > 1:
                logger.warning(
                    "procs=%s requested for command %s without a parallel "
                    "environment (sge_pe); ignoring",
                    procs,
                    command.id,
                )
        if self.config.get("walltime"):
            directives.append(f"#$ -l h_rt={self.config['walltime']}")
        if self.config.get("memory"):
            directives.append(f"#$ -l h_vmem={self.config['memory']}")
        return directives

    def build_submit_command(self, script_path: str) -> str:
        """
        Prepare the 'qsub' command line:
        - V: export the submission environment to the job
        - notify: send warning signals before the job is killed
        - terse: print just the job id on the output stream
        """
        parts = ["qsub", "-V", "-notify", "-terse"]
        if self.config.get("queue"):
            parts.append(f"-q {shlex.quote(str(self.config['queue']))}")
        if self.config.get("account"):
            parts.append(f"-A {shlex.quote(str(self.config['account']))}")
        if self.config.get("sge_request_options"):
            parts.append(str(self.config["sge_request_options"]))
        parts.append(shlex.quote(script_path))
        return " ".join(parts)

    def build_cancel_command(self, job_id: str) -> str:
        return f"qdel {shlex.quote(job_id)}"

    def parse_job_id(self, text: str) -> str:
        return parse_sge_job_id(text)
