"""Example running one pipeline command on the backend selected by a Jobfile.

Usage:
    python run_pipeline_step.py Jobfile --env local "echo hello; sleep 2"

Run it again with ``--recover`` after interrupting it to reattach to the
command instead of submitting a new one.
"""

import argparse
import sys

from jobexec import Command, load_environment
from jobexec.logging import configure_logging
from jobexec.recovery import find_executor


def main():
    parser = argparse.ArgumentParser(
        description="Run a shell command through a jobexec executor"
    )
    parser.add_argument("jobfile", help="Path to the Jobfile configuration to load.")
    parser.add_argument("command", help="Shell command to run.")
    parser.add_argument(
        "--env",
        default=None,
        help="Environment name within the Jobfile to use.",
    )
    parser.add_argument("--id", default="step1", help="Command id.")
    parser.add_argument(
        "--recover",
        action="store_true",
        help="Reattach to a command started by an earlier run.",
    )
    args = parser.parse_args()

    configure_logging()

    environment = load_environment(args.jobfile, env=args.env)
    if args.recover:
        executor = find_executor(
            environment.workroot,
            args.id,
            environment.settings,
            environment.tool_timeout,
        )
    else:
        executor = environment.create_executor()
        command = Command(id=args.id, name=args.id, command=args.command)
        executor.start(
            environment.config, command, output_log=sys.stdout, error_log=sys.stderr
        )

    print(executor.status_message())
    exit_code = executor.wait_for()
    print(f"Exit code: {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
