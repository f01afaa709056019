"""Unit tests for SlurmCommandExecutor."""

from unittest.mock import MagicMock, patch

import pytest

from jobexec.command import Command, CommandStatus
from jobexec.errors import ConfigurationError, StopError, SubmissionError
from jobexec.executors.slurm import SlurmCommandExecutor, parse_slurm_job_id
from jobexec.polling import PollSettings

FAST = PollSettings(interval=0.01, fine_interval=0.01, exit_code_retries=10)


def _completed(stdout="", stderr="", returncode=0):
    return MagicMock(stdout=stdout, stderr=stderr, returncode=returncode)


@pytest.fixture
def executor(tmp_path):
    return SlurmCommandExecutor(str(tmp_path), settings=FAST)


@pytest.fixture
def command():
    return Command(id="call_variants", name="call variants", command="gatk HaplotypeCaller")


@patch("subprocess.run")
def test_start_submits_with_sbatch(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="98765\n")

    executor.start(
        {
            "queue": "gpu",
            "account": "proj-42",
            "slurm_request_options": "--qos=high",
        },
        command,
    )

    cmd = mock_run.call_args[0][0]
    assert cmd.startswith("sbatch --parsable ")
    assert "--partition=gpu" in cmd
    assert "--account=proj-42" in cmd
    assert "--qos=high" in cmd
    assert executor.job_id == "98765"
    assert executor.status() is CommandStatus.RUNNING


@patch("subprocess.run")
def test_directives(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="1\n")

    executor.start(
        {"procs": "orte 8", "walltime": "02:00:00", "memory": "16G"}, command
    )

    script = executor.get_script()
    assert "#SBATCH --job-name=call_variants" in script
    assert "#SBATCH --ntasks=8" in script
    assert "#SBATCH --time=02:00:00" in script
    assert "#SBATCH --mem=16G" in script
    assert executor.config["procs"] == 8
    assert "parallel_environment" not in executor.config


@patch("subprocess.run")
def test_bad_procs_fails_before_submission(mock_run, executor, command):
    with pytest.raises(ConfigurationError):
        executor.start({"procs": "lots"}, command)

    mock_run.assert_not_called()


@patch("subprocess.run")
def test_sbatch_failure(mock_run, executor, command):
    mock_run.return_value = _completed(
        stderr="sbatch: error: invalid partition specified: gpu", returncode=1
    )

    with pytest.raises(SubmissionError) as exc_info:
        executor.start({"queue": "gpu"}, command)

    assert "invalid partition" in str(exc_info.value)
    assert exc_info.value.metadata["queue"] == "gpu"
    assert exc_info.value.metadata["exit_code"] == 1
    assert executor.job_dir.exists()


@patch("subprocess.run")
def test_wait_for_and_stop(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="98765\n")
    executor.start({}, command)
    executor.job_dir.write_exit_code(0)

    assert executor.wait_for() == 0

    mock_run.return_value = _completed(
        stderr="scancel: error: Invalid job id specified", returncode=1
    )
    with pytest.raises(StopError, match="Invalid job id"):
        executor.stop()
    assert mock_run.call_args[0][0] == "scancel 98765"


def test_status_message_before_start(executor):
    assert executor.status() is CommandStatus.UNKNOWN
    assert executor.get_ignorable_outputs() == []
    assert executor.status_message() == "Slurm Job ID: None command: "


def test_wait_for_before_start_raises(executor):
    with pytest.raises(RuntimeError):
        executor.wait_for()


@pytest.mark.parametrize(
    "output, expected",
    [
        ("98765\n", "98765"),
        ("98765;cluster-a\n", "98765"),
        ("Submitted batch job 4321\n", "4321"),
        ("sbatch: warning: defaulting partition\n555\n", "555"),
    ],
)
def test_parse_slurm_job_id(output, expected):
    assert parse_slurm_job_id(output) == expected


@pytest.mark.parametrize("output", ["", "sbatch: error: Batch job submission failed"])
def test_parse_slurm_job_id_rejects_garbage(output):
    with pytest.raises(ValueError):
        parse_slurm_job_id(output)
