"""Unit tests for SgeCommandExecutor."""

import subprocess
import threading
import time
from unittest.mock import MagicMock, patch

import pytest

from jobexec.command import EXIT_CODE_UNKNOWN, Command, CommandStatus
from jobexec.errors import ConfigurationError, StopError, SubmissionError
from jobexec.executors.sge import SgeCommandExecutor, parse_sge_job_id
from jobexec.polling import PollSettings

FAST = PollSettings(interval=0.01, fine_interval=0.01, exit_code_retries=10)


def _completed(stdout="", stderr="", returncode=0):
    return MagicMock(stdout=stdout, stderr=stderr, returncode=returncode)


@pytest.fixture
def executor(tmp_path):
    return SgeCommandExecutor(str(tmp_path), settings=FAST)


@pytest.fixture
def command():
    return Command(id="3", name="align reads", command="  bwa mem ref.fa r1.fq > out.sam ")


@patch("subprocess.run")
def test_start_submits_with_qsub(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="12345\n")

    executor.start({"queue": "all.q", "sge_request_options": "-l h_vmem=4G"}, command)

    cmd = mock_run.call_args[0][0]
    assert cmd.startswith("qsub -V -notify -terse ")
    assert "-q all.q" in cmd
    assert "-l h_vmem=4G" in cmd
    assert cmd.endswith(str(executor.job_dir.script_path))
    assert executor.job_id == "12345"
    assert command.executor is executor
    assert command.command == "bwa mem ref.fa r1.fq > out.sam"


@patch("subprocess.run")
def test_start_writes_wrapper_script_and_state(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="12345\n")

    executor.start({"procs": 4, "sge_pe": "smp", "walltime": "01:00:00"}, command)

    script = executor.get_script()
    assert "#$ -N align_reads" in script
    assert "#$ -pe smp 4" in script
    assert "#$ -l h_rt=01:00:00" in script
    assert "bwa mem ref.fa r1.fq > out.sam" in script

    state = executor.job_dir.read_state()
    assert state["backend"] == "sge"
    assert state["job_id"] == "12345"
    assert state["command_text"] == "bwa mem ref.fa r1.fq > out.sam"


@patch("subprocess.run")
def test_legacy_procs_is_normalized(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="1\n")
    config = {"procs": "orte 4"}

    executor.start(config, command)

    assert executor.config["procs"] == 4
    assert executor.config["sge_pe"] == "orte"
    assert "#$ -pe orte 4" in executor.get_script()
    # The caller's configuration is left untouched
    assert config == {"procs": "orte 4"}


@patch("subprocess.run")
def test_single_token_procs_fails_before_submission(mock_run, executor, command):
    with pytest.raises(ConfigurationError) as exc_info:
        executor.start({"procs": "orte"}, command)

    assert isinstance(exc_info.value, SubmissionError)
    mock_run.assert_not_called()
    assert executor.job_dir is None


@patch("subprocess.run")
def test_shared_config_is_not_mutated_by_concurrent_executors(mock_run, tmp_path):
    mock_run.return_value = _completed(stdout="1\n")
    shared = {"procs": "orte 2", "queue": "long"}

    for i in range(3):
        SgeCommandExecutor(str(tmp_path)).start(
            shared, Command(id=str(i), name="n", command="true")
        )

    assert shared == {"procs": "orte 2", "queue": "long"}


@patch("subprocess.run")
def test_submission_failure_keeps_job_directory(mock_run, executor, command):
    mock_run.return_value = _completed(stderr="Unable to run job: no queue", returncode=1)

    with pytest.raises(SubmissionError) as exc_info:
        executor.start({}, command)

    assert "no queue" in str(exc_info.value)
    assert exc_info.value.script is not None
    assert executor.job_dir.has_script()
    assert executor.status() is CommandStatus.QUEUEING


@patch("subprocess.run")
def test_submission_timeout_raises_submission_error(mock_run, executor, command):
    mock_run.side_effect = subprocess.TimeoutExpired("qsub", 60)

    with pytest.raises(SubmissionError, match="timed out"):
        executor.start({}, command)


@patch("subprocess.run")
def test_unparseable_job_id_raises_submission_error(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="Your job has been submitted\n")

    with pytest.raises(SubmissionError, match="parse job ID"):
        executor.start({}, command)


@patch("subprocess.run")
def test_status_ladder(mock_run, executor, command):
    assert executor.status() is CommandStatus.UNKNOWN

    mock_run.return_value = _completed(stdout="12345\n")
    executor.start({}, command)

    assert executor.status() is CommandStatus.RUNNING
    assert command.status is CommandStatus.RUNNING

    executor.job_dir.exit_path.write_text("0\n")
    assert executor.status() is CommandStatus.COMPLETE
    assert executor.status() is CommandStatus.COMPLETE
    assert command.status is CommandStatus.COMPLETE


@patch("subprocess.run")
def test_wait_for_returns_exit_code(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="12345\n")
    executor.start({}, command)
    executor.job_dir.exit_path.write_text("0\n")

    assert executor.wait_for() == 0
    assert command.status is CommandStatus.COMPLETE


@patch("subprocess.run")
def test_wait_for_gives_sentinel_for_garbage_exit_code(mock_run, tmp_path, command):
    mock_run.return_value = _completed(stdout="12345\n")
    executor = SgeCommandExecutor(
        str(tmp_path),
        settings=PollSettings(interval=0.01, fine_interval=0.001, exit_code_retries=2),
    )
    executor.start({}, command)
    executor.job_dir.exit_path.write_text("")

    assert executor.wait_for() == EXIT_CODE_UNKNOWN
    assert executor.status() is CommandStatus.RUNNING


@patch("subprocess.run")
def test_concurrent_waiters_agree(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="12345\n")
    executor.start({}, command)
    results = []
    lock = threading.Lock()

    def wait():
        code = executor.wait_for()
        with lock:
            results.append(code)

    threads = [threading.Thread(target=wait) for _ in range(2)]
    for t in threads:
        t.start()
    time.sleep(0.05)
    executor.job_dir.write_exit_code(6)
    for t in threads:
        t.join(timeout=5)

    assert results == [6, 6]


@patch("subprocess.run")
def test_stop_runs_qdel_and_unblocks_wait(mock_run, tmp_path, command):
    executor = SgeCommandExecutor(str(tmp_path), settings=PollSettings(interval=30.0))
    mock_run.return_value = _completed(stdout="12345\n")
    executor.start({}, command)
    results = []
    waiter = threading.Thread(target=lambda: results.append(executor.wait_for()))
    waiter.start()
    time.sleep(0.05)

    mock_run.return_value = _completed()
    executor.stop()
    waiter.join(timeout=5)

    assert mock_run.call_args[0][0] == "qdel 12345"
    assert executor.stopped
    assert not waiter.is_alive()
    assert results == [EXIT_CODE_UNKNOWN]


@patch("subprocess.run")
def test_stop_failure_raises_stop_error(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="12345\n")
    executor.start({}, command)

    mock_run.return_value = _completed(
        stderr="denied: job \"12345\" does not exist", returncode=1
    )
    with pytest.raises(StopError) as exc_info:
        executor.stop()

    assert "does not exist" in exc_info.value.stderr
    assert exc_info.value.exit_code == 1
    # The flag is set even though the cancellation tool failed
    assert executor.stopped


@patch("subprocess.run")
def test_ignorable_outputs_and_status_message(mock_run, executor, command):
    mock_run.return_value = _completed(stdout="12345\n")
    executor.start({}, command)

    outputs = executor.get_ignorable_outputs()

    assert str(executor.job_dir.script_path) in outputs
    assert str(executor.job_dir.exit_path) in outputs
    assert executor.status_message() == (
        "SGE Job ID: 12345 command: bwa mem ref.fa r1.fq > out.sam"
    )


@pytest.mark.parametrize(
    "output, expected",
    [("12345\n", "12345"), ("  77  ", "77"), ("4242.1-10:1\n", "4242")],
)
def test_parse_sge_job_id(output, expected):
    assert parse_sge_job_id(output) == expected


@pytest.mark.parametrize("output", ["", "\n", "error: no suitable queues"])
def test_parse_sge_job_id_rejects_garbage(output):
    with pytest.raises(ValueError):
        parse_sge_job_id(output)
