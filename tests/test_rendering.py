"""Tests for wrapper script rendering."""

import os
import subprocess

from jobexec.jobdir import JobDirectory
from jobexec.rendering import render_wrapper_script


def _render_and_run(tmp_path, command_text):
    job_dir = JobDirectory(tmp_path / "work", "7")
    job_dir.create()
    script = render_wrapper_script(command_text, job_dir, cwd=str(tmp_path))
    job_dir.write_script(script)
    result = subprocess.run(["/bin/bash", str(job_dir.script_path)])
    return job_dir, result


def test_script_contains_directives_and_command(tmp_path):
    job_dir = JobDirectory(tmp_path, "1")

    script = render_wrapper_script(
        "echo hello", job_dir, directives=["#$ -N test"], cwd="/data/run"
    )

    lines = script.splitlines()
    assert lines[0] == "#!/bin/bash"
    assert lines[1] == "#$ -N test"
    assert "cd /data/run || exit 1" in lines
    assert "echo hello" in lines
    assert str(job_dir.stdout_path) in script
    assert str(job_dir.stderr_path) in script


def test_exit_code_is_written_last(tmp_path):
    job_dir = JobDirectory(tmp_path, "1")

    script = render_wrapper_script("false", job_dir, cwd="/")

    lines = [line for line in script.splitlines() if line]
    assert lines[-1] == "exit $EXECUTION_STATUS"
    assert lines[-2].startswith("mv -f ")
    assert lines[-2].endswith(str(job_dir.exit_path))


def test_rendered_script_records_exit_code_and_output(tmp_path):
    job_dir, result = _render_and_run(tmp_path, "echo out\necho err >&2\nexit 3")

    assert result.returncode == 3
    assert job_dir.read_exit_code() == 3
    assert job_dir.stdout_path.read_text() == "out\n"
    assert job_dir.stderr_path.read_text() == "err\n"
    assert not job_dir.exit_tmp_path.exists()


def test_rendered_script_runs_in_submission_directory(tmp_path):
    job_dir, result = _render_and_run(tmp_path, "pwd")

    assert result.returncode == 0
    assert os.path.realpath(job_dir.stdout_path.read_text().strip()) == os.path.realpath(
        tmp_path
    )


def test_rendering_is_silent(tmp_path, caplog):
    job_dir = JobDirectory(tmp_path, "7")

    with caplog.at_level("DEBUG"):
        render_wrapper_script("echo hi", job_dir, cwd=str(tmp_path))

    assert caplog.records == []
    assert not job_dir.exists()
