"""Tests for Jobfile loading."""

from pathlib import Path

import pytest

from jobexec.config import (
    JOBEXEC_ENV_VAR,
    JOBFILE_ENV_VAR,
    discover_jobfile,
    environment_from_config,
    load_environment,
)
from jobexec.errors import (
    JobfileEnvironmentNotFoundError,
    JobfileInvalidError,
    JobfileNotFoundError,
)
from jobexec.executors import LocalCommandExecutor, SgeCommandExecutor

JOBFILE = """
[default.executor]
backend = "sge"
workroot = "work"
poll_interval = 2.5
exit_code_retries = 4
submit_timeout = 30

[default.executor.config]
queue = "all.q"
procs = "orte 4"

[local.executor]
backend = "local"
poll_interval = 0.1

[gpu.executor.config]
queue = "gpu.q"
"""


@pytest.fixture
def jobfile(tmp_path, monkeypatch):
    monkeypatch.delenv(JOBEXEC_ENV_VAR, raising=False)
    monkeypatch.delenv(JOBFILE_ENV_VAR, raising=False)
    path = tmp_path / "Jobfile"
    path.write_text(JOBFILE)
    return path


def test_default_environment(jobfile):
    environment = load_environment(jobfile)

    assert environment.name == "default"
    assert environment.path == jobfile
    assert environment.backend == "sge"
    assert environment.workroot == str(jobfile.parent / "work")
    assert environment.settings.interval == 2.5
    assert environment.settings.fine_interval == 0.5
    assert environment.settings.exit_code_retries == 4
    assert environment.tool_timeout == 30.0
    assert environment.config == {"queue": "all.q", "procs": "orte 4"}

    executor = environment.create_executor()
    assert isinstance(executor, SgeCommandExecutor)
    assert executor.tool_timeout == 30.0


def test_named_environment_is_merged_over_default(jobfile):
    environment = load_environment(jobfile, env="gpu")

    assert environment.backend == "sge"
    assert environment.config == {"queue": "gpu.q", "procs": "orte 4"}


def test_environment_from_env_var(jobfile, monkeypatch):
    monkeypatch.setenv(JOBEXEC_ENV_VAR, "local")

    environment = load_environment(jobfile)

    assert environment.name == "local"
    assert environment.settings.interval == 0.1
    assert isinstance(environment.create_executor(), LocalCommandExecutor)


def test_jobfile_from_env_var(jobfile, monkeypatch, tmp_path):
    monkeypatch.setenv(JOBFILE_ENV_VAR, str(jobfile))

    environment = load_environment(start_dir=tmp_path / "elsewhere")

    assert environment.path == jobfile


def test_discovery_searches_parents(jobfile):
    nested = jobfile.parent / "a" / "b"
    nested.mkdir(parents=True)

    assert discover_jobfile(nested) == jobfile.resolve()


def test_tool_table(tmp_path, monkeypatch):
    monkeypatch.delenv(JOBEXEC_ENV_VAR, raising=False)
    path = tmp_path / "pyproject.toml"
    path.write_text('[tool.jobexec.default.executor]\nbackend = "slurm"\n')

    assert load_environment(path).backend == "slurm"


def test_missing_environment(jobfile):
    with pytest.raises(JobfileEnvironmentNotFoundError, match="producton"):
        load_environment(jobfile, env="producton")


def test_missing_jobfile(tmp_path):
    with pytest.raises(JobfileNotFoundError):
        load_environment(tmp_path / "nope.toml")


def test_invalid_toml(tmp_path):
    path = tmp_path / "Jobfile"
    path.write_text("[default\n")

    with pytest.raises(JobfileInvalidError):
        load_environment(path)


def test_invalid_poll_interval():
    with pytest.raises(JobfileInvalidError):
        environment_from_config({"executor": {"poll_interval": "soon"}})


def test_defaults_without_executor_table():
    environment = environment_from_config({})

    assert environment.backend == "local"
    assert environment.workroot == ".jobexec"
    assert environment.tool_timeout is None
    assert Path(environment.workroot).name == ".jobexec"


def test_unknown_backend_is_invalid():
    with pytest.raises(JobfileInvalidError, match="pbs"):
        environment_from_config({"executor": {"backend": "pbs"}})


def test_unknown_executor_key_is_invalid():
    with pytest.raises(JobfileInvalidError, match="poll_intervall"):
        environment_from_config({"executor": {"poll_intervall": 1}})


def test_environments_table(tmp_path, monkeypatch):
    monkeypatch.delenv(JOBEXEC_ENV_VAR, raising=False)
    path = tmp_path / "Jobfile"
    path.write_text(
        "[environments.default.executor]\n"
        'backend = "slurm"\n'
        "[environments.debug.executor]\n"
        "poll_interval = 0.5\n"
    )

    environment = load_environment(path, env="debug")

    assert environment.backend == "slurm"
    assert environment.settings.interval == 0.5
