"""Utilities for loading and resolving project Jobfile configuration.

A Jobfile is a TOML file selecting the execution backend and its settings,
optionally per environment::

    [default.executor]
    backend = "sge"
    workroot = ".jobexec"
    poll_interval = 5.0

    [default.executor.config]
    queue = "all.q"
    procs = "orte 4"

    [local.executor]
    backend = "local"

Environments may also live under ``[environments.<name>]``, and the whole
document may be nested under ``[tool.jobexec]`` of a ``pyproject.toml``.
Every environment is layered over ``default``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

try:  # pragma: no cover - import guard
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - python <3.11 fallback
    import tomli as tomllib  # type: ignore[no-redef]

from .errors import (
    ConfigurationError,
    JobfileEnvironmentNotFoundError,
    JobfileInvalidError,
    JobfileNotFoundError,
)
from .executors import CommandExecutor, create_executor, get_executor_class
from .polling import PollSettings


JOBEXEC_ENV_VAR = "JOBEXEC_ENV"
JOBFILE_ENV_VAR = "JOBEXEC_FILE"
DEFAULT_JOBFILE_NAMES = (
    "Jobfile",
    "Jobfile.toml",
    "jobfile",
    "jobfile.toml",
)
DEFAULT_ENVIRONMENT = "default"
DEFAULT_WORKROOT = ".jobexec"
DEFAULT_BACKEND = "local"

EXECUTOR_KEYS = frozenset(
    {
        "backend",
        "workroot",
        "poll_interval",
        "fine_poll_interval",
        "exit_code_retries",
        "submit_timeout",
        "config",
    }
)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class ExecutorEnvironment:
    """Resolved executor configuration for a specific Jobfile environment."""

    name: str
    path: Optional[Path]
    backend: str
    workroot: str
    settings: PollSettings
    config: Dict[str, Any]
    tool_timeout: Optional[float] = None

    def create_executor(self) -> CommandExecutor:
        """Create a fresh executor for one command."""
        return create_executor(
            self.backend,
            self.workroot,
            settings=self.settings,
            tool_timeout=self.tool_timeout,
        )


def load_environment(
    jobfile: Optional[PathLike] = None,
    *,
    env: Optional[str] = None,
    start_dir: Optional[PathLike] = None,
) -> ExecutorEnvironment:
    """Load a Jobfile environment layered over ``default``.

    The environment name comes from ``env``, then ``$JOBEXEC_ENV``, then
    falls back to ``default``.
    """
    path = resolve_jobfile_path(jobfile, start_dir=start_dir)
    environments = _environments(_read_jobfile(path), path)

    name = (env or os.getenv(JOBEXEC_ENV_VAR) or "").strip() or DEFAULT_ENVIRONMENT
    merged = _layer(environments.get(DEFAULT_ENVIRONMENT, {}), {})
    if name != DEFAULT_ENVIRONMENT:
        if name not in environments:
            raise JobfileEnvironmentNotFoundError(
                f"Environment '{name}' not defined in Jobfile '{path}'. "
                f"Available: {', '.join(sorted(environments)) or 'none'}."
            )
        merged = _layer(merged, environments[name])

    return environment_from_config(merged, name=name, path=path)


def environment_from_config(
    config: Dict[str, Any],
    *,
    name: str = DEFAULT_ENVIRONMENT,
    path: Optional[Path] = None,
) -> ExecutorEnvironment:
    """Build an `ExecutorEnvironment` from an already merged mapping.

    Raises:
        JobfileInvalidError: If the ``[executor]`` table is malformed or names
            an unknown backend.
    """
    executor_table = config.get("executor", {})
    if not isinstance(executor_table, dict):
        raise JobfileInvalidError("[executor] section must be a table.")
    unknown = sorted(set(executor_table) - EXECUTOR_KEYS)
    if unknown:
        raise JobfileInvalidError(
            f"Unknown [executor] keys in environment '{name}': {', '.join(unknown)}"
        )

    backend_config = executor_table.get("config", {})
    if not isinstance(backend_config, dict):
        raise JobfileInvalidError("[executor.config] section must be a table.")

    backend = str(executor_table.get("backend") or DEFAULT_BACKEND)
    try:
        get_executor_class(backend)
    except ConfigurationError as e:
        raise JobfileInvalidError(str(e)) from e

    # Relative workroots are anchored at the Jobfile, not the caller's cwd
    workroot = str(executor_table.get("workroot") or DEFAULT_WORKROOT)
    if path is not None and not os.path.isabs(os.path.expanduser(workroot)):
        workroot = str(path.parent / workroot)

    defaults = PollSettings()
    try:
        settings = PollSettings(
            interval=float(executor_table.get("poll_interval", defaults.interval)),
            fine_interval=float(
                executor_table.get("fine_poll_interval", defaults.fine_interval)
            ),
            exit_code_retries=int(
                executor_table.get("exit_code_retries", defaults.exit_code_retries)
            ),
        )
        tool_timeout = executor_table.get("submit_timeout")
        if tool_timeout is not None:
            tool_timeout = float(tool_timeout)
    except (TypeError, ValueError) as exc:
        raise JobfileInvalidError(f"Invalid polling settings: {exc}") from exc

    return ExecutorEnvironment(
        name=name,
        path=path,
        backend=backend,
        workroot=workroot,
        settings=settings,
        config=dict(backend_config),
        tool_timeout=tool_timeout,
    )


def resolve_jobfile_path(
    jobfile: Optional[PathLike] = None,
    *,
    start_dir: Optional[PathLike] = None,
) -> Path:
    """Pick the Jobfile: explicit path, then ``$JOBEXEC_FILE``, then discovery.

    An explicit path or ``$JOBEXEC_FILE`` may name a directory, in which case
    only that directory is searched.
    """
    hint = jobfile if jobfile is not None else os.getenv(JOBFILE_ENV_VAR)
    if not hint:
        return discover_jobfile(start_dir=start_dir)

    path = Path(hint).expanduser()
    if path.is_file():
        return path
    if path.is_dir():
        for candidate in _candidates(path):
            return candidate
        raise JobfileNotFoundError(
            f"No Jobfile inside directory '{path}'. Checked {DEFAULT_JOBFILE_NAMES}."
        )
    raise JobfileNotFoundError(f"Jobfile path '{path}' does not exist.")


def discover_jobfile(start_dir: Optional[PathLike] = None) -> Path:
    """Search ``start_dir`` (or ``cwd``) and then each parent for a Jobfile."""
    start = Path(start_dir).expanduser() if start_dir is not None else Path.cwd()
    try:
        start = start.resolve()
    except FileNotFoundError:
        start = start.absolute()

    for directory in (start, *start.parents):
        for candidate in _candidates(directory):
            return candidate

    raise JobfileNotFoundError(
        f"No Jobfile found in '{start}' or its parents. "
        f"Checked {DEFAULT_JOBFILE_NAMES}."
    )


def _candidates(directory: Path) -> Iterator[Path]:
    for name in DEFAULT_JOBFILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            yield candidate


def _read_jobfile(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise JobfileInvalidError(f"Invalid TOML in Jobfile '{path}': {exc}") from exc

    tool_table = data.get("tool")
    if isinstance(tool_table, dict) and isinstance(tool_table.get("jobexec"), dict):
        return tool_table["jobexec"]
    return data


def _environments(document: Dict[str, Any], path: Path) -> Dict[str, Dict[str, Any]]:
    """Map environment names to their tables, checking each is a table."""
    source = document.get("environments", document)
    if not isinstance(source, dict):
        raise JobfileInvalidError(f"[environments] in '{path}' must be a table.")

    environments: Dict[str, Dict[str, Any]] = {}
    for name, table in source.items():
        if name == "tool":
            continue
        if not isinstance(table, dict):
            raise JobfileInvalidError(
                f"Environment '{name}' in '{path}' must be a table."
            )
        environments[name] = table
    return environments


def _layer(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on a copy of ``base``."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _layer(merged[key], value)
        else:
            merged[key] = value
    return merged
