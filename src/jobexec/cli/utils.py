"""Shared utilities for the jobexec CLI."""

from __future__ import annotations

from typing import Optional

from ..config import DEFAULT_WORKROOT, load_environment
from ..errors import JobfileNotFoundError
from ..polling import PollSettings


def resolve_workroot(
    workroot: Optional[str] = None,
    env: Optional[str] = None,
    jobfile: Optional[str] = None,
) -> tuple[str, Optional[PollSettings]]:
    """Determine the workroot and polling settings from CLI args.

    An explicit ``workroot`` wins. Otherwise the Jobfile is consulted; when no
    Jobfile exists and none was requested, the default workroot is used.
    """
    if workroot:
        return workroot, None
    try:
        environment = load_environment(jobfile, env=env)
    except JobfileNotFoundError:
        if jobfile or env:
            raise
        return DEFAULT_WORKROOT, None
    return environment.workroot, environment.settings
