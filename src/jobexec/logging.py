"""
Logging helpers for jobexec.

`configure_logging` installs one root handler for applications driving
executors. Every external scheduler invocation (qsub, sbatch, qdel, scancel)
is logged at DEBUG by ``jobexec.executors.template``; ``tool_trace`` lets
those traces through without turning the rest of the package up to DEBUG.
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Tuple

TOOL_LOGGER_NAME = "jobexec.executors.template"


class CommandLoggerAdapter(logging.LoggerAdapter):
    """Prefix records with the id of the command they concern."""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['command_id']}] {msg}", kwargs


def command_logger(logger: logging.Logger, command_id: str) -> CommandLoggerAdapter:
    return CommandLoggerAdapter(logger, {"command_id": command_id})


def configure_logging(
    level: int = logging.INFO, use_rich: bool = True, tool_trace: bool = False
) -> None:
    """Configure application logging.

    Args:
        level: Root logging level (default: logging.INFO).
        use_rich: Install a Rich handler instead of a plain stream handler.
        tool_trace: Log every external scheduler command and its output,
            whatever ``level`` is.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.setLevel(logging.DEBUG if tool_trace else level)

    handler: Optional[logging.Handler] = None
    if use_rich:
        try:
            from rich.logging import RichHandler  # type: ignore

            handler = RichHandler(
                show_time=True,
                show_path=False,
                markup=False,
                rich_tracebacks=True,
                enable_link_path=False,
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
        except Exception:
            handler = None

    if handler is None:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    root.addHandler(handler)

    # With tool_trace the root is at DEBUG; hold the package at the requested
    # level and open only the tool logger.
    package = logging.getLogger("jobexec")
    tool = logging.getLogger(TOOL_LOGGER_NAME)
    if tool_trace:
        package.setLevel(level)
        tool.setLevel(logging.DEBUG)
    else:
        package.setLevel(logging.NOTSET)
        tool.setLevel(logging.NOTSET)
