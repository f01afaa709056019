"""Forwarding of job output files to caller supplied streams."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO, Tuple

logger = logging.getLogger(__name__)


class OutputForwarder(threading.Thread):
    """Background thread that tails job output files into streams.

    Files that do not exist yet are skipped until they appear. Once
    ``finished()`` reports true the files are drained one last time and the
    thread exits.
    """

    def __init__(
        self,
        targets: List[Tuple[Path, TextIO]],
        finished: Callable[[], bool],
        interval: float = 1.0,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(daemon=True, name=name or "jobexec-output-forwarder")
        self.targets = targets
        self.finished = finished
        self.interval = interval
        self._stop_event = threading.Event()
        self._offsets: Dict[Path, int] = {path: 0 for path, _ in targets}

    def stop(self) -> None:
        self._stop_event.set()

    def forward_once(self) -> None:
        for path, stream in self.targets:
            try:
                with open(path, "r", errors="replace") as f:
                    f.seek(self._offsets[path])
                    chunk = f.read()
                    self._offsets[path] = f.tell()
            except FileNotFoundError:
                continue
            if chunk:
                stream.write(chunk)
                stream.flush()

    def run(self) -> None:  # pragma: no cover - background thread
        done = False
        while not done:
            # Sample before reading so output written just before the job
            # finished is still forwarded.
            done = self.finished() or self._stop_event.is_set()
            try:
                self.forward_once()
            except (OSError, ValueError) as exc:
                logger.debug("Output forwarding stopped: %s", exc)
                return
            if not done:
                self._stop_event.wait(self.interval)
