"""
Progress reporting for long preview runs.

Reporting is one-way: reporters never influence control flow.
"""
from __future__ import annotations

import itertools
from typing import Any, Dict, Protocol

from ...shared import get_logger

logger = get_logger(__name__)


class ProgressReporter(Protocol):
    def start(self, title: str) -> int: ...

    def report(self, progress_id: int, current: int, total: int, status: str) -> None: ...

    def remove(self, progress_id: int) -> None: ...


class LoggingProgress:
    """Reporter that logs progress and keeps the latest snapshot per run."""

    def __init__(self, log_every: int = 100):
        self._ids = itertools.count(1)
        self._log_every = max(1, int(log_every))
        self.snapshots: Dict[int, Dict[str, Any]] = {}

    def start(self, title: str) -> int:
        progress_id = next(self._ids)
        self.snapshots[progress_id] = {"title": title, "current": 0, "total": 0, "status": ""}
        logger.info("%s started", title)
        return progress_id

    def report(self, progress_id: int, current: int, total: int, status: str) -> None:
        snap = self.snapshots.get(progress_id)
        if snap is None:
            return
        snap.update(current=int(current), total=int(total), status=status)
        if current == 1 or current == total or current % self._log_every == 0:
            logger.debug("%s: %s/%s %s", snap["title"], current, total, status)

    def remove(self, progress_id: int) -> None:
        snap = self.snapshots.pop(progress_id, None)
        if snap is not None:
            logger.info("%s finished (%s/%s)", snap["title"], snap["current"], snap["total"])
