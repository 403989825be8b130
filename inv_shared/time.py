"""
Timestamps and durations.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager

_UNITS = ((86400, "day"), (3600, "hour"), (60, "minute"), (1, "second"))


def now() -> float:
    """Current wall-clock time in seconds."""
    return time.time()


def relative_time(ts: float, reference: float | None = None) -> str:
    """
    Describe how long ago `ts` was, e.g. "1 hour ago" or "12 seconds ago".

    Only the largest whole unit is reported.
    """
    elapsed = int(max(0.0, (now() if reference is None else float(reference)) - float(ts)))
    for size, unit in _UNITS:
        if elapsed >= size:
            count = elapsed // size
            return f"{count} {unit}{'' if count == 1 else 's'} ago"
    return "0 seconds ago"


@contextmanager
def timer(label: str, logger: logging.Logger, level: int = logging.DEBUG) -> Iterator[None]:
    """Log how long the wrapped block took."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.log(level, "%s took %.3fs", label, time.perf_counter() - start)
