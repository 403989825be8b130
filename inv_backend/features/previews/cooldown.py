"""
Periodic pauses for long preview runs so the host stays responsive.
"""
from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from ...config import COOLDOWN_DURATION_SECONDS, COOLDOWN_ENABLED, COOLDOWN_INTERVAL_MINUTES
from ...shared import get_logger

logger = get_logger(__name__)


class Cooldown:
    """
    Pause for `duration_seconds` after every `interval_minutes` of work.

    `wait()` is awaited once per processed item; it is a no-op while disabled
    or while the current work interval has not elapsed.
    """

    def __init__(
        self,
        enabled: bool = COOLDOWN_ENABLED,
        interval_minutes: float = COOLDOWN_INTERVAL_MINUTES,
        duration_seconds: float = COOLDOWN_DURATION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.enabled = bool(enabled)
        self.interval = max(0.0, float(interval_minutes)) * 60.0
        self.duration = max(0.0, float(duration_seconds))
        self._clock = clock
        self._sleep = sleep
        self._started = clock()

    def reset(self) -> None:
        self._started = self._clock()

    async def wait(self) -> bool:
        """Return True when a pause was taken."""
        if not self.enabled or self.duration <= 0:
            return False
        if self._clock() - self._started < self.interval:
            return False
        logger.info("Cooling down for %.0fs", self.duration)
        await self._sleep(self.duration)
        self.reset()
        return True
