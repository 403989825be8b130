"""
Preview generation worker pool.

Requests are registered without blocking and rendered off the event loop
(`asyncio.to_thread`) with at most `max_workers` renders running at once.
Completion callbacks always run on the event loop, exactly once per request,
so result application never races with the scheduler.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from ...config import GENERATOR_MAX_WORKERS
from ...shared import get_logger
from .renderer import PreviewResult

logger = get_logger(__name__)

CompletionCallback = Callable[["PreviewRequest"], Union[None, Awaitable[None]]]
RenderFn = Callable[["PreviewRequest"], Optional[PreviewResult]]


@dataclass
class PreviewRequest:
    file_id: int
    source_path: Path
    destination_path: Path
    file_type: str = ""
    has_dependencies: bool = False
    on_complete: Optional[CompletionCallback] = field(default=None, repr=False)
    result: Optional[PreviewResult] = None


class PreviewGenerator:
    def __init__(self, render_fn: RenderFn, max_workers: int = GENERATOR_MAX_WORKERS):
        self._render_fn = render_fn
        self._max_workers = max(1, int(max_workers))
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._pending: Set[asyncio.Task] = set()
        self._stats: Dict[str, Any] = {}
        self.init(0)

    def init(self, total: int) -> None:
        """Reset counters for a new run of `total` expected requests."""
        self._stats = {
            "expected": max(0, int(total or 0)),
            "submitted": 0,
            "completed": 0,
            "failed": 0,
            "peak_outstanding": 0,
        }

    @property
    def stats(self) -> Dict[str, Any]:
        return dict(self._stats)

    def register(self, request: PreviewRequest) -> None:
        """Queue a request; returns immediately."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self._max_workers)
        task = asyncio.create_task(self._process(request, self._semaphore))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        self._stats["submitted"] += 1
        self._stats["peak_outstanding"] = max(self._stats["peak_outstanding"], len(self._pending))

    def active_request_count(self) -> int:
        """Requests submitted whose callback has not finished yet."""
        return len(self._pending)

    async def drain(self, target: int = 0) -> None:
        """Wait until at most `target` requests are outstanding."""
        target = max(0, int(target))
        while len(self._pending) > target:
            await asyncio.wait(set(self._pending), return_when=asyncio.FIRST_COMPLETED)

    async def flush(self) -> None:
        await self.drain(0)

    def clear(self) -> None:
        if self._pending:
            logger.warning("Clearing generator with %d outstanding requests", len(self._pending))
            for task in list(self._pending):
                task.cancel()
            self._pending.clear()
        self._semaphore = None

    async def _process(self, request: PreviewRequest, semaphore: asyncio.Semaphore) -> None:
        result: Optional[PreviewResult] = None
        try:
            async with semaphore:
                result = await asyncio.to_thread(self._render_fn, request)
        except Exception as exc:
            logger.warning("Preview generation failed for file %s: %s", request.file_id, exc)
            result = None
        request.result = result
        self._stats["completed"] += 1
        if result is None or not result.icon:
            self._stats["failed"] += 1

        if request.on_complete is None:
            return
        try:
            outcome = request.on_complete(request)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.error("Preview completion callback failed for file %s: %s", request.file_id, exc)
