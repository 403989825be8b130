"""
Preview service: entry points for recreating and restoring previews.

Only one run (generation or restore) may be active at a time; a second
request while a run is active gets a BUSY result. Cancellation is
cooperative and takes effect at the next file.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from ...config import PREVIEW_ROOT_PATH, PREVIEW_WORK_ROOT_PATH
from ...shared import (
    ErrorCode,
    Result,
    get_logger,
    log_structured,
    log_success,
    now,
    relative_time,
    run_id_var,
    sanitize_error_message,
    timer,
)
from ..catalog.models import FileRecord
from ..catalog.store import CatalogStore
from .classifier import PreviewClassifier
from .cooldown import Cooldown
from .dependencies import DependencyResolver
from .generator import PreviewGenerator
from .materializer import MaterializationCache
from .progress import LoggingProgress, ProgressReporter
from .restore import restore_shipped_previews
from .scheduler import PreviewScheduler

logger = get_logger(__name__)


class PreviewService:
    def __init__(
        self,
        store: CatalogStore,
        cache: MaterializationCache,
        generator: PreviewGenerator,
        classifier: Optional[PreviewClassifier] = None,
        *,
        dependency_resolver: Optional[DependencyResolver] = None,
        progress: Optional[ProgressReporter] = None,
        cooldown: Optional[Cooldown] = None,
        preview_root: Path = PREVIEW_ROOT_PATH,
        work_root: Path = PREVIEW_WORK_ROOT_PATH,
        **scheduler_options: Any,
    ):
        self.store = store
        self.cache = cache
        self.progress = progress or LoggingProgress()
        self.cooldown = cooldown or Cooldown()
        self.preview_root = Path(preview_root)
        self.scheduler = PreviewScheduler(
            store,
            cache,
            generator,
            classifier,
            dependency_resolver=dependency_resolver,
            progress=self.progress,
            cooldown=self.cooldown,
            is_cancelled=self.is_cancelled,
            preview_root=self.preview_root,
            work_root=work_root,
            **scheduler_options,
        )
        self._run_lock = asyncio.Lock()
        self._cancel_requested = False
        self._restore_stats: Dict[str, Any] = {}
        self._status: Dict[str, Any] = {
            "running": False,
            "operation": None,
            "run_id": None,
            "created": 0,
            "restored": 0,
            "cancelled": False,
            "last_error": None,
            "started_at": None,
            "finished_at": None,
        }

    def _set_status(self, **kwargs) -> None:
        self._status.update(kwargs)

    def is_cancelled(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> Result[Dict[str, Any]]:
        """Ask the active run to stop at the next file."""
        running = self._run_lock.locked()
        if running:
            self._cancel_requested = True
            logger.info("Cancellation requested for %s", self._status.get("operation"))
        return Result.Ok({"cancelled": running})

    async def get_status(self) -> Result[Dict[str, Any]]:
        status = dict(self._status)
        status["running"] = self._run_lock.locked()
        if status["operation"] == "restore":
            status["progress"] = dict(self._restore_stats)
        else:
            status["progress"] = dict(self.scheduler.stats)
        if status.get("finished_at"):
            status["last_run"] = relative_time(status["finished_at"])
        return Result.Ok(status)

    async def _exclusive(self, operation: str, work: Callable[[], Awaitable[int]]) -> Result[int]:
        if self._run_lock.locked():
            return Result.Err(ErrorCode.BUSY, f"A preview run is already active ({self._status.get('operation')})")
        async with self._run_lock:
            run_id = uuid.uuid4().hex[:8]
            token = run_id_var.set(run_id)
            self._cancel_requested = False
            self._set_status(
                running=True,
                operation=operation,
                run_id=run_id,
                cancelled=False,
                last_error=None,
                started_at=now(),
                finished_at=None,
            )
            try:
                count = await work()
            except Exception as exc:
                logger.exception("Preview %s failed", operation)
                message = sanitize_error_message(exc, f"Preview {operation} failed")
                self._set_status(last_error=message)
                return Result.Err(ErrorCode.UPDATE_FAILED, message)
            finally:
                self._set_status(running=False, cancelled=self._cancel_requested, finished_at=now())
                self._cancel_requested = False
                run_id_var.reset(token)
            return Result.Ok(count)

    async def _generate(self, files: list[FileRecord]) -> int:
        with timer(f"Preview batch of {len(files)} files", logger):
            created = await self.scheduler.run_generation_batch(files)
        self._set_status(created=created)
        stats = self.scheduler.stats
        log_success(logger, f"Created {created} previews ({stats['errors']} errors, {stats['not_applicable']} not applicable)")
        log_structured(logger, logging.DEBUG, "preview_batch_finished", **stats)
        return created

    async def recreate_previews(self, files: Iterable[FileRecord]) -> Result[int]:
        """Create previews for exactly these files."""
        batch = list(files or [])
        return await self._exclusive("recreate", lambda: self._generate(batch))

    async def recreate_preview(self, file: FileRecord) -> Result[bool]:
        res = await self.recreate_previews([file])
        if not res.ok:
            return Result.Err(res.code, res.error or "Preview recreation failed")
        return Result.Ok(bool(res.data))

    async def recreate_scheduled_previews(self, packages: Optional[Iterable[Any]] = None) -> Result[int]:
        """Create previews for files marked `redo`, optionally limited to some packages."""
        async def _work() -> int:
            files = await self.store.fetch_scheduled(packages)
            if not files.ok:
                raise RuntimeError(files.error or "Could not load scheduled files")
            return await self._generate(files.data or [])
        return await self._exclusive("recreate_scheduled", _work)

    async def recreate_all_previews(
        self,
        packages: Optional[Iterable[Any]] = None,
        include_provided: bool = False,
    ) -> Result[int]:
        async def _work() -> int:
            files = await self.store.fetch_eligible(packages, include_provided=include_provided)
            if not files.ok:
                raise RuntimeError(files.error or "Could not load files")
            return await self._generate(files.data or [])
        return await self._exclusive("recreate_all", _work)

    async def schedule_redo(self, file_ids: Iterable[int]) -> Result[int]:
        """Mark files so the next scheduled run regenerates them."""
        try:
            ids = [int(i) for i in file_ids or []]
        except (TypeError, ValueError):
            return Result.Err(ErrorCode.INVALID_INPUT, "file ids must be integers")
        return await self.store.schedule_redo(ids)

    async def restore_previews(self, packages: Optional[Iterable[Any]] = None) -> Result[int]:
        """Put shipped previews of store/custom packages back in place."""
        async def _work() -> int:
            files = await self.store.fetch_restorable(packages)
            if not files.ok:
                raise RuntimeError(files.error or "Could not load restorable files")
            self._restore_stats = {}
            restored = await restore_shipped_previews(
                self.store,
                self.cache,
                files.data or [],
                progress=self.progress,
                cooldown=self.cooldown,
                is_cancelled=self.is_cancelled,
                preview_root=self.preview_root,
                stats=self._restore_stats,
            )
            self._set_status(restored=restored)
            log_success(logger, f"Restored {restored} previews")
            return restored
        return await self._exclusive("restore", _work)
