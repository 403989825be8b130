"""
Batch preview scheduler.

Walks candidate files in package order, materializes each package once,
renders plain raster images in-process and hands everything else to the
generator under a high/low-water window. Every per-file failure is recorded
as preview state; nothing aborts the batch.
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from ...config import (
    PREVIEW_MAX_REQUESTS,
    PREVIEW_OPEN_REQUESTS,
    PREVIEW_ROOT_PATH,
    PREVIEW_SIZE,
    PREVIEW_UPSCALE_LOSSLESS,
    PREVIEW_WORK_ROOT_PATH,
    PREVIEW_YIELD_EVERY,
    PREVIEW_YIELD_EVERY_SKIPPED,
)
from ...shared import DependencyState, PreviewState, get_logger
from ..catalog.models import FileRecord
from ..catalog.store import CatalogStore
from .classifier import PreviewClassifier
from .cooldown import Cooldown
from .dependencies import DependencyResolver, NullDependencyResolver, copy_with_dependencies, dependency_closure
from .generator import PreviewGenerator, PreviewRequest
from .materializer import ExtractionContext, MaterializationCache
from .progress import LoggingProgress, ProgressReporter
from .renderer import PreviewResult, resize_image
from .results import apply_preview_result, derive_shipped_preview, mark_provided, preview_path_for

logger = get_logger(__name__)


class PreviewScheduler:
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
        is_cancelled: Optional[Callable[[], bool]] = None,
        preview_root: Path = PREVIEW_ROOT_PATH,
        work_root: Path = PREVIEW_WORK_ROOT_PATH,
        max_requests: int = PREVIEW_MAX_REQUESTS,
        open_requests: int = PREVIEW_OPEN_REQUESTS,
        yield_every: int = PREVIEW_YIELD_EVERY,
        yield_every_skipped: int = PREVIEW_YIELD_EVERY_SKIPPED,
        preview_size: int = PREVIEW_SIZE,
    ):
        self.store = store
        self.cache = cache
        self.generator = generator
        self.classifier = classifier or PreviewClassifier()
        self.dependency_resolver = dependency_resolver or NullDependencyResolver()
        self.progress = progress or LoggingProgress()
        self.cooldown = cooldown or Cooldown()
        self._is_cancelled = is_cancelled or (lambda: False)
        self.preview_root = Path(preview_root)
        self.work_root = Path(work_root)
        self.max_requests = max(1, int(max_requests))
        self.open_requests = max(0, min(int(open_requests), self.max_requests))
        self.yield_every = max(1, int(yield_every))
        self.yield_every_skipped = max(1, int(yield_every_skipped))
        self.preview_size = int(preview_size)
        self.stats: Dict[str, Any] = {}
        self._reset_stats(0)

    def _reset_stats(self, total: int) -> None:
        self.stats = {
            "total": total,
            "processed": 0,
            "created": 0,
            "skipped": 0,
            "not_applicable": 0,
            "errors": 0,
            "submitted": 0,
            "cancelled": False,
        }

    @property
    def created(self) -> int:
        return int(self.stats["created"])

    async def run_generation_batch(self, candidates: Iterable[FileRecord]) -> int:
        """
        Create previews for `candidates` and return how many were created.

        Candidates are stably sorted by package id so one extraction serves
        every file of a package.
        """
        files = sorted(candidates, key=lambda f: f.package_id)
        total = len(files)
        self._reset_stats(total)
        self.cooldown.reset()
        self.generator.init(total)
        progress_id = self.progress.start("Recreating previews")
        context: Optional[ExtractionContext] = None

        try:
            for index, record in enumerate(files, start=1):
                self.progress.report(progress_id, index, total, f"Creating preview for {record.filename}")
                if self._is_cancelled():
                    logger.info("Preview run cancelled after %d of %d files", index - 1, total)
                    self.stats["cancelled"] = True
                    break
                await self.cooldown.wait()
                if index % self.yield_every_skipped == 0:
                    await asyncio.sleep(0)
                self.stats["processed"] += 1

                if not record.downloaded:
                    logger.debug("Could not recreate preview for %s since the package is not downloaded", record)
                    self.stats["skipped"] += 1
                    continue

                if not self.classifier.is_previewable(record.type):
                    if record.preview_state != PreviewState.PROVIDED:
                        await self._set_state(record, PreviewState.NOT_APPLICABLE)
                        self.stats["not_applicable"] += 1
                    continue

                if context is not None and context.package.id != record.package_id:
                    await self.cache.retire(context)
                    context = None
                if context is None:
                    context = self.cache.open_context(record.to_package())

                source = await self.cache.resolve_file(context, record)
                if source is None:
                    await self._fail(record)
                    continue

                if index % self.yield_every == 0:
                    await asyncio.sleep(0)

                destination = preview_path_for(record, self.preview_root)
                if self.classifier.use_fast_path(record.type):
                    await self._render_fast_path(record, source, destination)
                else:
                    await self._submit(record, source, destination, context)
        finally:
            await self.generator.flush()
            self.generator.clear()
            await self.cache.retire(context)
            await self._clean_work_root()
            self.progress.remove(progress_id)

        return self.created

    async def _set_state(self, record: FileRecord, state: PreviewState) -> None:
        res = await self.store.update_preview_state(record.id, state)
        if not res.ok:
            logger.warning("Could not update preview state of %s: %s", record, res.error)
            return
        record.preview_state = state

    async def _fail(self, record: FileRecord) -> None:
        """Record a failed attempt unless the package shipped the preview."""
        if record.preview_state == PreviewState.PROVIDED:
            return
        await self._set_state(record, PreviewState.ERROR)
        self.stats["errors"] += 1

    def _count(self, state: Optional[PreviewState]) -> None:
        if state == PreviewState.CUSTOM:
            self.stats["created"] += 1
        elif state == PreviewState.ERROR:
            self.stats["errors"] += 1

    async def _render_fast_path(self, record: FileRecord, source: Path, destination: Path) -> None:
        resized = await asyncio.to_thread(
            resize_image, source, destination, self.preview_size, PREVIEW_UPSCALE_LOSSLESS
        )
        if resized.ok:
            width, height = resized.data
            state = await apply_preview_result(
                self.store, record.id, destination, PreviewResult(icon=True, width=width, height=height)
            )
            if state is not None:
                record.preview_state = state
            self._count(state)
            return

        shipped = derive_shipped_preview(source)
        if shipped.is_file():
            try:
                await asyncio.to_thread(_copy_preview, shipped, destination)
            except OSError as exc:
                logger.warning("Could not copy shipped preview for %s: %s", record, exc)
                await self._fail(record)
                return
            if await mark_provided(self.store, record):
                self.stats["created"] += 1
            return

        await self._fail(record)

    async def _submit(
        self,
        record: FileRecord,
        source: Path,
        destination: Path,
        context: ExtractionContext,
    ) -> None:
        has_dependencies = False
        if self.classifier.needs_dependency_scan(record.type):
            if record.dependency_state == DependencyState.UNKNOWN:
                await self._resolve_dependencies(record, source)
            if record.dependencies:
                copied = await self._isolate(record, source, context)
                if copied is None:
                    await self._fail(record)
                    return
                source = copied
                has_dependencies = True

        destination.parent.mkdir(parents=True, exist_ok=True)
        request = PreviewRequest(
            file_id=record.id,
            source_path=source,
            destination_path=destination,
            file_type=record.type,
            has_dependencies=has_dependencies,
            on_complete=self._on_complete,
        )
        self.generator.register(request)
        self.stats["submitted"] += 1

        if self.generator.active_request_count() > self.max_requests:
            await self.generator.drain(self.open_requests)

    async def _on_complete(self, request: PreviewRequest) -> None:
        state = await apply_preview_result(self.store, request.file_id, request.destination_path, request.result)
        self._count(state)

    async def _resolve_dependencies(self, record: FileRecord, source: Path) -> None:
        try:
            state, dependencies = await self.dependency_resolver.resolve(record, source)
        except Exception as exc:
            logger.warning("Dependency resolution failed for %s: %s", record, exc)
            state, dependencies = DependencyState.NOT_POSSIBLE, []
        res = await self.store.update_dependencies(record.id, state, dependencies)
        if not res.ok:
            logger.warning("Could not store dependencies of %s: %s", record, res.error)
        record.dependency_state = state
        record.dependencies = list(dependencies)

    async def _isolate(self, record: FileRecord, source: Path, context: ExtractionContext) -> Optional[Path]:
        closure = await dependency_closure(self.store, record)
        if not closure.ok:
            logger.warning("Could not load dependencies of %s: %s", record, closure.error)
            return None

        async def _resolve(dep: FileRecord) -> Optional[Path]:
            if dep.package_id != context.package.id:
                return None
            return await self.cache.resolve_file(context, dep)

        return await copy_with_dependencies(record, source, closure.data or [], _resolve, self.work_root)

    async def _clean_work_root(self) -> None:
        if not self.work_root.exists():
            return
        try:
            await asyncio.to_thread(shutil.rmtree, self.work_root)
        except OSError as exc:
            logger.warning("Could not clean preview work folder: %s", exc)


def _copy_preview(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)
