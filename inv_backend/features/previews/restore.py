"""
Restoring previews that shipped with their packages.
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from ...config import PREVIEW_ROOT_PATH, RESTORE_YIELD_EVERY
from ...shared import HUE_UNSET, PreviewState, get_logger
from ..catalog.models import FileRecord
from ..catalog.store import CatalogStore
from .cooldown import Cooldown
from .materializer import MaterializationCache
from .progress import LoggingProgress, ProgressReporter
from .results import derive_shipped_preview, preview_path_for

logger = get_logger(__name__)


async def _mark_missing(store: CatalogStore, record: FileRecord) -> None:
    if record.preview_state in (PreviewState.NOT_APPLICABLE, PreviewState.NONE):
        return
    res = await store.update_preview_state(record.id, PreviewState.NONE)
    if res.ok:
        record.preview_state = PreviewState.NONE
    else:
        logger.warning("Could not reset preview state of %s: %s", record, res.error)


def _copy(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)


async def restore_shipped_previews(
    store: CatalogStore,
    cache: MaterializationCache,
    candidates: Iterable[FileRecord],
    *,
    progress: Optional[ProgressReporter] = None,
    cooldown: Optional[Cooldown] = None,
    is_cancelled: Optional[Callable[[], bool]] = None,
    preview_root: Path = PREVIEW_ROOT_PATH,
    yield_every: int = RESTORE_YIELD_EVERY,
    stats: Optional[Dict[str, Any]] = None,
) -> int:
    """
    Copy each file's shipped preview into the preview folder.

    Files are visited in the given order. Already `provided` files are left
    alone; files without a shipped preview go back to `none` (files marked
    `not_applicable` keep that state). Scratch extractions made here are
    removed at the end of the run; pre-existing directories are kept.

    Returns:
        Number of previews restored
    """
    files = list(candidates)
    total = len(files)
    progress = progress or LoggingProgress()
    cooldown = cooldown or Cooldown()
    is_cancelled = is_cancelled or (lambda: False)
    yield_every = max(1, int(yield_every))
    if stats is None:
        stats = {}
    stats.update(total=total, processed=0, restored=0, missing=0, cancelled=False)

    restored = 0
    cooldown.reset()
    progress_id = progress.start("Restoring previews")
    try:
        for index, record in enumerate(files, start=1):
            progress.report(progress_id, index, total, f"Restoring preview for {record.filename}")
            if is_cancelled():
                logger.info("Preview restore cancelled after %d of %d files", index - 1, total)
                stats["cancelled"] = True
                break
            await cooldown.wait()
            if index % yield_every == 0:
                await asyncio.sleep(0)
            stats["processed"] += 1

            if not record.downloaded or record.preview_state == PreviewState.PROVIDED:
                continue

            source = await cache.materialize_file(record)
            shipped = derive_shipped_preview(source) if source is not None else None
            if shipped is None or not shipped.is_file():
                await _mark_missing(store, record)
                stats["missing"] += 1
                continue

            destination = preview_path_for(record, preview_root)
            try:
                await asyncio.to_thread(_copy, shipped, destination)
            except OSError as exc:
                logger.warning("Could not restore preview for %s: %s", record, exc)
                continue

            res = await store.update_preview(record.id, PreviewState.PROVIDED, reset_hue=True)
            if not res.ok:
                logger.warning("Could not mark %s as provided: %s", record, res.error)
                continue
            record.preview_state = PreviewState.PROVIDED
            record.hue = HUE_UNSET
            restored += 1
            stats["restored"] = restored
    finally:
        await cache.release_files()
        progress.remove(progress_id)

    return restored
