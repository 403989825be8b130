"""
Applying preview outcomes to the catalog.

A preview that shipped with its package (`provided`) is never demoted by a
failed regeneration attempt.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional

from ...config import PREVIEW_ROOT_PATH
from ...shared import ErrorCode, PreviewState, get_logger
from ..catalog.models import FileRecord
from ..catalog.store import CatalogStore
from .renderer import PreviewResult

logger = get_logger(__name__)

SHIPPED_PREVIEW_NAME = "preview.png"


def preview_path_for(record: FileRecord, root: Path = PREVIEW_ROOT_PATH) -> Path:
    """Deterministic preview location: `<root>/<package id>/af-<file id>.png`."""
    return Path(root) / str(int(record.package_id)) / f"af-{int(record.id)}.png"


def derive_shipped_preview(source_path: Path) -> Path:
    """Where a package ships its own preview: `preview.png` next to the source's parent folder."""
    return Path(source_path).parent.parent / SHIPPED_PREVIEW_NAME


async def apply_preview_result(
    store: CatalogStore,
    file_id: int,
    destination: Path,
    result: Optional[PreviewResult],
) -> Optional[PreviewState]:
    """
    Persist the outcome of one generation attempt.

    Returns:
        The preview state now stored for the file, or None when the file is
        no longer in the catalog or the write failed.
    """
    found = await store.get_file(file_id)
    if not found.ok:
        if found.code != ErrorCode.NOT_FOUND.value:
            logger.warning("Could not load file %s to store preview result: %s", file_id, found.error)
        return None
    record = found.data
    current = record.preview_state

    if not Path(destination).is_file():
        if current == PreviewState.PROVIDED:
            return current
        res = await store.update_preview_state(file_id, PreviewState.ERROR)
        if not res.ok:
            logger.warning("Could not mark file %s as failed: %s", file_id, res.error)
            return None
        return PreviewState.ERROR

    width = height = length = None
    if result is not None:
        width, height, length = result.width, result.height, result.duration

    if result is not None and result.icon:
        state = PreviewState.CUSTOM
    elif current == PreviewState.PROVIDED:
        state = PreviewState.PROVIDED
    else:
        state = PreviewState.ERROR

    res = await store.update_preview(file_id, state, width=width, height=height, length=length, reset_hue=True)
    if not res.ok:
        logger.warning("Could not store preview result for file %s: %s", file_id, res.error)
        return None
    return state


async def mark_provided(store: CatalogStore, record: FileRecord) -> bool:
    """Record that the package's own preview was placed for `record`."""
    res = await store.update_preview(record.id, PreviewState.PROVIDED, reset_hue=True)
    if not res.ok:
        logger.warning("Could not mark file %s as provided: %s", record.id, res.error)
        return False
    record.preview_state = PreviewState.PROVIDED
    return True
