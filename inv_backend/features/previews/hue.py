"""
Dominant-hue cache for preview images.

Whenever a preview changes its hue is reset to `HUE_UNSET`; this service
recomputes it lazily for color sorting and filtering.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, Optional

from PIL import Image

from ...config import PREVIEW_ROOT_PATH
from ...shared import Result, get_logger, log_success
from ..catalog.store import CatalogStore
from .results import preview_path_for

logger = get_logger(__name__)

HUE_BUCKETS = 36
# Pixels below these (0-255) are treated as grey/black and do not vote.
MIN_SATURATION = 40
MIN_VALUE = 40


def compute_hue(path: Path) -> Optional[float]:
    """
    Dominant hue of an image in degrees [0, 360).

    Hues are bucketed and weighted by saturation and brightness.
    Achromatic images return 0.0; unreadable files return None.
    """
    try:
        with Image.open(path) as im:
            hsv = im.convert("RGB").resize((64, 64), Image.Resampling.BILINEAR).convert("HSV")
            data = hsv.tobytes()
    except Exception as exc:
        logger.debug("Could not read preview %s for hue: %s", path, exc)
        return None

    weights = [0.0] * HUE_BUCKETS
    for i in range(0, len(data) - 2, 3):
        h, s, v = data[i], data[i + 1], data[i + 2]
        if s < MIN_SATURATION or v < MIN_VALUE:
            continue
        weights[min(HUE_BUCKETS - 1, h * HUE_BUCKETS // 256)] += s * v
    best = max(range(HUE_BUCKETS), key=lambda i: weights[i])
    if weights[best] <= 0:
        return 0.0
    return (best + 0.5) * 360.0 / HUE_BUCKETS


class HueService:
    def __init__(self, store: CatalogStore, preview_root: Path = PREVIEW_ROOT_PATH):
        self.store = store
        self.preview_root = Path(preview_root)

    async def refresh_unset(self, limit: int = 500) -> Result[Dict[str, Any]]:
        """Compute hues for up to `limit` previews whose hue is unset."""
        rows = await self.store.fetch_unset_hue(limit)
        if not rows.ok:
            return Result.Err(rows.code, rows.error or "Hue query failed")

        processed = updated = errors = 0
        for record in rows.data or []:
            processed += 1
            hue = await asyncio.to_thread(compute_hue, preview_path_for(record, self.preview_root))
            if hue is None:
                errors += 1
                continue
            res = await self.store.update_hue(record.id, hue)
            if res.ok:
                updated += 1
            else:
                errors += 1
        if updated:
            log_success(logger, f"Computed hue for {updated} previews")
        return Result.Ok({"processed": processed, "updated": updated, "errors": errors})
