"""
Previewability classification.

Decides per file type whether a preview can be produced at all, whether the
in-process fast path applies, and whether dependencies must be gathered first.
The fast path is capability-gated: it is only offered for raster formats the
installed Pillow build can decode.
"""
from __future__ import annotations

from typing import Iterable, Optional

from PIL import Image

from ...config import FAST_PATH_ENABLED
from ...shared import EXTENSIONS, classify_file, normalize_type

# Plain raster formats that resize cheaply; HDR/EXR/PSD go through the generator.
FAST_PATH_CANDIDATES = frozenset({"png", "jpg", "jpeg", "gif", "bmp", "tga", "tif", "tiff", "webp"})

# Types that reference other files (textures, materials, buffers) when rendered.
DEPENDENCY_SCAN_TYPES = frozenset({"prefab", "mat", "fbx", "obj", "gltf", "dae"})


def pillow_raster_types() -> set[str]:
    """Extensions (without dot) the installed Pillow build can open."""
    try:
        registered = Image.registered_extensions()
    except Exception:
        return set()
    return {ext.lstrip(".").lower() for ext in registered}


class PreviewClassifier:
    def __init__(
        self,
        fast_path_enabled: bool = FAST_PATH_ENABLED,
        fast_path_types: Optional[Iterable[str]] = None,
        dependency_scan_types: Iterable[str] = DEPENDENCY_SCAN_TYPES,
    ):
        if fast_path_types is None:
            fast_path_types = FAST_PATH_CANDIDATES & pillow_raster_types()
        self.fast_path_types = frozenset(normalize_type(t) for t in fast_path_types) if fast_path_enabled else frozenset()
        self.dependency_scan_types = frozenset(normalize_type(t) for t in dependency_scan_types)

    def is_previewable(self, file_type: str) -> bool:
        return classify_file(file_type) != "unknown"

    def use_fast_path(self, file_type: str) -> bool:
        ext = normalize_type(file_type)
        return ext in self.fast_path_types and ext in EXTENSIONS["image"]

    def needs_dependency_scan(self, file_type: str) -> bool:
        return normalize_type(file_type) in self.dependency_scan_types
