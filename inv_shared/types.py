"""
Shared types, enums, and constants.
"""
import os
from enum import Enum
from typing import Final, Literal

# File type classifications
FileKind = Literal["image", "audio", "model3d", "prefab", "material", "unknown"]

# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes (string enum)."""

    # Client / validation
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"

    # Feature / service availability
    BUSY = "BUSY"
    UNSUPPORTED = "UNSUPPORTED"
    TOOL_MISSING = "TOOL_MISSING"

    # Server / infrastructure
    DB_ERROR = "DB_ERROR"
    TIMEOUT = "TIMEOUT"

    # Operation errors
    UPDATE_FAILED = "UPDATE_FAILED"
    EXTRACT_FAILED = "EXTRACT_FAILED"
    RENDER_FAILED = "RENDER_FAILED"

    # Tool / parsing
    FFPROBE_ERROR = "FFPROBE_ERROR"
    PARSE_ERROR = "PARSE_ERROR"


class PreviewState(str, Enum):
    """Preview generation status of a single catalog file."""

    NONE = "none"                      # never attempted
    PROVIDED = "provided"              # shipped with the package and placed
    REDO = "redo"                      # scheduled for regeneration
    NOT_APPLICABLE = "not_applicable"  # format cannot produce a preview
    ERROR = "error"                    # last attempt failed
    CUSTOM = "custom"                  # generated by the pipeline

    @classmethod
    def parse(cls, value: object) -> "PreviewState":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "none").strip().lower())
        except ValueError:
            return cls.NONE


class DependencyState(str, Enum):
    """Dependency resolution status of a catalog file."""

    UNKNOWN = "unknown"
    DONE = "done"
    PARTIAL = "partial"
    NOT_POSSIBLE = "not_possible"

    @classmethod
    def parse(cls, value: object) -> "DependencyState":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "unknown").strip().lower())
        except ValueError:
            return cls.UNKNOWN


class PackageSource(str, Enum):
    """Where a package came from."""

    ASSET_STORE = "asset_store"
    CUSTOM = "custom"
    DIRECTORY = "directory"
    ARCHIVE = "archive"
    OTHER = "other"

    @classmethod
    def parse(cls, value: object) -> "PackageSource":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "other").strip().lower())
        except ValueError:
            return cls.OTHER


# Sentinel for a hue that must be recomputed from the preview image
HUE_UNSET: Final[float] = -1.0

# File types (lower-case extension, no dot) by kind
EXTENSIONS: Final[dict[FileKind, set[str]]] = {
    "image": {"png", "jpg", "jpeg", "gif", "bmp", "tga", "tif", "tiff", "psd", "webp", "exr", "hdr"},
    "audio": {"wav", "mp3", "ogg", "aif", "aiff", "flac"},
    "model3d": {"fbx", "obj", "gltf", "glb", "dae", "3ds", "blend"},
    "prefab": {"prefab"},
    "material": {"mat"},
    "unknown": set(),
}


def normalize_type(filename_or_type: str) -> str:
    """Return the lower-case extension of a file name (or an already bare type) without the dot."""
    raw = str(filename_or_type or "").strip()
    ext = os.path.splitext(raw)[1] or raw
    return ext.lstrip(".").lower()


def classify_file(filename: str) -> FileKind:
    """
    Classify file by extension.

    Args:
        filename: File name, path or bare type

    Returns:
        File kind (image, audio, model3d, prefab, material, unknown)
    """
    ext = normalize_type(filename)

    for kind, exts in EXTENSIONS.items():
        if ext in exts:
            return kind

    return "unknown"
