"""Shared utilities for the Asset Inventory preview pipeline."""
from .errors import sanitize_error_message
from .log import get_logger, log_structured, log_success, run_id_var
from .result import Result
from .time import now, relative_time, timer
from .types import (
    EXTENSIONS,
    HUE_UNSET,
    DependencyState,
    ErrorCode,
    FileKind,
    PackageSource,
    PreviewState,
    classify_file,
    normalize_type,
)

__all__ = [
    "Result",
    "get_logger",
    "log_success",
    "log_structured",
    "run_id_var",
    "now",
    "relative_time",
    "timer",
    "FileKind",
    "ErrorCode",
    "PreviewState",
    "DependencyState",
    "PackageSource",
    "HUE_UNSET",
    "EXTENSIONS",
    "classify_file",
    "normalize_type",
    "sanitize_error_message",
]
