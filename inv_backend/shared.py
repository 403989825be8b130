"""Backend-facing alias for shared utilities.

Backend modules import from here (``from ...shared import Result``) rather
than reaching into ``inv_shared`` directly.
"""

from __future__ import annotations

import inv_shared as _root_shared

Result = _root_shared.Result
ErrorCode = _root_shared.ErrorCode
get_logger = _root_shared.get_logger
log_success = _root_shared.log_success
log_structured = _root_shared.log_structured
run_id_var = _root_shared.run_id_var
classify_file = _root_shared.classify_file
normalize_type = _root_shared.normalize_type
sanitize_error_message = _root_shared.sanitize_error_message
timer = _root_shared.timer
now = _root_shared.now
relative_time = _root_shared.relative_time
FileKind = _root_shared.FileKind
PreviewState = _root_shared.PreviewState
DependencyState = _root_shared.DependencyState
PackageSource = _root_shared.PackageSource
HUE_UNSET = _root_shared.HUE_UNSET
EXTENSIONS = _root_shared.EXTENSIONS

__all__ = [
    "Result",
    "ErrorCode",
    "get_logger",
    "log_success",
    "log_structured",
    "run_id_var",
    "classify_file",
    "normalize_type",
    "sanitize_error_message",
    "timer",
    "now",
    "relative_time",
    "FileKind",
    "PreviewState",
    "DependencyState",
    "PackageSource",
    "HUE_UNSET",
    "EXTENSIONS",
]
