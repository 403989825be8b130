"""
Error message sanitizing for `Result.error` values and run status snapshots.
"""
from __future__ import annotations

import os
import re

MAX_MESSAGE_LENGTH = 200

# Windows drive paths, UNC shares, then absolute POSIX paths not inside a URL
_PATH_PATTERNS = (
    re.compile(r"[A-Za-z]:\\\S+"),
    re.compile(r"\\\\[^\s\\]+\\\S+"),
    re.compile(r"(?<![\w:/?&=#%])/(?!/)[^\s#?]+"),
)


def mask_paths(text: str) -> str:
    """Replace filesystem paths in `text` with `[path]`."""
    cwd = os.getcwd()
    if len(cwd) > 1:
        text = text.replace(cwd, "[cwd]")
    for pattern in _PATH_PATTERNS:
        text = pattern.sub("[path]", text)
    return text


def sanitize_error_message(exc: object, fallback: str) -> str:
    """
    Single-line, path-free description of `exc` prefixed by `fallback`.

    Returns `fallback` alone when the exception has no message.
    """
    fallback = fallback or "An error occurred"
    detail = "" if exc is None else str(exc)
    detail = " ".join(mask_paths(detail).split())
    if not detail:
        return fallback
    return f"{fallback}: {detail[:MAX_MESSAGE_LENGTH]}"
