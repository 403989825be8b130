"""
Configuration for the Asset Inventory preview pipeline.

Every value can be overridden through environment variables (``INV_*``).
Invalid values are logged and replaced by the default; out-of-range values are clamped.
"""
import os
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

BOOL_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "enabled"})
BOOL_FALSE_VALUES = frozenset({"0", "false", "no", "off", "disabled"})


def parse_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in BOOL_TRUE_VALUES:
            return True
        if normalized in BOOL_FALSE_VALUES:
            return False
        try:
            return bool(float(normalized))
        except Exception:
            pass
    return default


def _env_raw(*names: str, default: str | None = None) -> str | None:
    for name in names:
        if not name:
            continue
        try:
            val = os.getenv(name)
        except Exception:
            val = None
        if val is not None and str(val).strip() != "":
            return str(val).strip()
    return default


def _env_int(default: int, *names: str, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_float(default: float, *names: str, min_value: float | None = None, max_value: float | None = None) -> float:
    raw = _env_raw(*names)
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid float for %s=%r, using default=%s", names[0] if names else "<unknown>", raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("Value too small for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("Value too large for %s=%s, clamped to %s", names[0] if names else "<unknown>", value, max_value)
        value = max_value
    return value


def _env_bool(default: bool, *names: str) -> bool:
    raw = _env_raw(*names)
    if raw is None:
        return default
    return parse_bool(raw, default)


def _resolve_data_root() -> Path:
    env_path = _env_raw("INV_DATA_DIR", "ASSET_INVENTORY_DATA_DIR")
    if env_path:
        try:
            return Path(env_path).expanduser().resolve()
        except (OSError, RuntimeError):
            logger.warning("Failed to resolve INV_DATA_DIR: %s, using fallback", env_path)
    try:
        return (Path.home() / ".asset_inventory").resolve()
    except (OSError, RuntimeError) as e:
        logger.error("Could not resolve home directory: %s", e)
        return Path.cwd() / ".asset_inventory"


def _resolve_dir(default: Path, *names: str) -> Path:
    raw = _env_raw(*names)
    if not raw:
        return default
    try:
        return Path(raw).expanduser().resolve()
    except (OSError, RuntimeError):
        logger.warning("Failed to resolve %s=%r, using %s", names[0], raw, default)
        return default


DATA_ROOT_PATH = _resolve_data_root()

# SQLite catalog
INDEX_DB_PATH = _resolve_dir(DATA_ROOT_PATH / "catalog.sqlite", "INV_DB_PATH")
INDEX_DB = str(INDEX_DB_PATH)

# Preview images live at PREVIEW_ROOT/<package id>/af-<file id>.png
PREVIEW_ROOT_PATH = _resolve_dir(DATA_ROOT_PATH / "Previews", "INV_PREVIEW_DIR")
# Scratch extractions of packages (one directory per package id)
MATERIALIZE_ROOT_PATH = _resolve_dir(DATA_ROOT_PATH / "Extracted", "INV_MATERIALIZE_DIR")
# Isolated copies of files plus their dependencies
PREVIEW_WORK_ROOT_PATH = _resolve_dir(DATA_ROOT_PATH / "PreviewWork", "INV_PREVIEW_WORK_DIR")


def initialize_directories() -> None:
    """Create the data directories; called once while building services."""
    for path in (DATA_ROOT_PATH, INDEX_DB_PATH.parent, PREVIEW_ROOT_PATH, MATERIALIZE_ROOT_PATH):
        path.mkdir(parents=True, exist_ok=True)


# External tool overrides
FFPROBE_BIN = _env_raw("INV_FFPROBE_PATH", "INV_FFPROBE_BIN", default="ffprobe")
FFPROBE_TIMEOUT = _env_int(10, "INV_FFPROBE_TIMEOUT", min_value=1, max_value=120)

# Database tuning
DB_TIMEOUT = _env_float(30.0, "INV_DB_TIMEOUT", min_value=1.0, max_value=300.0)
DB_QUERY_TIMEOUT = _env_float(60.0, "INV_DB_QUERY_TIMEOUT", min_value=1.0, max_value=600.0)

# Generation window: once more than MAX requests are outstanding, wait until only OPEN remain.
PREVIEW_MAX_REQUESTS = _env_int(50, "INV_PREVIEW_MAX_REQUESTS", min_value=1, max_value=10_000)
PREVIEW_OPEN_REQUESTS = _env_int(5, "INV_PREVIEW_OPEN_REQUESTS", min_value=0, max_value=PREVIEW_MAX_REQUESTS)
GENERATOR_MAX_WORKERS = _env_int(max(1, min(8, (os.cpu_count() or 2) // 2)), "INV_GENERATOR_MAX_WORKERS", min_value=1, max_value=64)

# Cooperative yields (iterations between `await asyncio.sleep(0)`)
PREVIEW_YIELD_EVERY = _env_int(10, "INV_PREVIEW_YIELD_EVERY", min_value=1, max_value=100_000)
PREVIEW_YIELD_EVERY_SKIPPED = _env_int(5000, "INV_PREVIEW_YIELD_EVERY_SKIPPED", min_value=1, max_value=1_000_000)
RESTORE_YIELD_EVERY = _env_int(50, "INV_RESTORE_YIELD_EVERY", min_value=1, max_value=100_000)

# Rendering
PREVIEW_SIZE = _env_int(128, "INV_PREVIEW_SIZE", min_value=16, max_value=4096)
PREVIEW_UPSCALE_LOSSLESS = _env_bool(True, "INV_PREVIEW_UPSCALE_LOSSLESS")
FAST_PATH_ENABLED = _env_bool(True, "INV_FAST_PATH_ENABLED")

# Cooldown: pause long runs periodically to keep the host responsive
COOLDOWN_ENABLED = _env_bool(False, "INV_COOLDOWN_ENABLED")
COOLDOWN_INTERVAL_MINUTES = _env_float(10.0, "INV_COOLDOWN_INTERVAL_MINUTES", min_value=0.1, max_value=24 * 60.0)
COOLDOWN_DURATION_SECONDS = _env_float(60.0, "INV_COOLDOWN_DURATION_SECONDS", min_value=0.0, max_value=3600.0)
