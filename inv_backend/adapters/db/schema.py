"""
Database schema and migrations.
"""
import re

from ...shared import Result, get_logger, log_success

logger = get_logger(__name__)

CURRENT_SCHEMA_VERSION = 2
# Schema version history (high-level):
# 1: packages + files with preview state
# 2: dependency tracking columns and hue cache on files

SCHEMA_V1 = """
-- Metadata table for schema versioning
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);

-- Source packages (store downloads, custom packages, folders, archives)
CREATE TABLE IF NOT EXISTS packages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    source TEXT NOT NULL DEFAULT 'other',  -- asset_store, custom, directory, archive, other
    location TEXT,  -- archive file or folder on disk
    downloaded BOOLEAN DEFAULT 0,
    excluded BOOLEAN DEFAULT 0
);

-- Previewable files inside packages
CREATE TABLE IF NOT EXISTS files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    package_id INTEGER NOT NULL,
    path TEXT NOT NULL,  -- relative to the materialized package root
    filename TEXT NOT NULL,
    type TEXT NOT NULL,  -- lower-case extension without dot
    preview_state TEXT NOT NULL DEFAULT 'none',
    width INTEGER,
    height INTEGER,
    length REAL,  -- audio duration in seconds
    FOREIGN KEY (package_id) REFERENCES packages(id) ON DELETE CASCADE
);
"""

COLUMN_DEFINITIONS = {
    "packages": [
        ("source", "source TEXT NOT NULL DEFAULT 'other'"),
        ("location", "location TEXT"),
        ("downloaded", "downloaded BOOLEAN DEFAULT 0"),
        ("excluded", "excluded BOOLEAN DEFAULT 0"),
    ],
    "files": [
        ("preview_state", "preview_state TEXT NOT NULL DEFAULT 'none'"),
        ("width", "width INTEGER"),
        ("height", "height INTEGER"),
        ("length", "length REAL"),
        ("dependency_state", "dependency_state TEXT DEFAULT 'unknown'"),
        ("dependencies", "dependencies TEXT DEFAULT '[]'"),  # JSON array of file ids
        ("hue", "hue REAL DEFAULT -1"),
    ],
}

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_files_package_id ON files(package_id);
CREATE INDEX IF NOT EXISTS idx_files_preview_state ON files(preview_state);
CREATE INDEX IF NOT EXISTS idx_files_hue ON files(hue);
CREATE INDEX IF NOT EXISTS idx_packages_excluded ON packages(excluded);
"""

_SAFE_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _is_safe_identifier(value: str) -> bool:
    return bool(value and isinstance(value, str) and _SAFE_IDENT_RE.match(value))


async def _get_table_columns(db, table_name: str) -> Result[list[str]]:
    if not _is_safe_identifier(table_name):
        return Result.Err("INVALID_INPUT", f"Invalid table name: {table_name}")
    result = await db.aquery(f"PRAGMA table_info('{table_name}')")
    if not result.ok:
        return Result.Err("PRAGMA_FAILED", f"Unable to inspect {table_name}: {result.error}")
    return Result.Ok([row["name"] for row in result.data or []])


async def table_has_column(db, table_name: str, column_name: str) -> bool:
    if not _is_safe_identifier(table_name) or not _is_safe_identifier(column_name):
        logger.warning("Invalid identifier in table_has_column: %s.%s", table_name, column_name)
        return False
    columns_result = await _get_table_columns(db, table_name)
    if not columns_result.ok:
        logger.warning("Unable to determine columns for %s.%s: %s", table_name, column_name, columns_result.error)
        return False
    return column_name in (columns_result.data or [])


async def _ensure_column(db, table_name: str, column_name: str, definition: str) -> Result[bool]:
    columns_result = await _get_table_columns(db, table_name)
    if not columns_result.ok:
        return Result.Err(columns_result.code, columns_result.error or "PRAGMA failed")

    if column_name in (columns_result.data or []):
        return Result.Ok(True)

    logger.info("Adding missing column %s.%s", table_name, column_name)
    alter_result = await db.aexecute(f"ALTER TABLE {table_name} ADD COLUMN {definition}")
    if not alter_result.ok:
        return Result.Err(alter_result.code, alter_result.error or "ALTER TABLE failed")
    return Result.Ok(True)


async def ensure_columns_exist(db) -> Result[bool]:
    for table, columns in COLUMN_DEFINITIONS.items():
        for column_name, definition in columns:
            result = await _ensure_column(db, table, column_name, definition)
            if not result.ok:
                logger.error("Failed to ensure column %s.%s: %s", table, column_name, result.error)
                return result
    return Result.Ok(True)


async def _ensure_schema(db) -> Result[bool]:
    result = await db.aexecutescript(SCHEMA_V1)
    if not result.ok:
        logger.error("Failed to ensure base tables: %s", result.error)
        return result

    result = await ensure_columns_exist(db)
    if not result.ok:
        return result

    result = await db.aexecutescript(INDEXES)
    if not result.ok:
        logger.error("Failed to ensure indexes: %s", result.error)
        return result

    version_result = await db.aset_schema_version(CURRENT_SCHEMA_VERSION)
    if not version_result.ok:
        logger.error("Failed to set schema version: %s", version_result.error)
        return version_result

    logger.debug("Schema ensured (version %s)", CURRENT_SCHEMA_VERSION)
    return Result.Ok(True)


async def migrate_schema(db) -> Result[bool]:
    """
    Bring the catalog to the current schema by ensuring expected tables,
    columns and indexes exist.

    Args:
        db: Sqlite instance

    Returns:
        Result with success boolean
    """
    current_version = await db.aget_schema_version()
    logger.info("Ensuring schema (current version %s -> target %s)", current_version, CURRENT_SCHEMA_VERSION)

    repair_result = await _ensure_schema(db)
    if not repair_result.ok:
        return repair_result

    final_version = await db.aget_schema_version()
    if current_version == final_version:
        logger.info("Schema already up to date (%s)", final_version)
    else:
        log_success(logger, f"Schema migrated from version {current_version} to {final_version}")
    return Result.Ok(True)
