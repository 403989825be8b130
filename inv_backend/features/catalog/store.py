"""
Catalog store: the queries and single-row updates the preview pipeline issues.

Reads join files with their package and are ordered by package id so the
scheduler can reuse one extraction per package. Writes are single-statement
updates; no cross-row transaction is needed.
"""
from __future__ import annotations

import json
from typing import Any, Iterable, Optional

from ...adapters.db.sqlite import Sqlite
from ...shared import (
    HUE_UNSET,
    DependencyState,
    ErrorCode,
    PackageSource,
    PreviewState,
    Result,
    get_logger,
    normalize_type,
)
from .models import RESTORABLE_SOURCES, FileRecord, Package

logger = get_logger(__name__)

_FILE_SELECT = """
    SELECT f.*,
           p.downloaded AS downloaded,
           p.name AS package_name,
           p.source AS package_source,
           p.location AS package_location
    FROM files f
    INNER JOIN packages p ON p.id = f.package_id
"""
_FILE_ORDER = " ORDER BY f.package_id ASC, f.id ASC"


def _package_id(item: Any) -> Optional[int]:
    raw = getattr(item, "package_id", None)
    if raw is None:
        raw = getattr(item, "id", item)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def package_filter_clause(packages: Iterable[Any] | None) -> str:
    """
    Build the optional package allowlist for catalog reads.

    Ids are coerced to integers and concatenated into an `IN (...)` list.
    An empty or missing selection means no additional filter; a selection in
    which no id parses matches nothing.

    Args:
        packages: Package ids, `Package` objects or `FileRecord` objects

    Returns:
        "", " AND 0" or a clause such as " AND p.id IN (1,2,3)"
    """
    if not packages:
        return ""
    ids: list[str] = []
    seen: set[int] = set()
    for item in packages:
        pid = _package_id(item)
        if pid is None or pid in seen:
            continue
        seen.add(pid)
        ids.append(str(pid))
    if not ids:
        return " AND 0"
    return f" AND p.id IN ({','.join(ids)})"


def _to_records(result: Result[list[dict[str, Any]]]) -> Result[list[FileRecord]]:
    if not result.ok:
        return Result.Err(result.code or ErrorCode.DB_ERROR, result.error or "Catalog query failed")
    records: list[FileRecord] = []
    for row in result.data or []:
        try:
            records.append(FileRecord.from_row(row))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed file row %s: %s", row.get("id"), exc)
    return Result.Ok(records)


class CatalogStore:
    """Typed access to the `packages` and `files` tables."""

    def __init__(self, db: Sqlite):
        self.db = db

    # ----- reads ---------------------------------------------------------

    async def fetch_scheduled(self, packages: Iterable[Any] | None = None) -> Result[list[FileRecord]]:
        """Files marked `redo` in non-excluded packages."""
        query = (
            _FILE_SELECT
            + " WHERE p.excluded = 0 AND f.preview_state = ?"
            + package_filter_clause(packages)
            + _FILE_ORDER
        )
        return _to_records(await self.db.aquery(query, (PreviewState.REDO.value,)))

    async def fetch_eligible(
        self,
        packages: Iterable[Any] | None = None,
        include_provided: bool = False,
    ) -> Result[list[FileRecord]]:
        """All files of non-excluded packages, optionally leaving shipped previews out."""
        query = _FILE_SELECT + " WHERE p.excluded = 0"
        params: tuple = ()
        if not include_provided:
            query += " AND f.preview_state != ?"
            params = (PreviewState.PROVIDED.value,)
        query += package_filter_clause(packages) + _FILE_ORDER
        return _to_records(await self.db.aquery(query, params))

    async def fetch_restorable(self, packages: Iterable[Any] | None = None) -> Result[list[FileRecord]]:
        """Files of store/custom packages whose preview is not `provided` yet."""
        query = (
            _FILE_SELECT
            + " WHERE p.excluded = 0 AND (p.source = ? OR p.source = ?) AND f.preview_state != ?"
            + package_filter_clause(packages)
            + _FILE_ORDER
        )
        params = tuple(s.value for s in RESTORABLE_SOURCES) + (PreviewState.PROVIDED.value,)
        return _to_records(await self.db.aquery(query, params))

    async def fetch_unset_hue(self, limit: int = 500) -> Result[list[FileRecord]]:
        """Files with a preview image whose hue still has to be computed."""
        query = (
            _FILE_SELECT
            + " WHERE f.hue < 0 AND f.preview_state IN (?, ?)"
            + _FILE_ORDER
            + " LIMIT ?"
        )
        params = (PreviewState.CUSTOM.value, PreviewState.PROVIDED.value, max(1, int(limit or 1)))
        return _to_records(await self.db.aquery(query, params))

    async def fetch_package_files(self, package_id: int) -> Result[list[FileRecord]]:
        query = _FILE_SELECT + " WHERE f.package_id = ?" + _FILE_ORDER
        return _to_records(await self.db.aquery(query, (int(package_id),)))

    async def get_file(self, file_id: int) -> Result[FileRecord]:
        res = await self.db.aquery(_FILE_SELECT + " WHERE f.id = ?", (int(file_id),))
        records = _to_records(res)
        if not records.ok:
            return records
        if not records.data:
            return Result.Err(ErrorCode.NOT_FOUND, f"File not found: {file_id}")
        return Result.Ok(records.data[0])

    async def get_files(self, file_ids: list[int]) -> Result[list[FileRecord]]:
        ids = [int(i) for i in file_ids or []]
        res = await self.db.aquery_in(_FILE_SELECT + " WHERE {IN_CLAUSE}" + _FILE_ORDER, "f.id", ids)
        return _to_records(res)

    async def get_package(self, package_id: int) -> Result[Package]:
        res = await self.db.aquery("SELECT * FROM packages WHERE id = ?", (int(package_id),))
        if not res.ok:
            return Result.Err(res.code or ErrorCode.DB_ERROR, res.error or "Package query failed")
        if not res.data:
            return Result.Err(ErrorCode.NOT_FOUND, f"Package not found: {package_id}")
        return Result.Ok(Package.from_row(res.data[0]))

    # ----- writes --------------------------------------------------------

    async def update_preview_state(self, file_id: int, state: PreviewState) -> Result[int]:
        return await self.db.aexecute(
            "UPDATE files SET preview_state = ? WHERE id = ?",
            (PreviewState(state).value, int(file_id)),
        )

    async def update_preview(
        self,
        file_id: int,
        state: PreviewState,
        *,
        width: int | None = None,
        height: int | None = None,
        length: float | None = None,
        reset_hue: bool = True,
    ) -> Result[int]:
        """
        Persist the outcome of a preview attempt in one statement.

        Metadata columns are only written when a value is supplied so earlier
        dimensions survive a result that carries none.
        """
        assignments = ["preview_state = ?"]
        params: list[Any] = [PreviewState(state).value]
        if width is not None:
            assignments.append("width = ?")
            params.append(int(width))
        if height is not None:
            assignments.append("height = ?")
            params.append(int(height))
        if length is not None:
            assignments.append("length = ?")
            params.append(float(length))
        if reset_hue:
            assignments.append("hue = ?")
            params.append(HUE_UNSET)
        params.append(int(file_id))
        return await self.db.aexecute(
            f"UPDATE files SET {', '.join(assignments)} WHERE id = ?",
            tuple(params),
        )

    async def update_hue(self, file_id: int, hue: float) -> Result[int]:
        return await self.db.aexecute("UPDATE files SET hue = ? WHERE id = ?", (float(hue), int(file_id)))

    async def update_dependencies(
        self,
        file_id: int,
        state: DependencyState,
        dependencies: list[int],
    ) -> Result[int]:
        return await self.db.aexecute(
            "UPDATE files SET dependency_state = ?, dependencies = ? WHERE id = ?",
            (DependencyState(state).value, json.dumps([int(d) for d in dependencies or []]), int(file_id)),
        )

    async def schedule_redo(self, file_ids: list[int]) -> Result[int]:
        """Mark files for regeneration by the next scheduled run."""
        ids = sorted({int(i) for i in file_ids or []})
        if not ids:
            return Result.Ok(0)
        return await self.db.aexecutemany(
            "UPDATE files SET preview_state = ? WHERE id = ?",
            [(PreviewState.REDO.value, file_id) for file_id in ids],
        )

    async def add_package(
        self,
        name: str,
        *,
        source: PackageSource | str = PackageSource.OTHER,
        location: str | None = None,
        downloaded: bool = True,
        exclude: bool = False,
    ) -> Result[int]:
        return await self.db.aexecute(
            "INSERT INTO packages (name, source, location, downloaded, excluded) VALUES (?, ?, ?, ?, ?)",
            (str(name), PackageSource.parse(source).value, location, int(bool(downloaded)), int(bool(exclude))),
        )

    async def add_file(
        self,
        package_id: int,
        path: str,
        *,
        file_type: str | None = None,
        preview_state: PreviewState | str = PreviewState.NONE,
        dependency_state: DependencyState | str = DependencyState.UNKNOWN,
        dependencies: list[int] | None = None,
    ) -> Result[int]:
        rel = str(path).replace("\\", "/").lstrip("/")
        filename = rel.rsplit("/", 1)[-1]
        return await self.db.aexecute(
            """
            INSERT INTO files (package_id, path, filename, type, preview_state, dependency_state, dependencies)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(package_id),
                rel,
                filename,
                normalize_type(file_type or filename),
                PreviewState.parse(preview_state).value,
                DependencyState.parse(dependency_state).value,
                json.dumps([int(d) for d in dependencies or []]),
            ),
        )
