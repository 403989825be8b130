"""
Dependency discovery and isolated copies for files that reference other files.
"""
from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

from ...shared import DependencyState, Result, get_logger
from ..catalog.models import FileRecord
from ..catalog.store import CatalogStore

logger = get_logger(__name__)

MAX_SCAN_BYTES = 32 * 1024 * 1024


class DependencyResolver(Protocol):
    async def resolve(self, record: FileRecord, source_path: Path) -> tuple[DependencyState, list[int]]: ...


class NullDependencyResolver:
    async def resolve(self, record: FileRecord, source_path: Path) -> tuple[DependencyState, list[int]]:
        return DependencyState.NOT_POSSIBLE, []


def _scan_references(source_path: Path, candidates: dict[str, int]) -> list[int]:
    data = source_path.read_bytes()[:MAX_SCAN_BYTES]
    text = data.decode("latin-1").lower()
    return sorted({file_id for name, file_id in candidates.items() if name and name in text})


class FilenameReferenceResolver:
    """
    Find references by looking for the names of sibling package files inside
    the source file (texture names in .mtl/.obj/.fbx, buffer names in .gltf).
    """

    def __init__(self, store: CatalogStore):
        self.store = store

    async def resolve(self, record: FileRecord, source_path: Path) -> tuple[DependencyState, list[int]]:
        siblings = await self.store.fetch_package_files(record.package_id)
        if not siblings.ok:
            logger.warning("Dependency lookup failed for %s: %s", record, siblings.error)
            return DependencyState.NOT_POSSIBLE, []
        candidates = {f.filename.lower(): f.id for f in siblings.data or [] if f.id != record.id}
        if not candidates:
            return DependencyState.DONE, []
        try:
            found = await asyncio.to_thread(_scan_references, source_path, candidates)
        except OSError as exc:
            logger.debug("Could not scan %s for references: %s", source_path, exc)
            return DependencyState.NOT_POSSIBLE, []
        return DependencyState.DONE, found


async def dependency_closure(store: CatalogStore, record: FileRecord) -> Result[list[FileRecord]]:
    """Transitive dependencies of `record` as stored in the catalog (excluding itself)."""
    seen: set[int] = {record.id}
    frontier = [d for d in record.dependencies if d not in seen]
    closure: list[FileRecord] = []
    while frontier:
        res = await store.get_files(frontier)
        if not res.ok:
            return Result.Err(res.code, res.error or "Dependency query failed")
        frontier = []
        for dep in res.data or []:
            if dep.id in seen:
                continue
            seen.add(dep.id)
            closure.append(dep)
            frontier.extend(d for d in dep.dependencies if d not in seen)
        frontier = sorted(set(frontier))
    return Result.Ok(closure)


async def copy_with_dependencies(
    record: FileRecord,
    source_path: Path,
    dependencies: list[FileRecord],
    resolve: Callable[[FileRecord], Awaitable[Optional[Path]]],
    work_root: Path,
) -> Optional[Path]:
    """
    Copy a file plus its dependencies into `work_root/<file id>/`, keeping
    package-relative paths so relative references still resolve.

    Missing dependencies are skipped; failing to copy the file itself
    returns None.
    """
    target_root = Path(work_root) / str(record.id)
    primary = target_root / record.path
    try:
        await asyncio.to_thread(_copy_file, source_path, primary)
    except OSError as exc:
        logger.warning("Could not copy %s into work folder: %s", record, exc)
        return None

    for dep in dependencies:
        dep_source = await resolve(dep)
        if dep_source is None:
            logger.debug("Dependency %s of %s not available", dep, record)
            continue
        try:
            await asyncio.to_thread(_copy_file, dep_source, target_root / dep.path)
        except OSError as exc:
            logger.debug("Could not copy dependency %s: %s", dep, exc)
    return primary


def _copy_file(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)
