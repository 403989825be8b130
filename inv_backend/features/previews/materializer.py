"""
Materialization cache: makes a package's contents available on local disk.

Packages are materialized into `<root>/<package id>`. A directory that already
exists when a context is opened is a persistent cache hit and is never removed
here; directories extracted during a run are scratch and get retired once the
run moves on to another package.
"""
from __future__ import annotations

import asyncio
import shutil
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Protocol

from ...config import MATERIALIZE_ROOT_PATH
from ...shared import ErrorCode, Result, get_logger, sanitize_error_message
from ..catalog.models import FileRecord, Package

logger = get_logger(__name__)


@dataclass
class ExtractionContext:
    """Live materialization state for one package during a run."""

    package: Package
    directory: Path
    pre_existed: bool
    attempted: bool = False
    outcome: Optional[Path] = None


class PackageExtractor(Protocol):
    def folder_for(self, package: Package) -> Optional[Path]: ...

    async def extract(self, package: Package, target: Path) -> Result[Path]: ...


def _is_within(base: Path, candidate: Path) -> bool:
    try:
        candidate.resolve().relative_to(base.resolve())
        return True
    except (OSError, ValueError):
        return False


def _extract_zip(archive: Path, target: Path) -> None:
    with zipfile.ZipFile(archive) as zf:
        for member in zf.infolist():
            if not _is_within(target, target / member.filename):
                raise ValueError(f"Unsafe archive member: {member.filename}")
        zf.extractall(target)


def _extract_tar(archive: Path, target: Path) -> None:
    with tarfile.open(archive, "r:*") as tf:
        members = tf.getmembers()
        for member in members:
            if not _is_within(target, target / member.name):
                raise ValueError(f"Unsafe archive member: {member.name}")
        tf.extractall(target, members=members, filter="data")


class ArchiveExtractor:
    """
    Default extractor.

    Folder packages are used in place. Zip and tar archives (including gzip'd
    `.unitypackage` files) are unpacked off the event loop.
    """

    def folder_for(self, package: Package) -> Optional[Path]:
        if not package.location:
            return None
        location = Path(package.location)
        return location if location.is_dir() else None

    async def extract(self, package: Package, target: Path) -> Result[Path]:
        if not package.location:
            return Result.Err(ErrorCode.EXTRACT_FAILED, f"Package {package.id} has no location")
        archive = Path(package.location)
        if not archive.is_file():
            return Result.Err(ErrorCode.NOT_FOUND, f"Package archive missing for package {package.id}")
        try:
            await asyncio.to_thread(self._extract_sync, archive, target)
        except Exception as exc:
            await asyncio.to_thread(shutil.rmtree, target, True)
            return Result.Err(ErrorCode.EXTRACT_FAILED, sanitize_error_message(exc, "Extraction failed"))
        return Result.Ok(target)

    @staticmethod
    def _extract_sync(archive: Path, target: Path) -> None:
        target.mkdir(parents=True, exist_ok=True)
        if zipfile.is_zipfile(archive):
            _extract_zip(archive, target)
        elif tarfile.is_tarfile(archive):
            _extract_tar(archive, target)
        else:
            raise ValueError(f"Unsupported archive format: {archive.suffix or archive.name}")


class MaterializationCache:
    def __init__(self, root: Path = MATERIALIZE_ROOT_PATH, extractor: Optional[PackageExtractor] = None):
        self.root = Path(root)
        self.extractor = extractor or ArchiveExtractor()
        self._file_contexts: Dict[int, ExtractionContext] = {}

    def directory_for(self, package: Package) -> Path:
        folder = self.extractor.folder_for(package)
        if folder is not None:
            return folder
        return self.root / str(int(package.id))

    def open_context(self, package: Package) -> ExtractionContext:
        directory = self.directory_for(package)
        return ExtractionContext(package=package, directory=directory, pre_existed=directory.is_dir())

    async def materialize(self, context: ExtractionContext) -> Optional[Path]:
        """Materialize the context's package once; later calls reuse the outcome."""
        if context.attempted:
            return context.outcome
        context.attempted = True

        if context.pre_existed and context.directory.is_dir():
            context.outcome = context.directory
            return context.outcome

        res = await self.extractor.extract(context.package, context.directory)
        if not res.ok:
            logger.warning("Could not materialize package %s: %s", context.package.id, res.error)
            context.outcome = None
            return None
        context.outcome = Path(res.data) if res.data else context.directory
        logger.debug("Materialized package %s into %s", context.package.id, context.outcome)
        return context.outcome

    async def resolve_file(self, context: ExtractionContext, record: FileRecord) -> Optional[Path]:
        """Return the on-disk path of `record` inside the materialized package, or None."""
        base = await self.materialize(context)
        if base is None:
            return None
        candidate = base / record.path
        if not _is_within(base, candidate) or not candidate.is_file():
            logger.debug("File %s not found in materialized package %s", record.path, context.package.id)
            return None
        return candidate

    async def retire(self, context: Optional[ExtractionContext]) -> bool:
        """Remove a scratch extraction; pre-existing directories are kept."""
        if context is None or context.pre_existed:
            return False
        if not context.directory.exists():
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, context.directory)
        except OSError as exc:
            logger.warning("Could not remove extraction of package %s: %s", context.package.id, exc)
            return False
        logger.debug("Retired extraction of package %s", context.package.id)
        return True

    async def materialize_file(self, record: FileRecord, package: Optional[Package] = None) -> Optional[Path]:
        """
        Resolve a single file outside a scheduler pass.

        Contexts are memoized per package until `release_files()`, so repeated
        lookups in the same package extract at most once.
        """
        context = self._file_contexts.get(record.package_id)
        if context is None:
            context = self.open_context(package or record.to_package())
            self._file_contexts[record.package_id] = context
        return await self.resolve_file(context, record)

    async def release_files(self) -> int:
        """Forget memoized contexts and remove the scratch extractions they made."""
        contexts = list(self._file_contexts.values())
        self._file_contexts.clear()
        retired = 0
        for context in contexts:
            if await self.retire(context):
                retired += 1
        return retired
