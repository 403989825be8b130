"""
Catalog entities: packages and the previewable files they contain.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from ...shared import HUE_UNSET, DependencyState, FileKind, PackageSource, PreviewState, classify_file, normalize_type

RESTORABLE_SOURCES = (PackageSource.ASSET_STORE, PackageSource.CUSTOM)


def _as_bool(value: Any) -> bool:
    try:
        return bool(int(value or 0))
    except (TypeError, ValueError):
        return bool(value)


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any, default: float | None = None) -> float | None:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _parse_dependencies(raw: Any) -> list[int]:
    if isinstance(raw, (list, tuple)):
        items = raw
    else:
        try:
            items = json.loads(raw or "[]")
        except (TypeError, ValueError):
            return []
        if not isinstance(items, list):
            return []
    out: list[int] = []
    for item in items:
        value = _as_int(item)
        if value is not None:
            out.append(value)
    return out


@dataclass
class Package:
    id: int
    name: str = ""
    source: PackageSource = PackageSource.OTHER
    location: str | None = None
    downloaded: bool = False
    exclude: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Package":
        return cls(
            id=int(row["id"]),
            name=str(row.get("name") or ""),
            source=PackageSource.parse(row.get("source")),
            location=row.get("location") or None,
            downloaded=_as_bool(row.get("downloaded")),
            exclude=_as_bool(row.get("excluded")),
        )

    @property
    def is_folder(self) -> bool:
        return bool(self.location) and Path(str(self.location)).is_dir()


@dataclass
class FileRecord:
    """
    One previewable file of a package, joined with the package columns the
    pipeline needs (availability, source and location).

    Instances are plain snapshots. The pipeline mirrors the state it persists
    onto them, but the catalog row stays authoritative.
    """

    id: int
    package_id: int
    path: str
    filename: str = ""
    type: str = ""
    downloaded: bool = False
    dependency_state: DependencyState = DependencyState.UNKNOWN
    dependencies: list[int] = field(default_factory=list)
    preview_state: PreviewState = PreviewState.NONE
    width: int | None = None
    height: int | None = None
    length: float | None = None
    hue: float = HUE_UNSET
    package_name: str = ""
    package_source: PackageSource = PackageSource.OTHER
    package_location: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "FileRecord":
        path = str(row.get("path") or "")
        filename = str(row.get("filename") or "") or Path(path).name
        return cls(
            id=int(row["id"]),
            package_id=int(row["package_id"]),
            path=path,
            filename=filename,
            type=normalize_type(row.get("type") or filename),
            downloaded=_as_bool(row.get("downloaded")),
            dependency_state=DependencyState.parse(row.get("dependency_state")),
            dependencies=_parse_dependencies(row.get("dependencies")),
            preview_state=PreviewState.parse(row.get("preview_state")),
            width=_as_int(row.get("width")),
            height=_as_int(row.get("height")),
            length=_as_float(row.get("length")),
            hue=_as_float(row.get("hue"), HUE_UNSET),
            package_name=str(row.get("package_name") or ""),
            package_source=PackageSource.parse(row.get("package_source")),
            package_location=row.get("package_location") or None,
        )

    @property
    def kind(self) -> FileKind:
        return classify_file(self.type)

    @property
    def has_dependencies(self) -> bool:
        return bool(self.dependencies)

    def to_package(self) -> Package:
        return Package(
            id=self.package_id,
            name=self.package_name,
            source=self.package_source,
            location=self.package_location,
            downloaded=self.downloaded,
        )

    def __str__(self) -> str:
        return f"{self.filename} (#{self.id}, package {self.package_id})"
