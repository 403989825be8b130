import tarfile
from pathlib import Path

import pytest

from inv_backend.features.catalog import FileRecord, Package
from inv_backend.features.previews import ArchiveExtractor, MaterializationCache
from inv_backend.shared import ErrorCode, PackageSource, Result
from tests.helpers import make_image, make_zip, write_file


class CountingExtractor(ArchiveExtractor):
    def __init__(self):
        self.calls = []

    async def extract(self, package, target):
        self.calls.append(package.id)
        return await super().extract(package, target)


class FailingExtractor(ArchiveExtractor):
    def __init__(self):
        self.calls = 0

    async def extract(self, package, target):
        self.calls += 1
        return Result.Err(ErrorCode.EXTRACT_FAILED, "corrupt archive")


def _record(package_id, path, file_id=1):
    return FileRecord(id=file_id, package_id=package_id, path=path, filename=Path(path).name, downloaded=True)


@pytest.mark.asyncio
async def test_archive_is_extracted_once_and_retired(tmp_path):
    archive = make_zip(tmp_path / "pkg.zip", {"Assets/a.png": b"a", "Assets/b.png": b"b"})
    extractor = CountingExtractor()
    cache = MaterializationCache(tmp_path / "cache", extractor)
    package = Package(id=9, source=PackageSource.ARCHIVE, location=str(archive), downloaded=True)

    context = cache.open_context(package)
    assert context.directory == tmp_path / "cache" / "9"
    assert context.pre_existed is False

    first = await cache.resolve_file(context, _record(9, "Assets/a.png"))
    second = await cache.resolve_file(context, _record(9, "Assets/b.png", 2))
    missing = await cache.resolve_file(context, _record(9, "Assets/none.png", 3))
    assert first.read_bytes() == b"a"
    assert second.read_bytes() == b"b"
    assert missing is None
    assert extractor.calls == [9]

    assert await cache.retire(context) is True
    assert not context.directory.exists()


@pytest.mark.asyncio
async def test_pre_existing_extraction_is_a_cache_hit_and_kept(tmp_path):
    extractor = CountingExtractor()
    cache = MaterializationCache(tmp_path / "cache", extractor)
    write_file(tmp_path / "cache" / "4" / "x.png", b"cached")
    package = Package(id=4, location=str(tmp_path / "gone.zip"))

    context = cache.open_context(package)
    assert context.pre_existed is True
    path = await cache.resolve_file(context, _record(4, "x.png"))
    assert path.read_bytes() == b"cached"
    assert extractor.calls == []

    assert await cache.retire(context) is False
    assert (tmp_path / "cache" / "4" / "x.png").exists()


@pytest.mark.asyncio
async def test_folder_packages_are_used_in_place(tmp_path):
    folder = tmp_path / "MyFolder"
    write_file(folder / "Sub" / "y.wav", b"riff")
    cache = MaterializationCache(tmp_path / "cache")
    package = Package(id=2, source=PackageSource.DIRECTORY, location=str(folder))

    context = cache.open_context(package)
    assert context.directory == folder
    assert context.pre_existed is True
    assert await cache.resolve_file(context, _record(2, "Sub/y.wav")) == folder / "Sub" / "y.wav"
    await cache.retire(context)
    assert folder.exists()


@pytest.mark.asyncio
async def test_failed_materialization_is_memoized_per_context(tmp_path):
    extractor = FailingExtractor()
    cache = MaterializationCache(tmp_path / "cache", extractor)
    context = cache.open_context(Package(id=5, location=str(tmp_path / "p.zip")))

    assert await cache.resolve_file(context, _record(5, "a.png")) is None
    assert await cache.resolve_file(context, _record(5, "b.png", 2)) is None
    assert extractor.calls == 1


@pytest.mark.asyncio
async def test_archive_members_escaping_target_are_rejected(tmp_path):
    archive = make_zip(tmp_path / "evil.zip", {"../outside.txt": b"x"})
    cache = MaterializationCache(tmp_path / "cache")
    context = cache.open_context(Package(id=6, location=str(archive)))

    assert await cache.materialize(context) is None
    assert not (tmp_path / "outside.txt").exists()
    assert not context.directory.exists()


@pytest.mark.asyncio
async def test_tar_packages_are_supported(tmp_path):
    src = write_file(tmp_path / "src" / "Assets" / "m.fbx", b"fbx")
    archive = tmp_path / "pkg.unitypackage"
    with tarfile.open(archive, "w:gz") as tf:
        tf.add(src, arcname="Assets/m.fbx")
    cache = MaterializationCache(tmp_path / "cache")
    context = cache.open_context(Package(id=8, location=str(archive)))

    path = await cache.resolve_file(context, _record(8, "Assets/m.fbx"))
    assert path is not None and path.read_bytes() == b"fbx"


@pytest.mark.asyncio
async def test_materialize_file_memoizes_per_package(tmp_path):
    archive = make_zip(tmp_path / "pkg.zip", {"a.png": b"a", "b.png": b"b"})
    extractor = CountingExtractor()
    cache = MaterializationCache(tmp_path / "cache", extractor)
    pkg = Package(id=3, location=str(archive))

    a = await cache.materialize_file(_record(3, "a.png"), pkg)
    b = await cache.materialize_file(_record(3, "b.png", 2), pkg)
    assert a is not None and b is not None
    assert extractor.calls == [3]

    assert await cache.release_files() == 1
    assert not (tmp_path / "cache" / "3").exists()

    # a directory that was already there survives the release
    make_image(tmp_path / "cache" / "4" / "c.png")
    assert await cache.materialize_file(_record(4, "c.png", 3), Package(id=4, location=str(archive))) is not None
    assert await cache.release_files() == 0
    assert (tmp_path / "cache" / "4" / "c.png").exists()
