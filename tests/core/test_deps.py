import pytest

from inv_backend import deps as deps_mod
from inv_backend.shared import Result


def test_init_db_or_error_failure(monkeypatch):
    class _BadSqlite:
        def __init__(self, *_args, **_kwargs):
            raise RuntimeError("boom")

    monkeypatch.setattr(deps_mod, "Sqlite", _BadSqlite)
    out = deps_mod._init_db_or_error("/tmp/db.sqlite")
    assert out.ok is False
    assert out.code == "DB_ERROR"


@pytest.mark.asyncio
async def test_migrate_db_or_error_failure(monkeypatch):
    async def _migrate(_db):
        return Result.Err("DB_ERROR", "migrate failed")

    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)
    out = await deps_mod._migrate_db_or_error(object())
    assert out.ok is False
    assert "migrate failed" in out.error


@pytest.mark.asyncio
async def test_build_services_migration_failure_closes_db(monkeypatch, tmp_path):
    closed = []

    class _Sqlite:
        def __init__(self, *_args, **_kwargs):
            pass

        async def aclose(self):
            closed.append(True)

    async def _migrate(_db):
        return Result.Err("DB_ERROR", "no")

    monkeypatch.setattr(deps_mod, "Sqlite", _Sqlite)
    monkeypatch.setattr(deps_mod, "migrate_schema", _migrate)

    out = await deps_mod.build_services(str(tmp_path / "db.sqlite"), data_root=tmp_path / "data")
    assert out.ok is False
    assert out.code == "DB_ERROR"
    assert closed == [True]


@pytest.mark.asyncio
async def test_build_services_wires_data_root(services, tmp_path):
    data = tmp_path / "data"
    assert services["previews"].preview_root == data / "Previews"
    assert services["cache"].root == data / "Extracted"
    assert services["previews"].scheduler.work_root == data / "PreviewWork"
    assert services["hue"].preview_root == data / "Previews"
    for key in ("db", "ffprobe", "store", "renderer", "generator", "classifier"):
        assert services[key] is not None
