import sys

import pytest_asyncio

from .repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest_asyncio.fixture
async def services(tmp_path):
    from inv_backend.deps import build_services

    db_path = str(tmp_path / "test_services.db")
    svc_res = await build_services(db_path, data_root=tmp_path / "data")
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    try:
        yield svc
    finally:
        try:
            await svc.get("db").aclose()
        except Exception:
            pass


@pytest_asyncio.fixture
async def store(services):
    return services["store"]


@pytest_asyncio.fixture
async def make_services(tmp_path):
    """Build a service set with custom options (render function, window sizes, progress...)."""
    from inv_backend.deps import build_services

    built = []

    async def _make(**kwargs):
        idx = len(built)
        svc_res = await build_services(
            str(tmp_path / f"catalog_{idx}.db"),
            data_root=tmp_path / f"data_{idx}",
            **kwargs,
        )
        assert svc_res.ok, svc_res.error
        built.append(svc_res.data)
        return svc_res.data

    try:
        yield _make
    finally:
        for svc in built:
            try:
                await svc["db"].aclose()
            except Exception:
                pass
