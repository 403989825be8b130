"""Small builders shared by the feature tests."""
from __future__ import annotations

import zipfile
from pathlib import Path

from PIL import Image


def make_image(path: Path, size=(32, 32), color=(255, 0, 0)) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGB", size, color=color).save(path)
    return path


def write_file(path: Path, content: bytes | str = b"data") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        content = content.encode("utf-8")
    path.write_bytes(content)
    return path


def make_zip(path: Path, members: dict[str, bytes]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, data in members.items():
            zf.writestr(name, data)
    return path


def png_bytes(size=(16, 16), color=(0, 128, 255)) -> bytes:
    import io

    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format="PNG")
    return buf.getvalue()


async def add_package(store, name, **kwargs) -> int:
    res = await store.add_package(name, **kwargs)
    assert res.ok, res.error
    return int(res.data)


async def add_file(store, package_id, path, **kwargs) -> int:
    res = await store.add_file(package_id, path, **kwargs)
    assert res.ok, res.error
    return int(res.data)


async def load(store, *file_ids):
    res = await store.get_files(list(file_ids))
    assert res.ok, res.error
    by_id = {f.id: f for f in res.data}
    return [by_id[i] for i in file_ids]


def render_png(request):
    """Render function stand-in: writes a small PNG and reports an icon."""
    from inv_backend.features.previews import PreviewResult

    make_image(Path(request.destination_path), size=(8, 8), color=(0, 255, 0))
    return PreviewResult(icon=True, width=8, height=8)
