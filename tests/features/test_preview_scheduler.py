import time
from pathlib import Path

import pytest

from inv_backend.features.previews import ArchiveExtractor, PreviewResult
from inv_backend.shared import HUE_UNSET, DependencyState, PackageSource, PreviewState
from tests.helpers import add_file, add_package, load, make_image, make_zip, png_bytes, render_png, write_file


class CountingExtractor(ArchiveExtractor):
    def __init__(self):
        self.calls = []

    async def extract(self, package, target):
        self.calls.append(package.id)
        return await super().extract(package, target)


class RecordingRender:
    def __init__(self):
        self.requests = []
        self.dependency_copies = {}

    def __call__(self, request):
        self.requests.append(request)
        if request.has_dependencies:
            root = Path(request.source_path).parent.parent
            self.dependency_copies[request.file_id] = sorted(
                p.name for p in (root / "textures").glob("*") if p.is_file()
            )
        return render_png(request)


@pytest.mark.asyncio
async def test_mixed_batch_scenario(make_services, tmp_path):
    render = RecordingRender()
    svc = await make_services(render_fn=render)
    store = svc["store"]
    extractor = CountingExtractor()
    svc["cache"].extractor = extractor

    offline = await add_package(store, "offline", location=str(tmp_path / "offline"), downloaded=False)
    folder = tmp_path / "FolderPkg"
    make_image(folder / "tex" / "c.png", size=(40, 20))
    write_file(folder / "thing.unknownext")
    local = await add_package(store, "folder", source=PackageSource.DIRECTORY, location=str(folder))
    archive = make_zip(
        tmp_path / "models.zip",
        {
            "models/d.fbx": b"FBX Kaydara t1.png t2.png",
            "models/e.fbx": b"FBX Kaydara no references",
            "textures/t1.png": png_bytes(),
            "textures/t2.png": png_bytes(),
        },
    )
    models = await add_package(store, "models", source=PackageSource.ARCHIVE, location=str(archive))

    a = await add_file(store, offline, "a.png")
    b = await add_file(store, local, "thing.unknownext")
    c = await add_file(store, local, "tex/c.png")
    t1 = await add_file(store, models, "textures/t1.png", preview_state="custom")
    t2 = await add_file(store, models, "textures/t2.png", preview_state="custom")
    d = await add_file(store, models, "models/d.fbx", dependency_state="done", dependencies=[t1, t2])
    e = await add_file(store, models, "models/e.fbx")
    await store.update_hue(c, 200.0)

    files = await load(store, e, c, d, a, b)
    res = await svc["previews"].recreate_previews(files)
    assert res.ok, res.error
    assert res.data == 3

    ra, rb, rc, rd, re_ = await load(store, a, b, c, d, e)
    assert ra.preview_state is PreviewState.NONE
    assert rb.preview_state is PreviewState.NOT_APPLICABLE
    assert rc.preview_state is PreviewState.CUSTOM
    assert (rc.width, rc.height) == (40, 20)
    assert rc.hue == HUE_UNSET
    assert rd.preview_state is PreviewState.CUSTOM
    assert re_.preview_state is PreviewState.CUSTOM
    assert re_.dependency_state is DependencyState.DONE

    # one extraction served both models, which went through the generator
    assert extractor.calls == [models]
    assert sorted(r.file_id for r in render.requests) == [d, e]
    assert render.dependency_copies == {d: ["t1.png", "t2.png"]}

    preview_root = svc["previews"].preview_root
    assert (preview_root / str(local) / f"af-{c}.png").is_file()
    assert (preview_root / str(models) / f"af-{d}.png").is_file()

    # scratch extraction and dependency copies are gone, the folder package is untouched
    assert not svc["cache"].directory_for(rd.to_package()).exists()
    assert not svc["previews"].scheduler.work_root.exists()
    assert (folder / "tex" / "c.png").exists()


@pytest.mark.asyncio
async def test_provided_previews_are_never_demoted(make_services, tmp_path):
    svc = await make_services(render_fn=lambda request: None)
    store = svc["store"]
    folder = tmp_path / "Pkg"
    write_file(folder / "Assets" / "Sub" / "broken.png", b"not an image")
    write_file(folder / "Assets" / "Sub" / "m.fbx", b"fbx")
    pkg = await add_package(store, "pkg", location=str(folder))
    broken = await add_file(store, pkg, "Assets/Sub/broken.png", preview_state="provided")
    model = await add_file(store, pkg, "Assets/Sub/m.fbx", preview_state="provided")
    gone = await add_file(store, pkg, "Assets/missing.png", preview_state="provided")

    res = await svc["previews"].recreate_previews(await load(store, broken, model, gone))
    assert res.ok and res.data == 0

    for record in await load(store, broken, model, gone):
        assert record.preview_state is PreviewState.PROVIDED


@pytest.mark.asyncio
async def test_fast_path_failure_falls_back_to_shipped_preview(make_services, tmp_path, monkeypatch):
    svc = await make_services(render_fn=render_png)
    store = svc["store"]
    writes = []
    original_update = store.update_preview

    async def recording_update(file_id, state, **kwargs):
        writes.append((file_id, state))
        return await original_update(file_id, state, **kwargs)

    monkeypatch.setattr(store, "update_preview", recording_update)
    folder = tmp_path / "Pkg"
    write_file(folder / "Assets" / "Sub" / "broken.png", b"not an image")
    make_image(folder / "Assets" / "preview.png", color=(0, 0, 255))
    write_file(folder / "Other" / "Deep" / "bad.jpg", b"also broken")
    pkg = await add_package(store, "pkg", location=str(folder))
    shipped = await add_file(store, pkg, "Assets/Sub/broken.png")
    failed = await add_file(store, pkg, "Other/Deep/bad.jpg")

    res = await svc["previews"].recreate_previews(await load(store, shipped, failed))
    assert res.ok and res.data == 1

    rs, rf = await load(store, shipped, failed)
    assert rs.preview_state is PreviewState.PROVIDED
    assert rs.hue == HUE_UNSET
    # the shipped preview is recorded in a single write, never as custom first
    assert [w for w in writes if w[0] == shipped] == [(shipped, PreviewState.PROVIDED)]
    assert rf.preview_state is PreviewState.ERROR
    copied = svc["previews"].preview_root / str(pkg) / f"af-{shipped}.png"
    assert copied.read_bytes() == (folder / "Assets" / "preview.png").read_bytes()


@pytest.mark.asyncio
async def test_materialization_failure_marks_error(make_services, tmp_path):
    svc = await make_services(render_fn=render_png)
    store = svc["store"]
    pkg = await add_package(store, "broken", location=str(write_file(tmp_path / "bad.zip", b"not a zip")))
    a = await add_file(store, pkg, "a.png")
    b = await add_file(store, pkg, "b.png", preview_state="provided")

    res = await svc["previews"].recreate_previews(await load(store, a, b))
    assert res.ok and res.data == 0
    ra, rb = await load(store, a, b)
    assert ra.preview_state is PreviewState.ERROR
    assert rb.preview_state is PreviewState.PROVIDED


@pytest.mark.asyncio
async def test_outstanding_requests_are_throttled(make_services, tmp_path):
    def slow_render(request):
        time.sleep(0.05)
        return render_png(request)

    svc = await make_services(render_fn=slow_render, max_requests=3, open_requests=1)
    store = svc["store"]
    folder = tmp_path / "Models"
    pkg = await add_package(store, "models", location=str(folder))
    ids = []
    for i in range(12):
        write_file(folder / f"m{i}.fbx", b"fbx")
        ids.append(await add_file(store, pkg, f"m{i}.fbx", dependency_state="not_possible"))

    gen = svc["generator"]
    original_drain = gen.drain
    drains = []

    async def recording_drain(target=0):
        before = gen.active_request_count()
        await original_drain(target)
        drains.append((target, before, gen.active_request_count()))

    gen.drain = recording_drain

    res = await svc["previews"].recreate_previews(await load(store, *ids))
    assert res.ok and res.data == 12

    window = [d for d in drains if d[0] == 1]
    assert window, "high-water mark was never reached"
    assert all(before > 3 and after <= 1 for _, before, after in window)
    assert gen.stats["peak_outstanding"] <= 4


@pytest.mark.asyncio
async def test_cancellation_stops_at_next_file(make_services, tmp_path):
    class CancelAt:
        def __init__(self, at):
            self.at = at
            self.service = None

        def start(self, title):
            return 1

        def report(self, progress_id, current, total, status):
            if current == self.at:
                self.service.cancel()

        def remove(self, progress_id):
            pass

    progress = CancelAt(3)
    svc = await make_services(render_fn=render_png, progress=progress)
    progress.service = svc["previews"]
    store = svc["store"]
    folder = tmp_path / "Pkg"
    pkg = await add_package(store, "pkg", location=str(folder))
    ids = []
    for i in range(5):
        make_image(folder / f"{i}.png")
        ids.append(await add_file(store, pkg, f"{i}.png"))

    res = await svc["previews"].recreate_previews(await load(store, *ids))
    assert res.ok and res.data == 2
    states = [r.preview_state for r in await load(store, *ids)]
    assert states == [PreviewState.CUSTOM] * 2 + [PreviewState.NONE] * 3

    status = await svc["previews"].get_status()
    assert status.data["cancelled"] is True
    assert status.data["running"] is False


@pytest.mark.asyncio
async def test_scheduled_runs_are_idempotent(make_services, tmp_path):
    svc = await make_services(render_fn=render_png)
    store = svc["store"]
    folder = tmp_path / "Pkg"
    make_image(folder / "a.png")
    write_file(folder / "b.fbx", b"fbx")
    write_file(folder / "c.xyz", b"?")
    pkg = await add_package(store, "pkg", location=str(folder))
    ids = [
        await add_file(store, pkg, "a.png", preview_state="redo"),
        await add_file(store, pkg, "b.fbx", preview_state="redo"),
        await add_file(store, pkg, "c.xyz", preview_state="redo"),
    ]

    first = await svc["previews"].recreate_scheduled_previews()
    states = [r.preview_state for r in await load(store, *ids)]
    second = await svc["previews"].recreate_scheduled_previews()

    assert first.ok and first.data == 2
    assert second.ok and second.data == 0
    assert [r.preview_state for r in await load(store, *ids)] == states
    assert states == [PreviewState.CUSTOM, PreviewState.CUSTOM, PreviewState.NOT_APPLICABLE]


@pytest.mark.asyncio
async def test_packages_are_retired_at_boundaries_but_cache_hits_survive(make_services, tmp_path):
    svc = await make_services(render_fn=render_png)
    store = svc["store"]
    cache = svc["cache"]
    first = await add_package(store, "first", location=str(make_zip(tmp_path / "1.zip", {"a.png": png_bytes()})))
    second = await add_package(store, "second", location=str(make_zip(tmp_path / "2.zip", {"b.png": png_bytes()})))
    kept = await add_package(store, "kept", location=str(tmp_path / "missing.zip"))
    make_image(cache.root / str(kept) / "c.png")

    ids = [
        await add_file(store, first, "a.png"),
        await add_file(store, second, "b.png"),
        await add_file(store, kept, "c.png"),
    ]
    res = await svc["previews"].recreate_previews(await load(store, *ids))
    assert res.ok and res.data == 3

    assert not (cache.root / str(first)).exists()
    assert not (cache.root / str(second)).exists()
    assert (cache.root / str(kept) / "c.png").exists()


@pytest.mark.asyncio
async def test_generator_results_carry_audio_duration(make_services, tmp_path):
    def audio_render(request):
        render_png(request)
        return PreviewResult(icon=True, duration=3.25)

    svc = await make_services(render_fn=audio_render)
    store = svc["store"]
    folder = tmp_path / "Sfx"
    write_file(folder / "boom.wav", b"RIFF")
    pkg = await add_package(store, "sfx", location=str(folder))
    fid = await add_file(store, pkg, "boom.wav")

    res = await svc["previews"].recreate_preview((await load(store, fid))[0])
    assert res.ok and res.data is True
    (record,) = await load(store, fid)
    assert record.preview_state is PreviewState.CUSTOM
    assert record.length == 3.25
