import wave
from pathlib import Path

from PIL import Image

from inv_backend.features.previews import PreviewRenderer, PreviewRequest, resize_image
from inv_backend.shared import ErrorCode, Result
from tests.helpers import make_image, write_file


def _request(tmp_path: Path, source: Path, file_type: str) -> PreviewRequest:
    return PreviewRequest(
        file_id=1,
        source_path=source,
        destination_path=tmp_path / "out" / "af-1.png",
        file_type=file_type,
    )


def _write_wav(path: Path, frames: int = 4000, rate: int = 8000) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    samples = bytearray()
    for i in range(frames):
        value = 12000 if (i // 40) % 2 else -12000
        samples += int(value * (i / frames)).to_bytes(2, "little", signed=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(rate)
        wf.writeframes(bytes(samples))
    return path


def test_resize_image_downscales_and_reports_source_size(tmp_path):
    src = make_image(tmp_path / "big.png", size=(256, 128))
    dest = tmp_path / "p" / "big.png"
    res = resize_image(src, dest, size=64)
    assert res.ok
    assert res.data == (256, 128)
    with Image.open(dest) as img:
        assert img.size == (64, 32)


def test_resize_image_upscales_losslessly(tmp_path):
    src = tmp_path / "tiny.png"
    img = Image.new("RGB", (2, 2), (255, 0, 0))
    img.putpixel((1, 1), (0, 0, 255))
    img.save(src)
    dest = tmp_path / "tiny_out.png"

    res = resize_image(src, dest, size=8, lossless_upscale=True)
    assert res.ok
    with Image.open(dest) as out:
        assert out.size == (8, 8)
        assert out.convert("RGB").getpixel((0, 0)) == (255, 0, 0)
        assert out.convert("RGB").getpixel((7, 7)) == (0, 0, 255)


def test_resize_image_of_broken_file_is_an_error(tmp_path):
    res = resize_image(write_file(tmp_path / "x.png", b"no"), tmp_path / "y.png", size=16)
    assert res.ok is False
    assert res.code == ErrorCode.RENDER_FAILED
    assert not (tmp_path / "y.png").exists()


def test_render_image_request(tmp_path):
    src = make_image(tmp_path / "a.jpg", size=(100, 50))
    result = PreviewRenderer(size=32).render(_request(tmp_path, src, "jpg"))
    assert result.icon is True
    assert (result.width, result.height) == (100, 50)
    assert (tmp_path / "out" / "af-1.png").is_file()


def test_render_wav_draws_icon_with_duration(tmp_path):
    src = _write_wav(tmp_path / "s.wav")
    result = PreviewRenderer(size=48).render(_request(tmp_path, src, "wav"))
    assert result.icon is True
    assert result.duration == 0.5
    with Image.open(tmp_path / "out" / "af-1.png") as img:
        assert img.size == (48, 48)


def test_render_audio_falls_back_to_ffprobe_duration(tmp_path):
    class Probe:
        def __init__(self):
            self.paths = []

        def get_duration(self, path):
            self.paths.append(path)
            return Result.Ok(12.5)

    probe = Probe()
    src = write_file(tmp_path / "s.ogg", b"OggS")
    result = PreviewRenderer(ffprobe=probe, size=16).render(_request(tmp_path, src, "ogg"))
    assert result.icon is True
    assert result.duration == 12.5
    assert probe.paths == [str(src)]


def test_render_unsupported_kind_returns_none(tmp_path):
    src = write_file(tmp_path / "m.fbx", b"fbx")
    assert PreviewRenderer().render(_request(tmp_path, src, "fbx")) is None
    assert not (tmp_path / "out" / "af-1.png").exists()
