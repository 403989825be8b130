"""
Default preview rendering (Pillow).

`resize_image` is the fast path used directly by the scheduler for plain
raster images. `PreviewRenderer.render` is the worker-pool render function:
it runs in a thread, never raises, and returns a `PreviewResult` or None.
"""
from __future__ import annotations

import wave
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from PIL import Image, ImageDraw

from ...adapters.tools.ffprobe import FFProbe
from ...config import PREVIEW_SIZE, PREVIEW_UPSCALE_LOSSLESS
from ...shared import ErrorCode, Result, classify_file, get_logger, sanitize_error_message

if TYPE_CHECKING:
    from .generator import PreviewRequest

logger = get_logger(__name__)

AUDIO_BACKGROUND = (38, 50, 56, 255)
AUDIO_FOREGROUND = (129, 212, 250, 255)
AUDIO_BARS = 24


@dataclass
class PreviewResult:
    """What a render produced; `icon` means a usable preview image was written."""

    icon: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None


def _fit(width: int, height: int, size: int) -> tuple[int, int]:
    scale = size / float(max(width, height))
    return max(1, round(width * scale)), max(1, round(height * scale))


def resize_image(
    source: Path,
    destination: Path,
    size: int = PREVIEW_SIZE,
    lossless_upscale: bool = PREVIEW_UPSCALE_LOSSLESS,
) -> Result[tuple[int, int]]:
    """
    Write a PNG preview of `source` fitting into `size` x `size`.

    Larger images are downscaled with LANCZOS. Smaller images are upscaled,
    with nearest-neighbour sampling when `lossless_upscale` is set so pixel
    art stays crisp.

    Returns:
        Result with the (width, height) of the source image
    """
    try:
        with Image.open(source) as img:
            img.load()
            original = img.size
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA")
            target = _fit(original[0], original[1], int(size))
            if target != original:
                upscaling = target[0] > original[0]
                resample = Image.Resampling.NEAREST if (upscaling and lossless_upscale) else Image.Resampling.LANCZOS
                img = img.resize(target, resample)
            destination.parent.mkdir(parents=True, exist_ok=True)
            img.save(destination, format="PNG")
    except Exception as exc:
        logger.debug("Resize failed for %s: %s", source, exc)
        return Result.Err(ErrorCode.RENDER_FAILED, sanitize_error_message(exc, "Resize failed"))
    return Result.Ok(original)


# wave sample width -> memoryview format; 8-bit PCM is unsigned
_SAMPLE_FORMATS = {1: "B", 2: "h", 4: "i"}
_MAX_POINTS_PER_BAR = 512


def _wav_envelope(path: Path, bars: int) -> tuple[list[float], Optional[float]]:
    """Normalized peak level per bar (sampled) plus the duration in seconds."""
    with wave.open(str(path), "rb") as wf:
        frames = wf.getnframes()
        rate = wf.getframerate() or 1
        width = wf.getsampwidth()
        raw = wf.readframes(frames)
    duration = frames / float(rate)
    fmt = _SAMPLE_FORMATS.get(width)
    if not raw or fmt is None or bars <= 0:
        return [], duration
    samples = memoryview(raw[: len(raw) // width * width]).cast(fmt)
    offset = 128 if width == 1 else 0
    per_bar = max(1, len(samples) // bars)
    step = max(1, per_bar // _MAX_POINTS_PER_BAR)
    levels: list[float] = []
    for start in range(0, per_bar * bars, per_bar):
        window = samples[start:start + per_bar:step]
        if len(window) == 0:
            break
        levels.append(float(max(abs(int(s) - offset) for s in window)))
    top = max(levels) if levels else 0.0
    return ([lvl / top for lvl in levels] if top > 0 else levels), duration


def draw_audio_icon(destination: Path, levels: list[float], size: int = PREVIEW_SIZE) -> None:
    img = Image.new("RGBA", (size, size), AUDIO_BACKGROUND)
    draw = ImageDraw.Draw(img)
    bars = levels or [0.35, 0.6, 0.9, 0.6, 0.35] * (AUDIO_BARS // 5)
    slot = size / float(len(bars))
    mid = size / 2.0
    for i, level in enumerate(bars):
        half = max(1.0, min(1.0, float(level)) * size * 0.4)
        x0 = i * slot + slot * 0.2
        draw.rectangle([x0, mid - half, x0 + slot * 0.6, mid + half], fill=AUDIO_FOREGROUND)
    destination.parent.mkdir(parents=True, exist_ok=True)
    img.save(destination, format="PNG")


class PreviewRenderer:
    def __init__(self, ffprobe: Optional[FFProbe] = None, size: int = PREVIEW_SIZE):
        self.ffprobe = ffprobe
        self.size = int(size)

    def render(self, request: "PreviewRequest") -> Optional[PreviewResult]:
        kind = classify_file(request.file_type)
        source = Path(request.source_path)
        destination = Path(request.destination_path)
        if kind == "image":
            res = resize_image(source, destination, self.size)
            if not res.ok:
                return None
            width, height = res.data
            return PreviewResult(icon=True, width=width, height=height)
        if kind == "audio":
            return self._render_audio(source, destination)
        return None

    __call__ = render

    def _render_audio(self, source: Path, destination: Path) -> Optional[PreviewResult]:
        levels: list[float] = []
        duration: Optional[float] = None
        if source.suffix.lower() == ".wav":
            try:
                levels, duration = _wav_envelope(source, AUDIO_BARS)
            except (OSError, EOFError, wave.Error) as exc:
                logger.debug("Could not read wav %s: %s", source, exc)
        if duration is None and self.ffprobe is not None:
            probed = self.ffprobe.get_duration(str(source))
            if probed.ok:
                duration = probed.data
        try:
            draw_audio_icon(destination, levels, self.size)
        except OSError as exc:
            logger.warning("Could not write audio preview for %s: %s", source, exc)
            return PreviewResult(icon=False, duration=duration)
        return PreviewResult(icon=True, duration=duration)
