"""
FFprobe adapter used to read audio durations for catalog files.
"""
import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from ...config import FFPROBE_TIMEOUT
from ...shared import ErrorCode, Result, get_logger

logger = get_logger(__name__)


class FFProbe:
    """
    FFprobe wrapper for duration probing.

    Never raises exceptions - always returns Result.
    """

    def __init__(self, bin_name: str = "ffprobe", timeout: Optional[float] = None):
        """
        Initialize FFprobe adapter.

        Args:
            bin_name: FFprobe binary name or path
            timeout: Command timeout in seconds
        """
        self.bin = bin_name
        self.timeout = float(timeout) if timeout is not None else float(FFPROBE_TIMEOUT)
        self._resolved_bin: Optional[str] = None
        self._available = self._check_available()

    def _resolve_executable(self, bin_name: str) -> Optional[str]:
        """
        Resolve and validate the ffprobe executable.

        Only plain executable names or paths are accepted, and the resolved
        file must actually be named ffprobe.
        """
        raw = (bin_name or "").strip()
        if not self._is_safe_executable_token(raw):
            return None
        resolved = shutil.which(raw)
        if not resolved:
            try:
                candidate = Path(raw)
                if candidate.is_file():
                    resolved = str(candidate.resolve(strict=True))
            except (OSError, RuntimeError, ValueError):
                return None
        if not resolved:
            return None
        return resolved if Path(resolved).name.lower().startswith("ffprobe") else None

    @staticmethod
    def _is_safe_executable_token(raw: str) -> bool:
        if not raw:
            return False
        if "\x00" in raw or "\n" in raw or "\r" in raw:
            return False
        return not any(ch in raw for ch in ("&", "|", ";", ">", "<"))

    def _check_available(self) -> bool:
        resolved = self._resolve_executable(self.bin)
        if not resolved:
            return False
        self._resolved_bin = resolved
        return True

    def is_available(self) -> bool:
        """Check if ffprobe is available."""
        return self._available

    def _build_cmd(self, path: str) -> List[str]:
        return [
            self._resolved_bin or self.bin,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            "-select_streams", "a:0",
            path,
        ]

    def read(self, path: str) -> Result[dict]:
        """
        Read container and first audio stream information.

        Args:
            path: Audio file path

        Returns:
            Result with dict containing 'format' and 'audio_stream'
        """
        if not self._available:
            return Result.Err(ErrorCode.TOOL_MISSING, "ffprobe not found in PATH")

        try:
            process = subprocess.run(
                self._build_cmd(path),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
                shell=False,
                close_fds=os.name != "nt",
            )
        except subprocess.TimeoutExpired:
            logger.error("ffprobe timeout for %s", path)
            return Result.Err(ErrorCode.TIMEOUT, f"ffprobe timeout after {self.timeout}s")
        except Exception as e:
            logger.error("ffprobe unexpected error: %s", e)
            return Result.Err(ErrorCode.FFPROBE_ERROR, str(e))

        if process.returncode != 0:
            stderr_msg = (process.stderr or "").strip()
            logger.warning("ffprobe error for %s: %s", path, stderr_msg)
            return Result.Err(ErrorCode.FFPROBE_ERROR, stderr_msg or "ffprobe command failed")
        if not (process.stdout or "").strip():
            return Result.Err(ErrorCode.FFPROBE_ERROR, "No ffprobe output")

        try:
            data = json.loads(process.stdout)
        except json.JSONDecodeError as e:
            logger.error("ffprobe JSON parse error: %s", e)
            return Result.Err(ErrorCode.PARSE_ERROR, f"Failed to parse ffprobe output: {e}")
        if not isinstance(data, dict):
            return Result.Err(ErrorCode.PARSE_ERROR, "Invalid ffprobe output format")

        streams = data.get("streams") or []
        audio_stream = next((s for s in streams if isinstance(s, dict) and s.get("codec_type") == "audio"), {})
        return Result.Ok({"format": data.get("format") or {}, "audio_stream": audio_stream})

    def get_duration(self, path: str) -> Result[float]:
        """
        Get audio duration in seconds.

        The container duration wins; the audio stream duration is the fallback.
        """
        result = self.read(path)
        if not result.ok:
            return Result.Err(result.code or ErrorCode.FFPROBE_ERROR, result.error or "ffprobe failed")

        data = result.data if isinstance(result.data, dict) else {}
        for source in (data.get("format") or {}, data.get("audio_stream") or {}):
            duration_str = source.get("duration")
            if not duration_str:
                continue
            try:
                return Result.Ok(float(duration_str))
            except (TypeError, ValueError):
                continue

        return Result.Err(ErrorCode.PARSE_ERROR, "Duration not found in audio metadata")
