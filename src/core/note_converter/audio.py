"""Prepare media payloads for the transcription endpoint with ffmpeg."""

from __future__ import annotations

import logging
import subprocess
import tempfile
from collections.abc import Callable
from pathlib import Path, PurePosixPath

from imageio_ffmpeg import get_ffmpeg_exe

from .config import TranscriptionConfig
from .errors import ConversionError

logger = logging.getLogger(__name__)

MB = 1024 * 1024
# Segments are cut by duration, so leave headroom for container overhead.
SEGMENT_HEADROOM = 0.95

Runner = Callable[..., subprocess.CompletedProcess]


class AudioChunker:
    """Transcode media to mono MP3 and cut it into upload-sized segments.

    A single ffmpeg pass drops any video stream, re-encodes the audio at a
    fixed bitrate and writes consecutive segments whose byte size stays under
    ``chunk_mb``.
    """

    def __init__(
        self,
        chunk_mb: int = 24,
        bitrate_kbps: int = 64,
        *,
        ffmpeg_exe: str | None = None,
        runner: Runner = subprocess.run,
    ) -> None:
        self.chunk_bytes = max(1, chunk_mb) * MB
        self.bitrate_kbps = max(8, bitrate_kbps)
        self._ffmpeg_exe = ffmpeg_exe
        self._runner = runner

    @classmethod
    def from_config(cls, config: TranscriptionConfig) -> "AudioChunker":
        return cls(config.chunk_mb, config.audio_bitrate_kbps)

    @property
    def segment_seconds(self) -> int:
        seconds = self.chunk_bytes * 8 / (self.bitrate_kbps * 1000) * SEGMENT_HEADROOM
        return max(1, int(seconds))

    def ffmpeg(self) -> str:
        if self._ffmpeg_exe is None:
            self._ffmpeg_exe = get_ffmpeg_exe()
        return self._ffmpeg_exe

    def command(self, source: Path, pattern: Path) -> list[str]:
        return [
            self.ffmpeg(),
            "-y",
            "-loglevel",
            "error",
            "-i",
            str(source),
            "-vn",
            "-ac",
            "1",
            "-b:a",
            f"{self.bitrate_kbps}k",
            "-f",
            "segment",
            "-segment_time",
            str(self.segment_seconds),
            "-reset_timestamps",
            "1",
            str(pattern),
        ]

    def split(self, payload: bytes, name: str) -> list[bytes]:
        suffix = PurePosixPath(name).suffix or ".bin"
        with tempfile.TemporaryDirectory(prefix="note-converter-audio-") as workdir:
            root = Path(workdir)
            source = root / f"source{suffix}"
            source.write_bytes(payload)
            pattern = root / "chunk_%03d.mp3"
            logger.info(
                "Splitting %s into %ds audio segments at %dkbps",
                name,
                self.segment_seconds,
                self.bitrate_kbps,
            )
            try:
                self._runner(
                    self.command(source, pattern),
                    check=True,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except subprocess.CalledProcessError as exc:
                detail = (exc.stderr or b"").decode("utf-8", "replace").strip()
                raise ConversionError(f"Audio extraction failed for {name}: {detail or exc}") from exc
            except OSError as exc:
                raise ConversionError(f"ffmpeg could not be started: {exc}") from exc
            chunks = [path.read_bytes() for path in sorted(root.glob("chunk_*.mp3"))]
        chunks = [chunk for chunk in chunks if chunk]
        if not chunks:
            raise ConversionError(f"No audio track found in {name}")
        logger.debug("Split %s into %d chunk(s)", name, len(chunks))
        return chunks


__all__ = ["AudioChunker"]
