from __future__ import annotations

import logging
import re
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

import requests
import yt_dlp

from .base import ConverterOutput
from ..detection import ConverterKind
from ..errors import ConversionError, ValidationError
from ..models import ConversionOptions, ImageAsset
from ..retry import RetryPolicy
from ..utils import normalize_url

logger = logging.getLogger(__name__)

InfoLoader = Callable[[str], Mapping[str, Any]]

YOUTUBE_HOST_RE = re.compile(r"(^|\.)(youtube\.com|youtu\.be)$", re.IGNORECASE)
VTT_TIMESTAMP_RE = re.compile(r"^(\d{1,2}:)?\d{2}:\d{2}[.,]\d{3}\s+-->")
VTT_TAG_RE = re.compile(r"<[^>]+>")
PREFERRED_LANGUAGES = ("en", "en-US", "en-GB")


def load_video_info(url: str) -> Mapping[str, Any]:
    options = {"quiet": True, "no_warnings": True, "skip_download": True, "noplaylist": True}
    try:
        with yt_dlp.YoutubeDL(options) as ydl:
            return ydl.extract_info(url, download=False)
    except yt_dlp.DownloadError as exc:
        raise ConversionError(f"YouTube metadata error: {exc}") from exc


def format_timestamp(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}"


def _parse_vtt_time(value: str) -> float:
    parts = value.replace(",", ".").split(":")
    seconds = 0.0
    for part in parts:
        seconds = seconds * 60 + float(part)
    return seconds


def parse_vtt(text: str) -> list[tuple[float, str]]:
    """Collapse a WebVTT caption file into ``(start_seconds, text)`` cues.

    Auto-generated captions repeat the previous line in each cue; consecutive
    duplicates are dropped.
    """

    cues: list[tuple[float, str]] = []
    start: float | None = None
    buffer: list[str] = []
    last_text = ""

    def _flush() -> None:
        nonlocal last_text
        if start is None or not buffer:
            return
        line = " ".join(buffer).strip()
        if line and line != last_text:
            cues.append((start, line))
            last_text = line

    for raw in text.splitlines():
        line = raw.strip()
        if VTT_TIMESTAMP_RE.match(line):
            _flush()
            buffer = []
            start = _parse_vtt_time(line.split("-->", 1)[0].strip())
            continue
        if not line:
            _flush()
            buffer = []
            start = None
            continue
        if start is not None:
            cleaned = VTT_TAG_RE.sub("", line).strip()
            if cleaned and cleaned not in buffer:
                buffer.append(cleaned)
    _flush()
    return cues


def _pick_caption_url(info: Mapping[str, Any]) -> str | None:
    for key in ("subtitles", "automatic_captions"):
        tracks = info.get(key) or {}
        if not tracks:
            continue
        languages = [lang for lang in PREFERRED_LANGUAGES if lang in tracks] or sorted(tracks)
        for lang in languages:
            for entry in tracks.get(lang) or []:
                if entry.get("ext") == "vtt" and entry.get("url"):
                    return entry["url"]
    return None


class YouTubeAdapter:
    kind = ConverterKind.YOUTUBE

    def __init__(
        self,
        session: requests.Session,
        *,
        retry: RetryPolicy,
        timeout_s: float = 30,
        info_loader: InfoLoader | None = None,
    ) -> None:
        self._session = session
        self._retry = retry
        self._timeout_s = timeout_s
        self._info_loader = info_loader or load_video_info

    def _get(self, url: str) -> requests.Response:
        def _call() -> requests.Response:
            response = self._session.get(url, timeout=self._timeout_s)
            response.raise_for_status()
            return response

        return self._retry.call(_call, description=f"GET {url}")

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        url = normalize_url(str(content))
        if not YOUTUBE_HOST_RE.search(urlparse(url).hostname or ""):
            raise ValidationError(f"Not a YouTube URL: {url}", code="INVALID_URL")

        info = self._info_loader(url)
        title = str(info.get("title") or name)
        warnings: list[str] = []
        lines = [f"# {title}", ""]
        if info.get("uploader"):
            lines.append(f"**Channel:** {info['uploader']}")
        if info.get("duration"):
            lines.append(f"**Duration:** {format_timestamp(float(info['duration']))}")
        lines.append(f"**URL:** {info.get('webpage_url') or url}")
        lines.append("")

        images: list[ImageAsset] = []
        thumbnail = info.get("thumbnail")
        if options.include_images and thumbnail:
            try:
                response = self._get(thumbnail)
            except requests.RequestException as exc:
                logger.warning("Thumbnail download failed for %s: %s", url, exc)
                warnings.append("Thumbnail download failed")
            else:
                mime_type = response.headers.get("Content-Type", "image/jpeg").split(";", 1)[0]
                extension = "png" if mime_type == "image/png" else "jpg"
                image_name = f"thumbnail.{extension}"
                images.append(ImageAsset.from_bytes(image_name, response.content, mime_type))
                lines.extend([f"![{title}](assets/{image_name})", ""])

        description = str(info.get("description") or "").strip()
        if description:
            lines.extend(["## Description", "", description, ""])

        lines.extend(["## Transcript", ""])
        caption_url = _pick_caption_url(info)
        cues: list[tuple[float, str]] = []
        if caption_url:
            try:
                cues = parse_vtt(self._get(caption_url).text)
            except requests.RequestException as exc:
                logger.warning("Caption download failed for %s: %s", url, exc)
                warnings.append("Caption download failed")
        if cues:
            lines.extend(f"**[{format_timestamp(start)}]** {text}" for start, text in cues)
        else:
            if caption_url is None:
                warnings.append("No captions available")
            lines.append("_No transcript available._")

        return ConverterOutput(
            content="\n".join(lines) + "\n",
            images=images,
            source_url=url,
            title=title,
            warnings=warnings,
        )


__all__ = ["YouTubeAdapter", "format_timestamp", "load_video_info", "parse_vtt"]
