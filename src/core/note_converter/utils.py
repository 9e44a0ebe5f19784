from __future__ import annotations

import os
import re
import tempfile
import unicodedata
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

from .errors import ValidationError

SAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")
ILLEGAL_FILENAME_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f\x7f]')
ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_RESERVED_NAMES = frozenset(
    {"CON", "PRN", "AUX", "NUL"}
    | {f"COM{i}" for i in range(1, 10)}
    | {f"LPT{i}" for i in range(1, 10)}
)


def slugify(value: str, max_length: int = 120) -> str:
    normalized = SAFE_FILENAME_RE.sub("-", value.strip())
    normalized = re.sub("-+", "-", normalized)
    normalized = normalized.replace("-.", ".")
    normalized = normalized.strip("-._")
    if not normalized:
        normalized = "file"
    if len(normalized) > max_length:
        normalized = normalized[:max_length]
    return normalized


def sanitize_filename(
    value: str | None, *, replacement: str = "_", max_length: int = 200, default: str = "untitled"
) -> str:
    """Return a single filesystem-safe path segment for *value*.

    Path separators, control characters and characters reserved on common
    filesystems are replaced, runs of the replacement are collapsed, and
    leading/trailing dots are stripped so the result is never ``.`` or ``..``.
    """

    name = unicodedata.normalize("NFC", str(value or ""))
    name = ILLEGAL_FILENAME_RE.sub(replacement, name)
    name = re.sub(r"\s+", " ", name)
    name = re.sub(f"(?:{re.escape(replacement)})+", replacement, name)
    name = name.strip(" ." + replacement)
    if name.split(".", 1)[0].upper() in _RESERVED_NAMES:
        name = f"{replacement}{name}"
    if len(name) > max_length:
        stem, dot, suffix = name.rpartition(".")
        if dot and 0 < len(suffix) <= 10:
            name = stem[: max_length - len(suffix) - 1] + "." + suffix
        else:
            name = name[:max_length]
        name = name.rstrip(" .")
    return name or default


def file_stem(name: str | None) -> str:
    sanitized = sanitize_filename(name)
    stem = PurePosixPath(sanitized).stem
    return sanitize_filename(stem)


def safe_archive_path(path: str) -> str:
    """Sanitize every segment of a POSIX archive path."""

    segments = [segment for segment in path.replace("\\", "/").split("/") if segment]
    return "/".join(sanitize_filename(segment) for segment in segments)


def unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        taken.add(name)
        return name
    stem, dot, suffix = name.rpartition(".")
    if not dot or not stem:
        stem, suffix = name, ""
    counter = 2
    while True:
        candidate = f"{stem}-{counter}.{suffix}" if suffix else f"{stem}-{counter}"
        if candidate not in taken:
            taken.add(candidate)
            return candidate
        counter += 1


def rewrite_asset_links(content: str, renames: dict[str, str]) -> str:
    """Point ``assets/<old>`` links at their renamed files in a single pass.

    Every link is matched against the original names only, so a new name
    that equals another image's old name is never rewritten a second time.
    """

    if not renames:
        return content
    names = "|".join(re.escape(name) for name in sorted(renames, key=len, reverse=True))
    pattern = re.compile(r"(?<![\w/.-])(?:\./)?assets/(" + names + r")(?![\w.-])")
    return pattern.sub(lambda match: f"assets/{renames[match.group(1)]}", content)


def normalize_url(url: str) -> str:
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationError("URL is required", code="INVALID_URL")
    if not re.match(r"^[a-zA-Z][a-zA-Z0-9+.-]*://", candidate):
        candidate = "https://" + candidate.lstrip("/")
    parsed = urlparse(candidate)
    if parsed.scheme not in {"http", "https"}:
        raise ValidationError(f"Invalid protocol: {parsed.scheme}", code="INVALID_URL")
    if not parsed.hostname:
        raise ValidationError(f"Invalid URL: {url}", code="INVALID_URL")
    return parsed.geturl()


def hostname_of(url: str) -> str:
    hostname = urlparse(url).hostname
    if not hostname:
        raise ValidationError(f"Invalid URL: {url}", code="INVALID_URL")
    return hostname


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).strftime(ISO_FORMAT)


def archive_filename(moment: datetime | None = None) -> str:
    moment = moment or utc_now()
    stamp = moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%f")[:-3]
    return f"conversion_{stamp}Z.zip"


def generate_job_id() -> str:
    return str(uuid.uuid4())


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile("wb", delete=False, dir=path.parent) as tmp:
        tmp.write(data)
        tmp.flush()
        os.fsync(tmp.fileno())
    os.replace(tmp.name, path)


def normalize_newlines(text: str) -> str:
    return "\n".join(line.rstrip() for line in text.splitlines()) + "\n"


def collapse_blank_lines(text: str) -> str:
    return re.sub(r"\n{3,}", "\n\n", text)


def decode_text(payload: bytes | str) -> str:
    if isinstance(payload, str):
        return payload
    if payload.startswith(b"\xef\xbb\xbf"):
        payload = payload[3:]
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        return payload.decode("latin-1")
