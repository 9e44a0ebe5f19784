from __future__ import annotations

import logging
from enum import Enum
from pathlib import PurePosixPath

from .errors import ResourceError, ValidationError
from .models import ItemType

logger = logging.getLogger(__name__)


class InputShape(str, Enum):
    BINARY = "binary"
    TEXT = "text"
    ANY = "any"
    TEXT_OR_MAPPING = "text_or_mapping"


class ConverterKind(str, Enum):
    PDF = "pdf"
    DOCX = "docx"
    PPTX = "pptx"
    XLSX = "xlsx"
    EPUB = "epub"
    ODT = "odt"
    RTF = "rtf"
    HTML = "html"
    TXT = "txt"
    CSV = "csv"
    JSON = "json"
    YAML = "yaml"
    URL = "url"
    PARENT_URL = "parenturl"
    YOUTUBE = "youtube"
    AUDIO = "audio"
    VIDEO = "video"

    @property
    def extension(self) -> str:
        return f".{self.value}"

    @property
    def input_shape(self) -> InputShape:
        return INPUT_SHAPES[self]


INPUT_SHAPES: dict[ConverterKind, InputShape] = {
    ConverterKind.PDF: InputShape.BINARY,
    ConverterKind.DOCX: InputShape.BINARY,
    ConverterKind.PPTX: InputShape.BINARY,
    ConverterKind.XLSX: InputShape.BINARY,
    ConverterKind.EPUB: InputShape.BINARY,
    ConverterKind.ODT: InputShape.BINARY,
    ConverterKind.AUDIO: InputShape.BINARY,
    ConverterKind.VIDEO: InputShape.BINARY,
    ConverterKind.HTML: InputShape.ANY,
    ConverterKind.RTF: InputShape.ANY,
    ConverterKind.TXT: InputShape.ANY,
    ConverterKind.CSV: InputShape.ANY,
    ConverterKind.JSON: InputShape.ANY,
    ConverterKind.YAML: InputShape.ANY,
    ConverterKind.URL: InputShape.TEXT,
    ConverterKind.YOUTUBE: InputShape.TEXT,
    ConverterKind.PARENT_URL: InputShape.TEXT_OR_MAPPING,
}

EXTENSION_MAP: dict[str, ConverterKind] = {
    "pdf": ConverterKind.PDF,
    "docx": ConverterKind.DOCX,
    "pptx": ConverterKind.PPTX,
    "xlsx": ConverterKind.XLSX,
    "epub": ConverterKind.EPUB,
    "odt": ConverterKind.ODT,
    "rtf": ConverterKind.RTF,
    "html": ConverterKind.HTML,
    "htm": ConverterKind.HTML,
    "txt": ConverterKind.TXT,
    "md": ConverterKind.TXT,
    "markdown": ConverterKind.TXT,
    "csv": ConverterKind.CSV,
    "json": ConverterKind.JSON,
    "yaml": ConverterKind.YAML,
    "yml": ConverterKind.YAML,
    "mp3": ConverterKind.AUDIO,
    "wav": ConverterKind.AUDIO,
    "ogg": ConverterKind.AUDIO,
    "m4a": ConverterKind.AUDIO,
    "mp4": ConverterKind.VIDEO,
    "mov": ConverterKind.VIDEO,
    "avi": ConverterKind.VIDEO,
    "webm": ConverterKind.VIDEO,
}

MIME_MAP: dict[str, ConverterKind] = {
    "application/pdf": ConverterKind.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ConverterKind.DOCX,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ConverterKind.PPTX,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ConverterKind.XLSX,
    "application/epub+zip": ConverterKind.EPUB,
    "application/vnd.oasis.opendocument.text": ConverterKind.ODT,
    "application/rtf": ConverterKind.RTF,
    "text/rtf": ConverterKind.RTF,
    "text/html": ConverterKind.HTML,
    "text/plain": ConverterKind.TXT,
    "text/markdown": ConverterKind.TXT,
    "text/csv": ConverterKind.CSV,
    "application/json": ConverterKind.JSON,
    "application/x-yaml": ConverterKind.YAML,
    "application/yaml": ConverterKind.YAML,
    "text/yaml": ConverterKind.YAML,
}

SIGNATURES: dict[ConverterKind, bytes] = {
    ConverterKind.PDF: b"%PDF",
    ConverterKind.DOCX: b"PK",
    ConverterKind.PPTX: b"PK",
    ConverterKind.XLSX: b"PK",
    ConverterKind.EPUB: b"PK",
    ConverterKind.ODT: b"PK",
}


def file_extension(name: str | None) -> str:
    return PurePosixPath(name or "").suffix.lower().lstrip(".")


def kind_for_mime(mime_type: str | None) -> ConverterKind | None:
    if not mime_type:
        return None
    normalized = mime_type.split(";", 1)[0].strip().lower()
    if normalized in MIME_MAP:
        return MIME_MAP[normalized]
    if normalized.startswith("audio/"):
        return ConverterKind.AUDIO
    if normalized.startswith("video/"):
        return ConverterKind.VIDEO
    return None


def resolve_converter_kind(
    item_type: ItemType, name: str, mime_type: str | None = None
) -> ConverterKind:
    """Pick the converter for an item.

    Web items map directly onto their converter. For files a known extension
    wins over the declared MIME type; the MIME type is only consulted when the
    extension is unknown.
    """

    if item_type is ItemType.URL:
        return ConverterKind.URL
    if item_type is ItemType.PARENT_URL:
        return ConverterKind.PARENT_URL
    if item_type is ItemType.YOUTUBE:
        return ConverterKind.YOUTUBE
    if item_type is ItemType.AUDIO:
        return ConverterKind.AUDIO
    if item_type is ItemType.VIDEO:
        return ConverterKind.VIDEO

    extension = file_extension(name)
    ext_kind = EXTENSION_MAP.get(extension)
    mime_kind = kind_for_mime(mime_type)
    if ext_kind is not None:
        if mime_kind is not None and mime_kind is not ext_kind:
            logger.debug(
                "Extension .%s overrides declared MIME %s for %s", extension, mime_type, name
            )
        return ext_kind
    if mime_kind is not None:
        return mime_kind
    raise ResourceError(
        f"Unsupported file type: {extension or '<none>'}", code="UNSUPPORTED_TYPE"
    )


def check_signature(kind: ConverterKind, payload: bytes) -> None:
    signature = SIGNATURES.get(kind)
    if signature is None:
        return
    if not payload.startswith(signature):
        raise ValidationError(
            f"Invalid {kind.value.upper()} file signature: expected {signature!r}, "
            f"got {payload[:4]!r}",
            code="INVALID_SIGNATURE",
        )


__all__ = [
    "ConverterKind",
    "EXTENSION_MAP",
    "INPUT_SHAPES",
    "InputShape",
    "MIME_MAP",
    "check_signature",
    "file_extension",
    "kind_for_mime",
    "resolve_converter_kind",
]
