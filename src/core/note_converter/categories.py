"""Archive folder categories for converted items."""

from __future__ import annotations

from .models import ItemType

WEB = "web"
DOCUMENTS = "documents"
DATA = "data"
MULTIMEDIA = "multimedia"
OTHERS = "others"
ERRORS = "errors"

WEB_TYPES = frozenset({ItemType.URL.value, ItemType.PARENT_URL.value, ItemType.YOUTUBE.value})
MEDIA_TYPES = frozenset({ItemType.AUDIO.value, ItemType.VIDEO.value})
DOCUMENT_EXTENSIONS = frozenset({"pdf", "docx", "doc", "odt", "rtf", "txt", "epub", "pptx"})
DATA_EXTENSIONS = frozenset({"csv", "json", "yaml", "yml", "xlsx"})
AUDIO_EXTENSIONS = frozenset({"mp3", "wav", "ogg", "m4a"})
VIDEO_EXTENSIONS = frozenset({"mp4", "mov", "avi", "webm"})
MULTIMEDIA_EXTENSIONS = AUDIO_EXTENSIONS | VIDEO_EXTENSIONS


def _normalize_extension(extension: str | None) -> str:
    return (extension or "").strip().lower().lstrip(".")


def _type_value(item_type: ItemType | str | None) -> str:
    if isinstance(item_type, ItemType):
        return item_type.value
    return (item_type or "").strip().lower()


def classify(item_type: ItemType | str | None, extension: str | None) -> str:
    """Map an item type and file extension onto its archive category."""

    if _type_value(item_type) in WEB_TYPES:
        return WEB
    if _type_value(item_type) in MEDIA_TYPES:
        return MULTIMEDIA
    ext = _normalize_extension(extension)
    if ext in DOCUMENT_EXTENSIONS:
        return DOCUMENTS
    if ext in DATA_EXTENSIONS:
        return DATA
    if ext in MULTIMEDIA_EXTENSIONS:
        return MULTIMEDIA
    return OTHERS


def is_video(item_type: ItemType | str | None, extension: str | None) -> bool:
    if _type_value(item_type) == ItemType.VIDEO.value:
        return True
    return _normalize_extension(extension) in VIDEO_EXTENSIONS


def requires_api_key(item_type: ItemType | str | None, extension: str | None) -> bool:
    if _type_value(item_type) in {ItemType.AUDIO.value, ItemType.VIDEO.value}:
        return True
    if _type_value(item_type) in WEB_TYPES:
        return False
    return _normalize_extension(extension) in MULTIMEDIA_EXTENSIONS


__all__ = [
    "DATA",
    "DOCUMENTS",
    "ERRORS",
    "MULTIMEDIA",
    "OTHERS",
    "WEB",
    "classify",
    "is_video",
    "requires_api_key",
]
