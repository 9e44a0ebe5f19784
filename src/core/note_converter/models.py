"""Domain models for markdown conversion services."""

from __future__ import annotations

import base64
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Mapping, Union

from .errors import ValidationError


class ItemType(str, Enum):
    FILE = "file"
    URL = "url"
    PARENT_URL = "parenturl"
    YOUTUBE = "youtube"
    AUDIO = "audio"
    VIDEO = "video"

    @property
    def is_web(self) -> bool:
        return self in {ItemType.URL, ItemType.PARENT_URL, ItemType.YOUTUBE}


_OPTION_ALIASES: dict[str, str] = {
    "includeImages": "include_images",
    "includeMeta": "include_meta",
    "convertLinks": "convert_links",
    "maxPages": "max_pages",
    "apiKey": "api_key",
}
_BOOL_OPTIONS = frozenset({"include_images", "include_meta", "convert_links", "enhance"})


def _as_int(key: str, value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Option {key} must be an integer, got {value!r}") from exc


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


@dataclass(slots=True)
class ConversionOptions:
    """Configuration for a single conversion request."""

    include_images: bool = True
    include_meta: bool = True
    convert_links: bool = True
    depth: int = 1
    max_pages: int = 10
    api_key: str | None = None
    enhance: bool = False
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ConversionOptions":
        options = cls()
        if not data:
            return options
        for key, value in data.items():
            attr = _OPTION_ALIASES.get(key, key)
            if attr in _BOOL_OPTIONS:
                setattr(options, attr, _as_bool(value))
            elif attr == "depth":
                options.depth = max(0, _as_int(key, value))
            elif attr == "max_pages":
                options.max_pages = max(1, _as_int(key, value))
            elif attr == "api_key":
                options.api_key = str(value) if value else None
            else:
                options.extra[key] = value
        return options

    def with_api_key(self, api_key: str | None) -> "ConversionOptions":
        if not api_key:
            return self
        return replace(self, api_key=api_key, extra=dict(self.extra))

    def as_dict(self) -> dict[str, object]:
        return {
            "include_images": self.include_images,
            "include_meta": self.include_meta,
            "convert_links": self.convert_links,
            "depth": self.depth,
            "max_pages": self.max_pages,
            "api_key": "***" if self.api_key else None,
            "enhance": self.enhance,
        }


RequestContent = Union[bytes, str, Mapping[str, Any]]


def _new_item_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class ConversionRequest:
    type: ItemType
    content: RequestContent
    name: str
    mime_type: str | None = None
    options: ConversionOptions = field(default_factory=ConversionOptions)
    size_bytes: int | None = None
    id: str = field(default_factory=_new_item_id)

    @property
    def extension(self) -> str:
        return PurePosixPath(self.name or "").suffix.lower().lstrip(".")

    @property
    def payload_size(self) -> int:
        if self.size_bytes is not None:
            return self.size_bytes
        if isinstance(self.content, bytes):
            return len(self.content)
        if isinstance(self.content, str):
            return len(self.content.encode("utf-8"))
        return 0


@dataclass(slots=True)
class ImageAsset:
    name: str
    data: str
    type: str = "application/octet-stream"
    path: str = ""
    source_url: str | None = None

    @classmethod
    def from_bytes(
        cls, name: str, raw: bytes, mime_type: str | None = None, *, source_url: str | None = None
    ) -> "ImageAsset":
        encoded = base64.b64encode(raw).decode("ascii")
        return cls(
            name=name,
            data=encoded,
            type=mime_type or "application/octet-stream",
            source_url=source_url,
        )

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)


@dataclass(slots=True)
class PageResult:
    """One crawled page of a parent URL conversion."""

    url: str
    name: str
    content: str = ""
    images: list[ImageAsset] = field(default_factory=list)
    success: bool = True
    error: str | None = None


@dataclass(slots=True)
class ConversionResult:
    success: bool
    content: str
    name: str
    type: str
    category: str = "others"
    images: list[ImageAsset] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    item_id: str | None = None
    source_url: str | None = None
    pages: list[PageResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def image_count(self) -> int:
        return len(self.images)

    @property
    def converted_pages(self) -> list[PageResult]:
        return [page for page in self.pages if page.success]


__all__ = [
    "ConversionOptions",
    "ConversionRequest",
    "ConversionResult",
    "ImageAsset",
    "ItemType",
    "PageResult",
]
