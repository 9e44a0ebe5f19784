"""Bounded reading of multipart uploads into conversion requests."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from fastapi import UploadFile

from core.note_converter.config import AppConfig
from core.note_converter.core import size_limit_for
from core.note_converter.errors import ValidationError
from core.note_converter.models import ConversionOptions, ConversionRequest, ItemType

CHUNK_SIZE = 1024 * 1024


@dataclass(slots=True)
class UploadPayload:
    name: str
    content: bytes
    size: int
    mime_type: str | None
    oversized: bool = False


async def read_upload(upload: UploadFile, limit: int) -> UploadPayload:
    """Read *upload* in chunks, stopping as soon as *limit* bytes are exceeded.

    An oversized upload keeps its measured size but drops the content so the
    job fails validation without buffering the whole payload.
    """

    name = upload.filename or "upload"
    chunks: list[bytes] = []
    size = 0
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            return UploadPayload(name, b"", size, upload.content_type, oversized=True)
        chunks.append(chunk)
    return UploadPayload(name, b"".join(chunks), size, upload.content_type)


def upload_limit(config: AppConfig, item_type: ItemType, name: str) -> int:
    template = ConversionRequest(type=item_type, content=b"", name=name)
    return size_limit_for(template, config.runtime.limits)


async def request_from_upload(
    upload: UploadFile,
    item_type: ItemType,
    options: ConversionOptions,
    config: AppConfig,
) -> ConversionRequest:
    payload = await read_upload(upload, upload_limit(config, item_type, upload.filename or "upload"))
    return ConversionRequest(
        type=item_type,
        content=payload.content,
        name=payload.name,
        mime_type=payload.mime_type,
        options=options,
        size_bytes=payload.size,
    )


def options_mapping(raw: str | None) -> dict[str, Any]:
    data: Any = {}
    if raw:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Invalid options JSON: {exc}", code="INVALID_OPTIONS") from exc
        if not isinstance(data, dict):
            raise ValidationError("Options must be a JSON object", code="INVALID_OPTIONS")
    return data


def parse_options(raw: str | None, api_key: str | None = None) -> ConversionOptions:
    return ConversionOptions.from_mapping(options_mapping(raw)).with_api_key(api_key)


__all__ = [
    "CHUNK_SIZE",
    "UploadPayload",
    "options_mapping",
    "parse_options",
    "read_upload",
    "request_from_upload",
    "upload_limit",
]
