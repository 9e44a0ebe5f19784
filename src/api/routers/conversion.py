from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, File, Form, UploadFile
from pydantic import ValidationError as SchemaError

from core.note_converter.config import AppConfig
from core.note_converter.errors import ValidationError
from core.note_converter.jobs import Job, JobManager
from core.note_converter.models import ConversionOptions, ConversionRequest, ItemType

from ..dependencies import get_config, get_job_manager, optional_api_key, require_api_key
from ..schemas import BatchItem, JobAccepted, ParentUrlRequest, UrlRequest, YouTubeRequest
from ..utils import options_mapping, parse_options, request_from_upload

router = APIRouter(tags=["conversion"])


def _accepted(job: Job) -> dict[str, Any]:
    return JobAccepted(job_id=job.id, status=job.status.value, message=job.message).model_dump(
        by_alias=True
    )


def _web_request(
    item_type: ItemType,
    url: str,
    name: str | None,
    options: dict[str, Any],
    api_key: str | None,
) -> ConversionRequest:
    content: Any = {"url": url} if item_type is ItemType.PARENT_URL else url
    return ConversionRequest(
        type=item_type,
        content=content,
        name=name or url,
        options=ConversionOptions.from_mapping(options).with_api_key(api_key),
    )


def _parse_items(raw: str | None) -> list[BatchItem]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Invalid items JSON: {exc}", code="INVALID_ITEMS") from exc
    if not isinstance(data, list):
        raise ValidationError("Items must be a JSON array", code="INVALID_ITEMS")
    try:
        return [BatchItem.model_validate(item) for item in data]
    except SchemaError as exc:
        raise ValidationError(f"Invalid batch item: {exc.errors()[0]['msg']}", code="INVALID_ITEMS") from exc


@router.post("/document/file", summary="Convert an uploaded document", status_code=202)
async def convert_document(
    file: UploadFile = File(...),
    options: str | None = Form(None),
    api_key: str | None = Depends(optional_api_key),
    config: AppConfig = Depends(get_config),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    request = await request_from_upload(file, ItemType.FILE, parse_options(options, api_key), config)
    return _accepted(manager.submit([request]))


@router.post("/multimedia/audio", summary="Transcribe an uploaded audio file", status_code=202)
async def convert_audio(
    file: UploadFile = File(...),
    options: str | None = Form(None),
    api_key: str = Depends(require_api_key),
    config: AppConfig = Depends(get_config),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    request = await request_from_upload(file, ItemType.AUDIO, parse_options(options, api_key), config)
    return _accepted(manager.submit([request]))


@router.post("/multimedia/video", summary="Transcribe an uploaded video file", status_code=202)
async def convert_video(
    file: UploadFile = File(...),
    options: str | None = Form(None),
    api_key: str = Depends(require_api_key),
    config: AppConfig = Depends(get_config),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    request = await request_from_upload(file, ItemType.VIDEO, parse_options(options, api_key), config)
    return _accepted(manager.submit([request]))


@router.post("/web/url", summary="Convert a single web page", status_code=202)
def convert_url(
    body: UrlRequest,
    api_key: str | None = Depends(optional_api_key),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    request = _web_request(ItemType.URL, body.url, body.name, body.options, api_key)
    return _accepted(manager.submit([request]))


@router.post("/web/parent-url", summary="Crawl a site from its parent URL", status_code=202)
def convert_parent_url(
    body: ParentUrlRequest,
    api_key: str | None = Depends(optional_api_key),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    request = _web_request(ItemType.PARENT_URL, body.url, body.name, body.merged_options(), api_key)
    return _accepted(manager.submit([request]))


@router.post("/web/youtube", summary="Convert a YouTube video", status_code=202)
def convert_youtube(
    body: YouTubeRequest,
    api_key: str | None = Depends(optional_api_key),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    request = _web_request(ItemType.YOUTUBE, body.url, body.name, body.options, api_key)
    return _accepted(manager.submit([request]))


@router.post("/batch", summary="Convert a mixed batch of files and URLs", status_code=202)
async def convert_batch(
    files: list[UploadFile] | None = File(None),
    items: str | None = Form(None),
    options: str | None = Form(None),
    api_key: str | None = Depends(optional_api_key),
    config: AppConfig = Depends(get_config),
    manager: JobManager = Depends(get_job_manager),
) -> dict[str, Any]:
    raw_options = options_mapping(options)
    shared = ConversionOptions.from_mapping(raw_options).with_api_key(api_key)
    requests: list[ConversionRequest] = []
    for upload in files or []:
        requests.append(await request_from_upload(upload, ItemType.FILE, shared, config))
    for item in _parse_items(items):
        merged = {**raw_options, **item.options}
        requests.append(_web_request(ItemType(item.type), item.url, item.name, merged, api_key))
    if not requests:
        raise ValidationError("Batch must contain at least one file or item", code="EMPTY_BATCH")
    return _accepted(manager.submit(requests))


__all__ = ["router"]
