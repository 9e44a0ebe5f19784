from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from threading import Event

from .adapters import ConverterOutput, ConverterRegistry, error_markdown
from .categories import ERRORS, MULTIMEDIA, classify, is_video
from .config import AppConfig, LimitConfig
from .detection import ConverterKind, resolve_converter_kind
from .enhancer import Enhancer, apply_enhancement
from .errors import JobCanceledError, ResourceError, ValidationError, describe_error
from .logging import RunLogEntry, RunLogger
from .models import ConversionRequest, ConversionResult, ImageAsset, ItemType
from .utils import (
    file_stem,
    hostname_of,
    iso,
    rewrite_asset_links,
    sanitize_filename,
    unique_name,
    utc_now,
)

logger = logging.getLogger(__name__)

MB = 1024 * 1024
WEB_KINDS = frozenset({ConverterKind.URL, ConverterKind.PARENT_URL})
MEDIA_KINDS = frozenset({ConverterKind.AUDIO, ConverterKind.VIDEO})


def size_limit_for(request: ConversionRequest, limits: LimitConfig) -> int:
    if is_video(request.type, request.extension):
        return limits.max_video_size_mb * MB
    return limits.max_file_size_mb * MB


def enforce_size_limit(request: ConversionRequest, limits: LimitConfig) -> None:
    limit = size_limit_for(request, limits)
    if request.payload_size > limit:
        raise ResourceError(
            f"File too large: {request.name} exceeds the {limit // MB}MB limit",
            code="SIZE_LIMIT",
            status_code=413,
        )


def request_url(request: ConversionRequest) -> str | None:
    content = request.content
    if isinstance(content, Mapping):
        url = content.get("url")
        return str(url) if url else None
    if isinstance(content, str) and request.type.is_web:
        return content.strip()
    return None


def _display_name(request: ConversionRequest) -> str:
    if request.type in {ItemType.URL, ItemType.PARENT_URL}:
        url = request_url(request)
        if url:
            try:
                return hostname_of(url if "://" in url else f"https://{url}")
            except (ValidationError, ValueError):
                return request.name
    return request.name


class ConversionService:
    """Convert one request into exactly one :class:`ConversionResult`.

    Item-level failures never escape :meth:`convert`; they come back as a
    result with ``success=False`` in the ``errors`` category. Only
    cancellation is raised to the caller.
    """

    def __init__(
        self,
        config: AppConfig,
        registry: ConverterRegistry,
        *,
        enhancer: Enhancer | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._enhancer = enhancer

    @property
    def registry(self) -> ConverterRegistry:
        return self._registry

    def convert(
        self,
        request: ConversionRequest,
        cancellation: Event | None = None,
        run_logger: RunLogger | None = None,
    ) -> ConversionResult:
        if cancellation is not None and cancellation.is_set():
            raise JobCanceledError(f"Conversion of {request.name} canceled")
        start = time.perf_counter()
        kind: ConverterKind | None = None
        try:
            kind = resolve_converter_kind(request.type, request.name, request.mime_type)
            enforce_size_limit(request, self._config.runtime.limits)
            output = self._registry.convert(
                kind, request.content, request.name, request.options, cancellation
            )
            if output.success:
                result = self._success(request, kind, output)
            else:
                result = self._failure(
                    request, kind, output.error or "Conversion failed", output.error_code
                )
                result.warnings.extend(output.warnings)
        except JobCanceledError:
            raise
        except Exception as exc:
            code, message = describe_error(exc)
            if code == "INTERNAL":
                logger.exception("Unexpected error converting %s", request.name)
            result = self._failure(request, kind, message, code)

        duration_ms = (time.perf_counter() - start) * 1000
        if result.success:
            logger.info(
                "Converted %s (%s) into %s in %.0fms",
                request.name,
                result.type,
                result.category,
                duration_ms,
            )
        else:
            logger.warning("Failed to convert %s: %s", request.name, result.error)
        if run_logger is not None:
            run_logger.append(self._log_entry(request, kind, result, duration_ms))
        return result

    def _success(
        self, request: ConversionRequest, kind: ConverterKind, output: ConverterOutput
    ) -> ConversionResult:
        if kind in MEDIA_KINDS:
            category = MULTIMEDIA
        else:
            extension = request.extension or (kind.value if not request.type.is_web else "")
            category = classify(request.type, extension)
        source_url = output.source_url or request_url(request)
        if kind in WEB_KINDS and source_url:
            name = hostname_of(source_url)
        elif kind is ConverterKind.YOUTUBE and output.title:
            name = output.title
        else:
            name = request.name

        content = output.content
        warnings = list(output.warnings)
        if kind in WEB_KINDS:
            self._assign_site_paths(category, name, output.images)
        else:
            content = self._assign_item_paths(category, name, output.images, content)

        options = request.options
        if options.enhance:
            content, warning = apply_enhancement(self._enhancer, content, name, options.api_key)
            if warning:
                warnings.append(warning)
        if options.include_meta and kind is not ConverterKind.PARENT_URL:
            content = self._with_front_matter(content, name, kind, source_url or request.name)

        return ConversionResult(
            success=True,
            content=content,
            name=name,
            type=kind.value,
            category=category,
            images=output.images,
            item_id=request.id,
            source_url=source_url,
            pages=output.pages,
            warnings=warnings,
        )

    def _failure(
        self,
        request: ConversionRequest,
        kind: ConverterKind | None,
        message: str,
        code: str | None,
    ) -> ConversionResult:
        name = _display_name(request)
        return ConversionResult(
            success=False,
            content=error_markdown(name, message),
            name=name,
            type=kind.value if kind is not None else request.type.value,
            category=ERRORS,
            error=message,
            error_code=code,
            item_id=request.id,
            source_url=request_url(request),
        )

    def _assign_item_paths(
        self, category: str, name: str, images: list[ImageAsset], content: str
    ) -> str:
        stem = file_stem(name)
        taken: set[str] = set()
        renames: dict[str, str] = {}
        for image in images:
            original = image.name
            new_name = unique_name(sanitize_filename(f"{stem}-{original}"), taken)
            image.name = new_name
            image.path = f"{category}/assets/{new_name}"
            renames.setdefault(original, new_name)
        return rewrite_asset_links(content, renames)

    def _assign_site_paths(self, category: str, host: str, images: list[ImageAsset]) -> None:
        base = f"{category}/{sanitize_filename(host)}/assets"
        taken: set[str] = set()
        for image in images:
            image.name = unique_name(sanitize_filename(image.name), taken)
            image.path = f"{base}/{image.name}"

    def _with_front_matter(
        self, content: str, name: str, kind: ConverterKind, source: str
    ) -> str:
        if content.lstrip().startswith("---"):
            return content
        title = name.replace('"', '\\"')
        source = source.replace('"', '\\"')
        header = (
            "---\n"
            f'title: "{title}"\n'
            f'source: "{source}"\n'
            f"type: {kind.value}\n"
            f"converted: {iso(utc_now())}\n"
            "---\n\n"
        )
        return header + content

    def _log_entry(
        self,
        request: ConversionRequest,
        kind: ConverterKind | None,
        result: ConversionResult,
        duration_ms: float,
    ) -> RunLogEntry:
        return RunLogEntry(
            job_id=None,
            item_id=request.id,
            source=request.name,
            item_type=request.type.value,
            converter=kind.value if kind is not None else None,
            status="success" if result.success else "failure",
            category=result.category,
            warnings=list(result.warnings),
            error_code=result.error_code,
            duration_ms=round(duration_ms, 2),
            images=result.image_count,
            size_bytes=request.payload_size,
        )


__all__ = [
    "ConversionService",
    "enforce_size_limit",
    "request_url",
    "size_limit_for",
]
