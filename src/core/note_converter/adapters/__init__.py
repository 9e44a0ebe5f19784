from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

import requests

from .base import BaseMarkitdownAdapter, Converter, ConverterOutput, error_markdown, normalize_markdown
from .documents import (
    DOCXAdapter,
    EPUBAdapter,
    HTMLAdapter,
    ODTAdapter,
    PDFAdapter,
    PPTXAdapter,
    RTFAdapter,
    XLSXAdapter,
)
from .media import TranscriptionAdapter
from .text import CSVAdapter, JSONAdapter, TXTAdapter, YAMLAdapter
from .web import ParentUrlAdapter, UrlAdapter
from .youtube import InfoLoader, YouTubeAdapter
from ..config import AppConfig
from ..crawler import SiteCrawler
from ..detection import ConverterKind, InputShape, check_signature
from ..errors import ConfigurationError, JobCanceledError, ValidationError, describe_error
from ..fetch import PageFetcher
from ..models import ConversionOptions
from ..retry import RetryPolicy

logger = logging.getLogger(__name__)


def validate_input(kind: ConverterKind, content: Any) -> None:
    shape = kind.input_shape
    if shape is InputShape.BINARY:
        if not isinstance(content, (bytes, bytearray, memoryview)):
            raise ValidationError(f"{kind.value} conversion requires binary content")
        check_signature(kind, bytes(content[:8]))
    elif shape is InputShape.TEXT:
        if not isinstance(content, str):
            raise ValidationError(f"{kind.value} conversion requires text content")
    elif shape is InputShape.TEXT_OR_MAPPING:
        if isinstance(content, Mapping):
            if not content.get("url"):
                raise ValidationError(f"{kind.value} conversion requires a url field")
        elif not isinstance(content, str):
            raise ValidationError(f"{kind.value} conversion requires a URL string or object")
    elif not isinstance(content, (bytes, bytearray, memoryview, str)):
        raise ValidationError(f"{kind.value} conversion requires text or binary content")


class ConverterRegistry:
    """Closed mapping of converter kinds to converter instances.

    Input-shape violations and unknown kinds raise; anything a converter
    raises is folded into a failed :class:`ConverterOutput`, except
    cancellation. Converters that set ``cancellable`` receive the job's
    cancellation event.
    """

    def __init__(self, converters: Mapping[ConverterKind, Converter] | None = None) -> None:
        self._converters: dict[ConverterKind, Converter] = dict(converters or {})
        self._lock = threading.Lock()

    def register(self, kind: ConverterKind, converter: Converter) -> None:
        with self._lock:
            self._converters[kind] = converter

    def get(self, kind: ConverterKind) -> Converter:
        converter = self._converters.get(kind)
        if converter is None:
            raise ConfigurationError(f"No converter registered for {kind.value}")
        return converter

    def kinds(self) -> list[ConverterKind]:
        return [kind for kind in ConverterKind if kind in self._converters]

    def missing_kinds(self) -> list[ConverterKind]:
        return [kind for kind in ConverterKind if kind not in self._converters]

    def convert(
        self,
        kind: ConverterKind,
        content: Any,
        name: str,
        options: ConversionOptions | None = None,
        cancellation: threading.Event | None = None,
    ) -> ConverterOutput:
        converter = self.get(kind)
        validate_input(kind, content)
        options = options or ConversionOptions()
        try:
            if cancellation is not None and getattr(converter, "cancellable", False):
                output = converter.convert(content, name, options, cancellation=cancellation)
            else:
                output = converter.convert(content, name, options)
        except JobCanceledError:
            raise
        except Exception as exc:
            code, message = describe_error(exc)
            logger.warning("%s converter failed for %s: %s", kind.value, name, message)
            return ConverterOutput(
                content=error_markdown(name, message),
                success=False,
                error=message,
                error_code=code,
            )
        if output.success and not output.content.strip():
            return ConverterOutput(
                content=error_markdown(name, "Converter produced no content"),
                success=False,
                error="Converter produced no content",
                error_code="EMPTY_OUTPUT",
            )
        return output


def build_registry(
    config: AppConfig,
    session: requests.Session | None = None,
    youtube_info_loader: InfoLoader | None = None,
) -> ConverterRegistry:
    runtime = config.runtime
    session = session or requests.Session()
    retry = RetryPolicy.from_config(runtime.retry)
    fetcher = PageFetcher.from_config(runtime, session)
    crawler = SiteCrawler(fetcher, runtime.crawl)

    registry = ConverterRegistry(
        {
            ConverterKind.PDF: PDFAdapter(),
            ConverterKind.DOCX: DOCXAdapter(),
            ConverterKind.PPTX: PPTXAdapter(),
            ConverterKind.XLSX: XLSXAdapter(),
            ConverterKind.EPUB: EPUBAdapter(),
            ConverterKind.ODT: ODTAdapter(),
            ConverterKind.RTF: RTFAdapter(),
            ConverterKind.HTML: HTMLAdapter(),
            ConverterKind.TXT: TXTAdapter(),
            ConverterKind.CSV: CSVAdapter(),
            ConverterKind.JSON: JSONAdapter(),
            ConverterKind.YAML: YAMLAdapter(),
            ConverterKind.URL: UrlAdapter(fetcher),
            ConverterKind.PARENT_URL: ParentUrlAdapter(crawler),
            ConverterKind.YOUTUBE: YouTubeAdapter(
                session,
                retry=retry,
                timeout_s=runtime.request_timeout_s,
                info_loader=youtube_info_loader,
            ),
            ConverterKind.AUDIO: TranscriptionAdapter(
                ConverterKind.AUDIO, runtime.transcription, session=session, retry=retry
            ),
            ConverterKind.VIDEO: TranscriptionAdapter(
                ConverterKind.VIDEO, runtime.transcription, session=session, retry=retry
            ),
        }
    )
    missing = registry.missing_kinds()
    if missing:
        raise ConfigurationError(
            "Converters missing for: " + ", ".join(kind.value for kind in missing)
        )
    return registry


__all__ = [
    "BaseMarkitdownAdapter",
    "Converter",
    "ConverterOutput",
    "ConverterRegistry",
    "build_registry",
    "error_markdown",
    "normalize_markdown",
    "validate_input",
]
