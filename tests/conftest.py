from __future__ import annotations

import copy
import time
from pathlib import Path
from typing import Any

import pytest
import requests

from core.note_converter.adapters import ConverterOutput, ConverterRegistry
from core.note_converter.adapters.documents import DOCXAdapter, PDFAdapter
from core.note_converter.adapters.text import CSVAdapter, JSONAdapter, TXTAdapter, YAMLAdapter
from core.note_converter.batch import BatchCoordinator
from core.note_converter.config import AppConfig, RuntimeConfig
from core.note_converter.core import ConversionService
from core.note_converter.detection import ConverterKind
from core.note_converter.errors import ConversionError
from core.note_converter.models import ImageAsset


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        payload: Any = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.content = content if content is not None else text.encode("utf-8")
        self.headers = headers or {"Content-Type": "text/html; charset=utf-8"}
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Serve canned responses keyed by URL; unknown URLs answer 404."""

    def __init__(self, routes: dict[str, FakeResponse] | None = None) -> None:
        self.routes = dict(routes or {})
        self.headers: dict[str, str] = {}
        self.requested: list[str] = []
        self.posted: list[tuple[str, dict[str, Any]]] = []
        self.post_response = FakeResponse(payload={"text": "hello"})

    def get(self, url: str, timeout: float | None = None) -> FakeResponse:
        self.requested.append(url)
        return self.routes.get(url) or FakeResponse(404, text="not found")

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.posted.append((url, kwargs))
        return self.post_response


class StaticConverter:
    def __init__(
        self,
        content: str = "# Page\n\nBody\n",
        *,
        images: list[ImageAsset] | None = None,
        title: str | None = None,
        delay: float = 0.0,
    ) -> None:
        self.content = content
        self.images = images or []
        self.title = title
        self.delay = delay
        self.calls: list[str] = []

    def convert(self, content: Any, name: str, options: Any) -> ConverterOutput:
        if self.delay:
            time.sleep(self.delay)
        self.calls.append(name)
        return ConverterOutput(
            content=self.content,
            images=copy.deepcopy(self.images),
            source_url=content if isinstance(content, str) and "://" in content else None,
            title=self.title,
        )


class FailingConverter:
    def __init__(self, message: str = "converter exploded") -> None:
        self.message = message

    def convert(self, content: Any, name: str, options: Any) -> ConverterOutput:
        raise ConversionError(self.message)


def build_config(root: Path) -> AppConfig:
    runtime = RuntimeConfig(storage_dir=root / "jobs", enable_local_api=True)
    runtime.jobs.worker_pool_size = 2
    runtime.retry.backoff_s = 0.0
    runtime.batch.concurrency = 3
    return AppConfig(runtime=runtime)


def build_registry(**overrides: Any) -> ConverterRegistry:
    converters: dict[ConverterKind, Any] = {
        ConverterKind.TXT: TXTAdapter(),
        ConverterKind.CSV: CSVAdapter(),
        ConverterKind.JSON: JSONAdapter(),
        ConverterKind.YAML: YAMLAdapter(),
        ConverterKind.PDF: PDFAdapter(),
        ConverterKind.DOCX: DOCXAdapter(),
        ConverterKind.URL: StaticConverter("# Example\n\nSome text\n"),
        ConverterKind.YOUTUBE: StaticConverter("# Talk\n\nTranscript\n", title="Talk"),
        ConverterKind.AUDIO: StaticConverter("# clip\n\n## Transcript\n\nhello\n"),
        ConverterKind.VIDEO: StaticConverter("# talk\n\n## Transcript\n\nhello\n"),
    }
    for key, converter in overrides.items():
        converters[ConverterKind(key)] = converter
    return ConverterRegistry(converters)


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return build_config(tmp_path)


@pytest.fixture
def registry() -> ConverterRegistry:
    return build_registry()


@pytest.fixture
def service(config: AppConfig, registry: ConverterRegistry) -> ConversionService:
    return ConversionService(config, registry)


@pytest.fixture
def coordinator(config: AppConfig, service: ConversionService) -> BatchCoordinator:
    return BatchCoordinator(config, service)
