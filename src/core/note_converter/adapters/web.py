from __future__ import annotations

from threading import Event
from typing import Any, Mapping

from .base import ConverterOutput
from ..crawler import SiteCrawler
from ..detection import ConverterKind
from ..errors import ValidationError
from ..fetch import PageFetcher
from ..models import ConversionOptions
from ..utils import normalize_url


class UrlAdapter:
    kind = ConverterKind.URL

    def __init__(self, fetcher: PageFetcher) -> None:
        self._fetcher = fetcher

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        url = normalize_url(str(content))
        page = self._fetcher.fetch(url, options)
        return ConverterOutput(
            content=page.markdown,
            images=page.images,
            source_url=url,
            title=page.title,
            warnings=page.warnings,
        )


def _start_url(content: Any) -> str:
    if isinstance(content, Mapping):
        url = content.get("url")
        if not url:
            raise ValidationError("Parent URL payload requires a url field")
        return normalize_url(str(url))
    return normalize_url(str(content))


class ParentUrlAdapter:
    kind = ConverterKind.PARENT_URL
    cancellable = True

    def __init__(self, crawler: SiteCrawler) -> None:
        self._crawler = crawler

    def convert(
        self,
        content: Any,
        name: str,
        options: ConversionOptions,
        cancellation: Event | None = None,
    ) -> ConverterOutput:
        url = _start_url(content)
        outcome = self._crawler.crawl(url, options, cancellation)
        return ConverterOutput(
            content=outcome.index_markdown,
            images=outcome.images,
            pages=outcome.pages,
            source_url=url,
            title=outcome.hostname,
            warnings=outcome.warnings,
        )


__all__ = ["ParentUrlAdapter", "UrlAdapter"]
