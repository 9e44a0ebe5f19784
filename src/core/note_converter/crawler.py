from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from urllib.parse import urlparse

import requests

from .config import CrawlConfig
from .errors import ConversionError, JobCanceledError, NoteConverterError
from .fetch import FetchedPage, PageFetcher
from .models import ConversionOptions, ImageAsset, PageResult
from .utils import sanitize_filename, unique_name

logger = logging.getLogger(__name__)

SKIP_LINK_RE = re.compile(
    r"\.(?:pdf|zip|gz|tar|png|jpe?g|gif|webp|svg|mp3|mp4|mov|avi|webm|css|js|xml|ico)$",
    re.IGNORECASE,
)


@dataclass(slots=True)
class CrawlOutcome:
    start_url: str
    hostname: str
    index_markdown: str
    pages: list[PageResult] = field(default_factory=list)
    images: list[ImageAsset] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _visit_key(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path.rstrip("/") or "/"
    query = f"?{parsed.query}" if parsed.query else ""
    return f"{parsed.scheme}://{parsed.netloc.lower()}{path}{query}"


def page_name_for(url: str) -> str:
    path = urlparse(url).path.strip("/")
    if not path:
        return "home"
    return sanitize_filename(path.replace("/", "-"), default="page")


class SiteCrawler:
    """Breadth-first crawl of one host, converting every page it visits.

    Levels are fetched concurrently; links discovered on a level feed the
    next one until ``depth`` levels have been visited or the page budget is
    spent.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        config: CrawlConfig,
        *,
        exclude_patterns: tuple[str, ...] = (),
    ) -> None:
        self._fetcher = fetcher
        self._config = config
        self._exclude = [re.compile(pattern) for pattern in exclude_patterns]

    def crawl(
        self,
        start_url: str,
        options: ConversionOptions,
        cancellation: threading.Event | None = None,
    ) -> CrawlOutcome:
        hostname = urlparse(start_url).hostname or "site"
        depth = max(0, min(options.depth, self._config.max_depth))
        budget = max(1, min(options.max_pages, self._config.max_pages))
        logger.info("Crawling %s (depth=%d, max_pages=%d)", start_url, depth, budget)

        visited: set[str] = {_visit_key(start_url)}
        level: list[str] = [start_url]
        fetched: list[tuple[str, FetchedPage | None, str | None]] = []
        current_depth = 0

        with ThreadPoolExecutor(max_workers=max(1, self._config.concurrency)) as executor:
            while level and len(fetched) < budget:
                if cancellation is not None and cancellation.is_set():
                    raise JobCanceledError(f"Crawl of {start_url} canceled")
                level = level[: budget - len(fetched)]
                results = list(
                    executor.map(lambda url: self._fetch_page(url, options, cancellation), level)
                )
                fetched.extend(results)
                if current_depth >= depth:
                    break
                next_level: list[str] = []
                for _, page, _ in results:
                    if page is None:
                        continue
                    for link in page.links:
                        key = _visit_key(link)
                        if key not in visited and self._should_follow(link, hostname):
                            visited.add(key)
                            next_level.append(link)
                level = next_level
                current_depth += 1

        return self._assemble(start_url, hostname, fetched)

    def _fetch_page(
        self,
        url: str,
        options: ConversionOptions,
        cancellation: threading.Event | None = None,
    ) -> tuple[str, FetchedPage | None, str | None]:
        if cancellation is not None and cancellation.is_set():
            raise JobCanceledError(f"Crawl of {url} canceled")
        try:
            return url, self._fetcher.fetch(url, options), None
        except (requests.RequestException, NoteConverterError) as exc:
            logger.warning("Failed to crawl %s: %s", url, exc)
            return url, None, str(exc)

    def _should_follow(self, link: str, hostname: str) -> bool:
        parsed = urlparse(link)
        if parsed.hostname != hostname:
            return False
        if SKIP_LINK_RE.search(parsed.path):
            return False
        return not any(pattern.search(link) for pattern in self._exclude)

    def _assemble(
        self,
        start_url: str,
        hostname: str,
        fetched: list[tuple[str, FetchedPage | None, str | None]],
    ) -> CrawlOutcome:
        pages: list[PageResult] = []
        images: list[ImageAsset] = []
        by_source: dict[str, ImageAsset] = {}
        warnings: list[str] = []
        taken_pages: set[str] = set()
        taken_images: set[str] = set()

        for url, page, error in fetched:
            name = unique_name(page_name_for(url), taken_pages)
            if page is None:
                pages.append(PageResult(url=url, name=name, success=False, error=error))
                continue
            page_images: list[ImageAsset] = []
            for image in page.images:
                key = image.source_url or image.name
                shared = by_source.get(key)
                if shared is None:
                    image.name = unique_name(image.name, taken_images)
                    by_source[key] = image
                    images.append(image)
                    shared = image
                page_images.append(shared)
            warnings.extend(page.warnings)
            pages.append(PageResult(url=url, name=name, content=page.markdown, images=page_images))

        converted = [page for page in pages if page.success]
        if not converted:
            raise ConversionError(f"No pages could be converted from {start_url}")
        failed = [page for page in pages if not page.success]
        if failed:
            warnings.append(f"{len(failed)} page(s) failed to convert")
        return CrawlOutcome(
            start_url=start_url,
            hostname=hostname,
            index_markdown=render_index(start_url, hostname, pages),
            pages=pages,
            images=images,
            warnings=warnings,
        )


def render_index(start_url: str, hostname: str, pages: list[PageResult]) -> str:
    converted = [page for page in pages if page.success]
    failed = [page for page in pages if not page.success]
    lines = [
        "---",
        f"title: {hostname}",
        f"source: {start_url}",
        f"pages: {len(converted)}",
        "---",
        "",
        f"# {hostname}",
        "",
        "## Pages",
        "",
    ]
    for page in converted:
        lines.append(f"- [[pages/{page.name}|{page.name}]] - [Original]({page.url})")
    if failed:
        lines.extend(["", "## Failed Pages", ""])
        for page in failed:
            lines.append(f"- {page.url}: {page.error or 'Unknown error'}")
    return "\n".join(lines) + "\n"


__all__ = ["CrawlOutcome", "SiteCrawler", "page_name_for", "render_index"]
