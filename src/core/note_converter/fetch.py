"""HTTP page fetching and HTML to Markdown extraction for web items."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from urllib.parse import urldefrag, urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from markdownify import markdownify

from .config import RuntimeConfig
from .errors import ConversionError
from .models import ConversionOptions, ImageAsset
from .retry import RetryPolicy
from .utils import normalize_newlines, sanitize_filename, unique_name

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "svg", "bmp"})
STRIP_TAGS = ("script", "style", "noscript", "nav", "footer", "header", "aside", "form", "iframe")
CONTENT_SELECTORS = ("article", "main", "[role=main]", "#content", ".content", ".post")


@dataclass(slots=True)
class FetchedPage:
    url: str
    title: str
    markdown: str
    images: list[ImageAsset] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class PageFetcher:
    def __init__(
        self,
        session: requests.Session,
        *,
        retry: RetryPolicy,
        timeout_s: float = 30,
        user_agent: str | None = None,
        max_images: int = 50,
    ) -> None:
        self._session = session
        self._retry = retry
        self._timeout_s = timeout_s
        self._max_images = max_images
        if user_agent:
            self._session.headers.update({"User-Agent": user_agent})

    @classmethod
    def from_config(
        cls, runtime: RuntimeConfig, session: requests.Session | None = None
    ) -> "PageFetcher":
        return cls(
            session or requests.Session(),
            retry=RetryPolicy.from_config(runtime.retry),
            timeout_s=runtime.request_timeout_s,
            user_agent=runtime.crawl.user_agent,
            max_images=runtime.limits.max_images_per_page,
        )

    @property
    def session(self) -> requests.Session:
        return self._session

    @property
    def retry(self) -> RetryPolicy:
        return self._retry

    def get(self, url: str) -> requests.Response:
        def _get() -> requests.Response:
            response = self._session.get(url, timeout=self._timeout_s)
            response.raise_for_status()
            return response

        return self._retry.call(_get, description=f"GET {url}")

    def fetch(self, url: str, options: ConversionOptions) -> FetchedPage:
        response = self.get(url)
        content_type = response.headers.get("Content-Type", "text/html")
        if "html" not in content_type and "xml" not in content_type:
            raise ConversionError(f"Unsupported content type {content_type} at {url}")
        return self.extract(url, response.text, options)

    def extract(self, url: str, html: str, options: ConversionOptions) -> FetchedPage:
        soup = BeautifulSoup(html, "html.parser")
        title = soup.title.get_text(strip=True) if soup.title else ""
        links = _collect_links(soup, url)

        for tag in soup.find_all(list(STRIP_TAGS)):
            tag.decompose()
        node = _content_node(soup)

        for anchor in node.find_all("a"):
            href = anchor.get("href")
            if not options.convert_links:
                anchor.unwrap()
            elif href:
                anchor["href"] = urljoin(url, href)

        warnings: list[str] = []
        images: list[ImageAsset] = []
        taken: set[str] = set()
        for img in node.find_all("img"):
            src = img.get("src") or img.get("data-src")
            if not src or src.startswith("data:"):
                img.decompose()
                continue
            absolute = urljoin(url, src)
            img["src"] = absolute
            if not options.include_images or any(i.source_url == absolute for i in images):
                continue
            if len(images) >= self._max_images:
                if "IMAGE_LIMIT_REACHED" not in warnings:
                    warnings.append("IMAGE_LIMIT_REACHED")
                continue
            asset = self._download_image(absolute, taken, warnings)
            if asset is not None:
                images.append(asset)

        markdown = markdownify(str(node), heading_style="ATX").strip()
        if not markdown:
            raise ConversionError(f"No content extracted from {url}")
        if title and not markdown.startswith("# "):
            markdown = f"# {title}\n\n{markdown}"
        return FetchedPage(
            url=url,
            title=title or (urlparse(url).hostname or url),
            markdown=normalize_newlines(markdown),
            images=images,
            links=links,
            warnings=warnings,
        )

    def _download_image(self, url: str, taken: set[str], warnings: list[str]) -> ImageAsset | None:
        basename = PurePosixPath(urlparse(url).path).name
        extension = PurePosixPath(basename).suffix.lower().lstrip(".")
        if extension and extension not in IMAGE_EXTENSIONS:
            return None
        try:
            response = self.get(url)
        except requests.RequestException as exc:
            logger.warning("Failed to download image %s: %s", url, exc)
            warnings.append(f"Image download failed: {url}")
            return None
        mime_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
        if not extension:
            if not mime_type.startswith("image/"):
                return None
            guessed = mimetypes.guess_extension(mime_type) or ".img"
            basename = f"image{guessed}"
        name = unique_name(sanitize_filename(basename, default="image"), taken)
        return ImageAsset.from_bytes(
            name,
            response.content,
            mime_type or mimetypes.guess_type(name)[0],
            source_url=url,
        )


def _content_node(soup: BeautifulSoup):  # type: ignore[no-untyped-def]
    for selector in CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is not None and node.get_text(strip=True):
            return node
    return soup.body or soup


def _collect_links(soup: BeautifulSoup, base_url: str) -> list[str]:
    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("mailto:", "javascript:", "tel:", "#")):
            continue
        absolute, _ = urldefrag(urljoin(base_url, href))
        if urlparse(absolute).scheme not in {"http", "https"}:
            continue
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)
    return links


__all__ = ["FetchedPage", "PageFetcher"]
