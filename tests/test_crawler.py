from __future__ import annotations

import io
import zipfile
from threading import Event

import pytest

from conftest import FakeResponse, FakeSession, build_registry
from core.note_converter.adapters.web import ParentUrlAdapter, UrlAdapter
from core.note_converter.batch import BatchCoordinator
from core.note_converter.config import CrawlConfig
from core.note_converter.core import ConversionService
from core.note_converter.crawler import SiteCrawler, page_name_for
from core.note_converter.errors import ConversionError, JobCanceledError
from core.note_converter.fetch import PageFetcher
from core.note_converter.models import ConversionOptions, ConversionRequest, ItemType
from core.note_converter.retry import NO_RETRY

ROOT = "https://example.com/"


def page(title: str, body: str) -> FakeResponse:
    return FakeResponse(
        text=(
            f"<html><head><title>{title}</title><script>var x = 1;</script></head>"
            f"<body><nav>Menu</nav><main>{body}</main></body></html>"
        )
    )


def site() -> FakeSession:
    logo = FakeResponse(content=b"\x89PNG-logo", headers={"Content-Type": "image/png"})
    return FakeSession(
        {
            ROOT: page(
                "Home",
                "<h1>Home</h1><p>Welcome</p><img src='/logo.png' alt='logo'>"
                "<a href='/a'>A</a> <a href='/a/'>A again</a> <a href='/b'>B</a>"
                "<a href='/c'>C</a> <a href='/missing'>Missing</a>"
                "<a href='/report.pdf'>PDF</a> <a href='https://other.org/x'>Other</a>",
            ),
            "https://example.com/a": page("A", "<h1>A</h1><p>Alpha</p><img src='/logo.png'>"),
            "https://example.com/b": page("B", "<h1>B</h1><p>Bravo</p>"),
            "https://example.com/c": page("C", "<h1>C</h1><p>Charlie</p>"),
            "https://example.com/logo.png": logo,
        }
    )


def build_crawler(session: FakeSession, **overrides) -> SiteCrawler:
    fetcher = PageFetcher(session, retry=NO_RETRY, timeout_s=5)
    return SiteCrawler(fetcher, CrawlConfig(**overrides))


def test_page_names():
    assert page_name_for("https://example.com/") == "home"
    assert page_name_for("https://example.com/docs/intro/") == "docs-intro"


def test_crawl_collects_pages_and_failures():
    session = site()
    outcome = build_crawler(session).crawl(ROOT, ConversionOptions(depth=1, max_pages=10))
    converted = [p.name for p in outcome.pages if p.success]
    failed = [p.url for p in outcome.pages if not p.success]
    assert converted == ["home", "a", "b", "c"]
    assert failed == ["https://example.com/missing"]
    assert "## Failed Pages" in outcome.index_markdown
    assert "- https://example.com/missing:" in outcome.index_markdown
    assert "- [[pages/a|a]] - [Original](https://example.com/a)" in outcome.index_markdown
    assert session.requested.count("https://example.com/a") == 1
    assert not any("other.org" in url or url.endswith(".pdf") for url in session.requested)


def test_crawl_shares_images_between_pages():
    outcome = build_crawler(site()).crawl(ROOT, ConversionOptions(depth=1))
    assert [image.name for image in outcome.images] == ["logo.png"]
    home, first = outcome.pages[0], outcome.pages[1]
    assert home.images[0] is first.images[0]


def test_crawl_respects_page_budget_and_depth():
    session = site()
    outcome = build_crawler(session).crawl(ROOT, ConversionOptions(depth=3, max_pages=2))
    assert len(outcome.pages) == 2
    shallow = build_crawler(site()).crawl(ROOT, ConversionOptions(depth=0, max_pages=10))
    assert [p.name for p in shallow.pages] == ["home"]


def test_crawl_caps_options_with_config():
    outcome = build_crawler(site(), max_pages=3).crawl(ROOT, ConversionOptions(depth=1, max_pages=50))
    assert len(outcome.pages) == 3


def test_crawl_without_any_page_fails():
    with pytest.raises(ConversionError):
        build_crawler(FakeSession()).crawl(ROOT, ConversionOptions())


def test_extract_strips_chrome_and_can_drop_links():
    fetcher = PageFetcher(FakeSession(), retry=NO_RETRY)
    html = (
        "<html><head><title>T</title></head><body><nav>Menu</nav>"
        "<article><p>Read <a href='/more'>more</a></p><script>alert(1)</script></article></body></html>"
    )
    kept = fetcher.extract(ROOT, html, ConversionOptions(include_images=False))
    assert "[more](https://example.com/more)" in kept.markdown
    assert "Menu" not in kept.markdown
    assert "alert" not in kept.markdown
    assert kept.markdown.startswith("# T")
    dropped = fetcher.extract(ROOT, html, ConversionOptions(convert_links=False))
    assert "more" in dropped.markdown
    assert "](" not in dropped.markdown


def test_url_adapter_reports_source():
    output = UrlAdapter(PageFetcher(site(), retry=NO_RETRY)).convert(
        "example.com/b", "example.com/b", ConversionOptions()
    )
    assert output.source_url == "https://example.com/b"
    assert "Bravo" in output.content


def test_parent_url_archive_layout(config):
    crawler = build_crawler(site())
    registry = build_registry(parenturl=ParentUrlAdapter(crawler))
    coordinator = BatchCoordinator(config, ConversionService(config, registry))
    request = ConversionRequest(
        ItemType.PARENT_URL,
        {"url": ROOT},
        ROOT,
        options=ConversionOptions(depth=1, max_pages=10),
    )
    outcome = coordinator.convert_batch([request])
    with zipfile.ZipFile(io.BytesIO(outcome.buffer)) as archive:
        names = set(archive.namelist())
        index = archive.read("web/example.com/index.md").decode("utf-8")
        page_a = archive.read("web/example.com/pages/a.md").decode("utf-8")
    assert {f"web/example.com/pages/{name}.md" for name in ("home", "a", "b", "c")} <= names
    assert "web/example.com/pages/missing.md" not in names
    assert "web/example.com/assets/logo.png" in names
    assert index.count("[[pages/") == 4
    assert "https://example.com/missing" in index.split("## Failed Pages", 1)[1]
    assert "../assets/logo.png" in page_a
    assert outcome.summary.successes == 1


class CancelingSession(FakeSession):
    """Set the cancellation event as soon as the start page has been served."""

    def __init__(self, routes, cancel: Event) -> None:
        super().__init__(routes)
        self.cancel = cancel

    def get(self, url, timeout=None):
        response = super().get(url, timeout)
        if url == ROOT:
            self.cancel.set()
        return response


def test_crawl_stops_when_canceled_mid_crawl():
    cancel = Event()
    session = CancelingSession(site().routes, cancel)
    with pytest.raises(JobCanceledError):
        build_crawler(session).crawl(ROOT, ConversionOptions(depth=2, max_pages=10), cancel)
    assert ROOT in session.requested
    assert "https://example.com/a" not in session.requested


def test_service_forwards_cancellation_to_the_crawler(config):
    cancel = Event()
    session = CancelingSession(site().routes, cancel)
    registry = build_registry(parenturl=ParentUrlAdapter(build_crawler(session)))
    service = ConversionService(config, registry)
    request = ConversionRequest(ItemType.PARENT_URL, {"url": ROOT}, ROOT, options=ConversionOptions(depth=1))
    with pytest.raises(JobCanceledError):
        service.convert(request, cancel)
    assert "https://example.com/b" not in session.requested
