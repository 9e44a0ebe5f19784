from __future__ import annotations

import io
import zipfile
from datetime import datetime, timezone

from core.note_converter.archive import ArchiveBuilder, ArchiveTree
from core.note_converter.models import ConversionRequest, ConversionResult, ImageAsset, ItemType, PageResult

GENERATED_AT = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)


def unpack(buffer: bytes) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(buffer)) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


def document(name: str, content: str = "body\n", images=None) -> ConversionResult:
    return ConversionResult(
        success=True,
        content=content,
        name=name,
        type="txt",
        category="documents",
        images=list(images or []),
    )


def test_single_text_file_archive(coordinator):
    request = ConversionRequest(ItemType.FILE, b"hello", "notes.txt")
    outcome = coordinator.convert_batch([request], generated_at=GENERATED_AT)
    files = unpack(outcome.buffer)
    assert set(files) == {"documents/notes.md", "summary.md"}
    summary = files["summary.md"].decode("utf-8")
    assert "1 successful, 0 failed" in summary
    assert "- **notes.txt** (txt) - 0 image(s)" in summary


def test_archive_bytes_are_deterministic():
    results = [document("a.txt"), document("b.txt")]
    first = ArchiveBuilder(GENERATED_AT).build(results)
    second = ArchiveBuilder(GENERATED_AT).build(results)
    assert first == second
    with zipfile.ZipFile(io.BytesIO(first)) as archive:
        assert archive.namelist() == sorted(archive.namelist())
        assert archive.getinfo("summary.md").date_time == (2024, 5, 1, 12, 30, 0)


def test_duplicate_names_get_suffixes():
    files = ArchiveBuilder(GENERATED_AT).layout([document("notes.txt"), document("notes.txt")])
    assert "documents/notes.md" in files
    assert "documents/notes-2.md" in files


def test_traversal_names_stay_inside_category():
    files = ArchiveBuilder(GENERATED_AT).layout([document("../../etc/passwd")])
    for path in files:
        assert ".." not in path.split("/")
        assert path.split("/")[0] in {"documents", "summary.md"}
    assert "documents/etc_passwd.md" in files


def test_images_land_at_declared_paths():
    first = ImageAsset.from_bytes("report-fig.png", b"one", "image/png")
    first.path = "documents/assets/report-fig.png"
    second = ImageAsset.from_bytes("report-fig.png", b"two", "image/png")
    second.path = "documents/assets/report-fig.png"
    results = [
        document("report.txt", "![a](assets/report-fig.png)\n", [first]),
        document("report.pdf", "![b](assets/report-fig.png)\n", [second]),
    ]
    files = ArchiveBuilder(GENERATED_AT).layout(results)
    for result in results:
        for image in result.images:
            assert image.path in files
    assert files["documents/assets/report-fig.png"] == b"one"
    assert second.path == "documents/assets/report-fig-2.png"
    assert files[second.path] == b"two"
    assert b"(assets/report-fig-2.png)" in files["documents/report-2.md"]


def test_error_results_go_to_errors_folder():
    failure = ConversionResult(
        success=False,
        content="",
        name="item2.docx",
        type="docx",
        category="errors",
        error="Invalid DOCX file signature",
        error_code="INVALID_SIGNATURE",
    )
    files = ArchiveBuilder(GENERATED_AT).layout([failure])
    body = files["errors/item2_error.md"].decode("utf-8")
    assert body.startswith("# Conversion Error")
    assert "**Code:** INVALID_SIGNATURE" in body
    assert "**Timestamp:** 2024-05-01T12:30:00.000000Z" in body
    assert "- **item2.docx**: Invalid DOCX file signature" in files["summary.md"].decode("utf-8")


def test_single_page_site_rewrites_image_urls():
    image = ImageAsset.from_bytes(
        "a.png", b"img", "image/png", source_url="https://example.com/img/a.png"
    )
    result = ConversionResult(
        success=True,
        content="# Example\n\n![a](https://example.com/img/a.png)\n",
        name="example.com",
        type="url",
        category="web",
        images=[image],
    )
    files = ArchiveBuilder(GENERATED_AT).layout([result])
    index = files["web/example.com/index.md"].decode("utf-8")
    assert "![a](assets/a.png)" in index
    assert files["web/example.com/assets/a.png"] == b"img"
    assert image.path == "web/example.com/assets/a.png"


def test_crawl_results_expand_into_pages():
    image = ImageAsset.from_bytes("logo.png", b"logo", source_url="https://example.com/logo.png")
    pages = [
        PageResult(
            url="https://example.com/",
            name="home",
            content="![logo](https://example.com/logo.png)\n",
            images=[image],
        ),
        PageResult(url="https://example.com/about", name="about", content="About\n"),
        PageResult(url="https://example.com/gone", name="gone", success=False, error="404"),
    ]
    result = ConversionResult(
        success=True,
        content="# example.com\n",
        name="example.com",
        type="parenturl",
        category="web",
        images=[image],
        pages=pages,
    )
    files = ArchiveBuilder(GENERATED_AT).layout([result])
    assert "web/example.com/index.md" in files
    assert "web/example.com/pages/home.md" in files
    assert "web/example.com/pages/about.md" in files
    assert "web/example.com/pages/gone.md" not in files
    assert b"![logo](../assets/logo.png)" in files["web/example.com/pages/home.md"]
    assert "2 page(s)" in files["summary.md"].decode("utf-8")


def test_tree_reserve_is_per_directory():
    tree = ArchiveTree()
    assert tree.reserve("documents/a.md") == "documents/a.md"
    assert tree.reserve("data/a.md") == "data/a.md"
    assert tree.reserve("documents/a.md") == "documents/a-2.md"


def test_renamed_images_do_not_cascade_into_each_other():
    earlier = ImageAsset.from_bytes("r-a.png", b"first", "image/png")
    earlier.path = "documents/assets/r-a.png"
    image_a = ImageAsset.from_bytes("r-a.png", b"second_a", "image/png")
    image_a.path = "documents/assets/r-a.png"
    image_b = ImageAsset.from_bytes("r-a-2.png", b"second_b", "image/png")
    image_b.path = "documents/assets/r-a-2.png"
    results = [
        document("r.txt", "![x](assets/r-a.png)\n", [earlier]),
        document("r.pdf", "![A](assets/r-a.png)\n![B](assets/r-a-2.png)\n", [image_a, image_b]),
    ]
    files = ArchiveBuilder(GENERATED_AT).layout(results)
    assert image_a.path == "documents/assets/r-a-2.png"
    assert image_b.path == "documents/assets/r-a-2-2.png"
    markdown = files["documents/r-2.md"].decode("utf-8")
    assert "![A](assets/r-a-2.png)" in markdown
    assert "![B](assets/r-a-2-2.png)" in markdown
    assert files[image_a.path] == b"second_a"
    assert files[image_b.path] == b"second_b"
