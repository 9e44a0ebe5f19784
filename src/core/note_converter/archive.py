"""Lay converted results out as a categorized ZIP archive."""

from __future__ import annotations

import io
import logging
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Sequence
from zipfile import ZIP_DEFLATED, ZipFile, ZipInfo

from .categories import ERRORS
from .detection import ConverterKind
from .logging import BatchSummary
from .models import ConversionResult, ImageAsset
from .utils import (
    file_stem,
    iso,
    rewrite_asset_links,
    safe_archive_path,
    sanitize_filename,
    unique_name,
    utc_now,
)

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "summary.md"


class ArchiveTree:
    """In-memory file tree with collision-free path reservation."""

    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}
        self._reserved: set[str] = set()
        self._dirs: set[str] = set()

    @property
    def files(self) -> dict[str, bytes]:
        return dict(self._files)

    def reserve(self, path: str) -> str:
        path = safe_archive_path(path)
        parent, _, name = path.rpartition("/")
        taken = {
            existing.rpartition("/")[2]
            for existing in self._reserved
            if existing.rpartition("/")[0] == parent
        }
        final = unique_name(name, taken)
        reserved = f"{parent}/{final}" if parent else final
        self._reserved.add(reserved)
        return reserved

    def reserve_dir(self, path: str) -> str:
        path = safe_archive_path(path)
        parent, _, name = path.rpartition("/")
        taken = {
            existing.rpartition("/")[2]
            for existing in self._dirs
            if existing.rpartition("/")[0] == parent
        }
        final = unique_name(name, taken)
        reserved = f"{parent}/{final}" if parent else final
        self._dirs.add(reserved)
        return reserved

    def put(self, path: str, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._reserved.add(path)
        self._files[path] = data


def _replace_sources(content: str, images: Sequence[ImageAsset], prefix: str) -> str:
    mapping = {
        image.source_url: f"{prefix}{PurePosixPath(image.path).name}"
        for image in images
        if image.source_url and image.path
    }
    for source in sorted(mapping, key=len, reverse=True):
        content = content.replace(source, mapping[source])
    return content


class ArchiveBuilder:
    def __init__(self, generated_at: datetime | None = None) -> None:
        self._generated_at = generated_at or utc_now()

    @property
    def generated_at(self) -> datetime:
        return self._generated_at

    def build(self, results: Sequence[ConversionResult]) -> bytes:
        return self.pack(self.layout(results))

    def layout(self, results: Sequence[ConversionResult]) -> dict[str, bytes]:
        tree = ArchiveTree()
        tree.reserve(SUMMARY_FILENAME)
        for result in results:
            if not result.success:
                self._add_error(tree, result)
            elif result.type == ConverterKind.PARENT_URL.value:
                self._add_crawl(tree, result)
            elif result.type == ConverterKind.URL.value:
                self._add_site(tree, result)
            else:
                self._add_item(tree, result)
        tree.put(SUMMARY_FILENAME, render_summary(results, self._generated_at))
        return tree.files

    def pack(self, files: dict[str, bytes]) -> bytes:
        stamp = self._generated_at.astimezone(timezone.utc)
        date_time = (max(stamp.year, 1980), stamp.month, stamp.day, stamp.hour, stamp.minute, stamp.second)
        buffer = io.BytesIO()
        with ZipFile(buffer, "w", compression=ZIP_DEFLATED) as archive:
            for path in sorted(files):
                info = ZipInfo(path, date_time=date_time)
                info.compress_type = ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                archive.writestr(info, files[path])
        logger.debug("Packed %d archive entries", len(files))
        return buffer.getvalue()

    def _add_item(self, tree: ArchiveTree, result: ConversionResult) -> None:
        category = sanitize_filename(result.category)
        markdown_path = tree.reserve(f"{category}/{file_stem(result.name)}.md")
        renames: dict[str, str] = {}
        for image in result.images:
            desired = safe_archive_path(image.path) if image.path else ""
            if not desired.startswith(f"{category}/"):
                desired = f"{category}/assets/{sanitize_filename(image.name)}"
            final = tree.reserve(desired)
            if final != desired:
                renames.setdefault(PurePosixPath(desired).name, PurePosixPath(final).name)
            image.path = final
            tree.put(final, image.to_bytes())
        tree.put(markdown_path, rewrite_asset_links(result.content, renames))

    def _add_assets(self, tree: ArchiveTree, base: str, images: Sequence[ImageAsset]) -> None:
        for image in images:
            final = tree.reserve(f"{base}/assets/{sanitize_filename(image.name)}")
            image.path = final
            tree.put(final, image.to_bytes())

    def _add_site(self, tree: ArchiveTree, result: ConversionResult) -> None:
        category = sanitize_filename(result.category)
        base = tree.reserve_dir(f"{category}/{sanitize_filename(result.name)}")
        self._add_assets(tree, base, result.images)
        content = _replace_sources(result.content, result.images, "assets/")
        tree.put(tree.reserve(f"{base}/index.md"), content)

    def _add_crawl(self, tree: ArchiveTree, result: ConversionResult) -> None:
        category = sanitize_filename(result.category)
        base = tree.reserve_dir(f"{category}/{sanitize_filename(result.name)}")
        self._add_assets(tree, base, result.images)
        tree.put(tree.reserve(f"{base}/index.md"), result.content)
        for page in result.converted_pages:
            page_path = tree.reserve(f"{base}/pages/{sanitize_filename(page.name)}.md")
            tree.put(page_path, _replace_sources(page.content, page.images, "../assets/"))

    def _add_error(self, tree: ArchiveTree, result: ConversionResult) -> None:
        path = tree.reserve(f"{ERRORS}/{file_stem(result.name)}_error.md")
        lines = [
            "# Conversion Error",
            "",
            f"**Name:** {result.name}",
            f"**Type:** {result.type}",
            f"**Error:** {result.error or 'Unknown error'}",
        ]
        if result.error_code:
            lines.append(f"**Code:** {result.error_code}")
        if result.source_url:
            lines.append(f"**Source:** {result.source_url}")
        lines.append(f"**Timestamp:** {iso(self._generated_at)}")
        tree.put(path, "\n".join(lines) + "\n")


def render_summary(results: Sequence[ConversionResult], generated_at: datetime) -> str:
    summary = BatchSummary.from_results(results)
    lines = [
        "# Conversion Summary",
        "",
        f"Generated: {iso(generated_at)}",
        "",
        "## Statistics",
        "",
        f"- Total Items: {summary.total}",
        f"- Successful: {summary.successes}",
        f"- Failed: {summary.failures}",
        "",
        summary.headline(),
    ]
    successes = [result for result in results if result.success]
    failures = [result for result in results if not result.success]
    if successes:
        lines.extend(["", "## Successful Conversions", ""])
        for result in successes:
            line = f"- **{result.name}** ({result.type}) - {result.image_count} image(s)"
            if result.pages:
                line += f", {len(result.converted_pages)} page(s)"
            lines.append(line)
    if failures:
        lines.extend(["", "## Failed Conversions", ""])
        for result in failures:
            lines.append(f"- **{result.name}**: {result.error or 'Unknown error'}")
    warned = [result for result in results if result.warnings]
    if warned:
        lines.extend(["", "## Warnings", ""])
        for result in warned:
            for warning in result.warnings:
                lines.append(f"- **{result.name}**: {warning}")
    return "\n".join(lines) + "\n"


__all__ = ["ArchiveBuilder", "ArchiveTree", "SUMMARY_FILENAME", "render_summary"]
