from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

from markitdown import MarkItDown

from ..detection import ConverterKind
from ..models import ConversionOptions, ImageAsset, PageResult
from ..utils import collapse_blank_lines, sanitize_filename


@dataclass(slots=True)
class ConverterOutput:
    content: str
    images: list[ImageAsset] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    pages: list[PageResult] = field(default_factory=list)
    source_url: str | None = None
    title: str | None = None
    warnings: list[str] = field(default_factory=list)


class Converter(Protocol):
    def convert(
        self, content: Any, name: str, options: ConversionOptions
    ) -> ConverterOutput:  # pragma: no cover - interface
        ...


def normalize_markdown(markdown: str) -> str:
    lines = [line.rstrip() for line in markdown.splitlines()]
    text = collapse_blank_lines("\n".join(lines)).strip("\n")
    return text + ("\n" if text else "")


def error_markdown(name: str, message: str) -> str:
    return f"# Conversion Error\n\nFailed to convert {name}\nError: {message}\n"


class BaseMarkitdownAdapter:
    """Run markitdown over an in-memory payload by spilling it to a temp file."""

    kind: ConverterKind

    def __init__(self) -> None:
        self._converter: MarkItDown | None = None
        self._lock = threading.Lock()

    def _markitdown(self) -> MarkItDown:
        with self._lock:
            if self._converter is None:
                self._converter = MarkItDown()
            return self._converter

    def _convert_with_metadata(self, payload: bytes, name: str):  # type: ignore[no-untyped-def]
        suffix = self.kind.extension
        fd, tmp_name = tempfile.mkstemp(prefix="note-converter-", suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            return self._markitdown().convert(tmp_name)
        finally:
            os.unlink(tmp_name)

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        payload = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        result = self._convert_with_metadata(payload, name)
        images: list[ImageAsset] = []

        if isinstance(result, str):
            markdown = result
        elif hasattr(result, "text_content"):
            markdown = str(result.text_content or "")
            attachments = getattr(result, "attachments", None)
            if options.include_images and isinstance(attachments, dict):
                for image_name, blob in attachments.items():
                    images.append(ImageAsset.from_bytes(sanitize_filename(str(image_name)), blob))
        else:
            raise RuntimeError("Unsupported markitdown return type")

        return ConverterOutput(content=normalize_markdown(markdown), images=images)


__all__ = [
    "BaseMarkitdownAdapter",
    "Converter",
    "ConverterOutput",
    "error_markdown",
    "normalize_markdown",
]
