from __future__ import annotations

import mimetypes
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pypandoc

from .base import BaseMarkitdownAdapter, ConverterOutput, normalize_markdown
from ..detection import ConverterKind
from ..errors import ConversionError
from ..models import ConversionOptions, ImageAsset
from ..utils import sanitize_filename, unique_name

ConvertFile = Callable[..., str]


class PDFAdapter(BaseMarkitdownAdapter):
    kind = ConverterKind.PDF

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        output = super().convert(content, name, options)
        if len(output.content.strip()) < 40:
            output.warnings.append("IMAGE_HEAVY_PDF")
        return output


class DOCXAdapter(BaseMarkitdownAdapter):
    kind = ConverterKind.DOCX


class PPTXAdapter(BaseMarkitdownAdapter):
    kind = ConverterKind.PPTX

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        output = super().convert(content, name, options)
        lines = []
        for line in output.content.splitlines():
            if line.startswith("# "):
                lines.append("## " + line[2:])
            else:
                lines.append(line)
        output.content = "\n".join(lines) + "\n"
        return output


class XLSXAdapter(BaseMarkitdownAdapter):
    kind = ConverterKind.XLSX


class EPUBAdapter(BaseMarkitdownAdapter):
    kind = ConverterKind.EPUB


class HTMLAdapter(BaseMarkitdownAdapter):
    kind = ConverterKind.HTML


class BasePandocAdapter:
    """Run pandoc over formats markitdown cannot read.

    Embedded media is extracted next to the source file and returned as
    images, with the Markdown links pointing at ``assets/<name>``.
    """

    kind: ConverterKind
    input_format: str

    def __init__(self, convert_file: ConvertFile | None = None) -> None:
        self._convert_file = convert_file or pypandoc.convert_file

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        payload = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        with tempfile.TemporaryDirectory(prefix="note-converter-pandoc-") as workdir:
            root = Path(workdir)
            source = root / f"source{self.kind.extension}"
            source.write_bytes(payload)
            media_dir = root / "media"
            extra_args = ["--wrap=none"]
            if options.include_images:
                extra_args.append(f"--extract-media={media_dir}")
            try:
                markdown = self._convert_file(
                    str(source), "gfm", format=self.input_format, extra_args=extra_args
                )
            except (RuntimeError, OSError) as exc:
                raise ConversionError(f"pandoc could not convert {name}: {exc}") from exc
            images: list[ImageAsset] = []
            if options.include_images:
                markdown, images = _collect_media(media_dir, markdown)
        return ConverterOutput(content=normalize_markdown(markdown), images=images)


def _collect_media(media_dir: Path, markdown: str) -> tuple[str, list[ImageAsset]]:
    if not media_dir.is_dir():
        return markdown, []
    images: list[ImageAsset] = []
    links: dict[str, str] = {}
    taken: set[str] = set()
    for path in sorted(item for item in media_dir.rglob("*") if item.is_file()):
        image_name = unique_name(sanitize_filename(path.name), taken)
        images.append(
            ImageAsset.from_bytes(image_name, path.read_bytes(), mimetypes.guess_type(path.name)[0])
        )
        links[str(path)] = f"assets/{image_name}"
    for source in sorted(links, key=len, reverse=True):
        markdown = markdown.replace(source, links[source])
    return markdown, images


class ODTAdapter(BasePandocAdapter):
    kind = ConverterKind.ODT
    input_format = "odt"


class RTFAdapter(BasePandocAdapter):
    kind = ConverterKind.RTF
    input_format = "rtf"


__all__ = [
    "BasePandocAdapter",
    "DOCXAdapter",
    "EPUBAdapter",
    "HTMLAdapter",
    "ODTAdapter",
    "PDFAdapter",
    "PPTXAdapter",
    "RTFAdapter",
    "XLSXAdapter",
]
