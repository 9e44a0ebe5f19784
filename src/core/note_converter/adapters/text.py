from __future__ import annotations

import csv
import io
import json
from typing import Any

from .base import ConverterOutput, normalize_markdown
from ..detection import ConverterKind
from ..errors import ConversionError
from ..models import ConversionOptions
from ..utils import decode_text, normalize_newlines


class TXTAdapter:
    kind = ConverterKind.TXT

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        text = decode_text(content)
        return ConverterOutput(content=normalize_newlines(text))


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\r", " ").replace("\n", " ").strip()


class CSVAdapter:
    kind = ConverterKind.CSV

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        text = decode_text(content)
        rows = [row for row in csv.reader(io.StringIO(text)) if any(cell.strip() for cell in row)]
        if not rows:
            raise ConversionError(f"{name} contains no rows")
        width = max(len(row) for row in rows)
        padded = [row + [""] * (width - len(row)) for row in rows]
        header, body = padded[0], padded[1:]
        lines = [
            "| " + " | ".join(_escape_cell(cell) for cell in header) + " |",
            "| " + " | ".join("---" for _ in header) + " |",
        ]
        for row in body:
            lines.append("| " + " | ".join(_escape_cell(cell) for cell in row) + " |")
        warnings = []
        if any(len(row) != width for row in rows):
            warnings.append("CSV_RAGGED_ROWS")
        return ConverterOutput(content="\n".join(lines) + "\n", warnings=warnings)


class JSONAdapter:
    kind = ConverterKind.JSON

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        text = decode_text(content)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConversionError(f"Invalid JSON in {name}: {exc}") from exc
        pretty = json.dumps(data, indent=2, ensure_ascii=False)
        return ConverterOutput(content=f"```json\n{pretty}\n```\n")


class YAMLAdapter:
    kind = ConverterKind.YAML

    def convert(self, content: Any, name: str, options: ConversionOptions) -> ConverterOutput:
        text = normalize_markdown(decode_text(content))
        if not text:
            raise ConversionError(f"{name} is empty")
        return ConverterOutput(content=f"```yaml\n{text}```\n")


__all__ = ["CSVAdapter", "JSONAdapter", "TXTAdapter", "YAMLAdapter"]
