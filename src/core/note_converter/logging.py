from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Sequence

from .models import ConversionResult

LOGGER_NAME = "note_converter"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Attach a single stream handler to the package logger."""

    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(level)
    if not any(getattr(handler, "_note_converter", False) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._note_converter = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
    return logger


@dataclass(slots=True)
class RunLogEntry:
    job_id: str | None
    item_id: str | None
    source: str
    item_type: str
    converter: str | None
    status: str
    category: str
    warnings: list[str]
    error_code: str | None
    duration_ms: float
    images: int
    size_bytes: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class RunLogger:
    """Append-only JSONL log of converted items, safe to share between worker threads."""

    def __init__(self, log_file: Path, *, job_id: str | None = None) -> None:
        self._log_file = log_file
        self._job_id = job_id
        self._lock = threading.Lock()

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def log_file(self) -> Path:
        return self._log_file

    def append(self, entry: RunLogEntry) -> None:
        if entry.job_id is None:
            entry.job_id = self._job_id
        line = json.dumps(entry.to_dict(), ensure_ascii=False)
        with self._lock:
            self._log_file.parent.mkdir(parents=True, exist_ok=True)
            with self._log_file.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def read(self) -> list[dict[str, Any]]:
        if not self._log_file.exists():
            return []
        with self._log_file.open("r", encoding="utf-8") as handle:
            return [json.loads(line) for line in handle if line.strip()]


@dataclass(slots=True)
class BatchSummary:
    timestamp: float = field(default_factory=time.time)
    total: int = 0
    successes: int = 0
    failures: int = 0
    images: int = 0
    warnings: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Sequence[ConversionResult]) -> "BatchSummary":
        summary = cls(total=len(results))
        for result in results:
            if result.success:
                summary.successes += 1
                summary.images += result.image_count
            else:
                summary.failures += 1
            for warning in result.warnings:
                summary.warnings[warning] = summary.warnings.get(warning, 0) + 1
        return summary

    def headline(self) -> str:
        return f"{self.successes} successful, {self.failures} failed"

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp)),
            "total": self.total,
            "successes": self.successes,
            "failures": self.failures,
            "images": self.images,
            "warnings": dict(sorted(self.warnings.items())),
        }


__all__ = [
    "BatchSummary",
    "RunLogEntry",
    "RunLogger",
    "configure_logging",
]
