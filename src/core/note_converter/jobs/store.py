from __future__ import annotations

import logging
import re
import shutil
import threading
from pathlib import Path

from ..errors import ResourceError, ValidationError
from ..logging import RunLogger
from ..utils import atomic_write_bytes, sanitize_filename
from .models import Job, JobEntry

logger = logging.getLogger(__name__)

JOB_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,64}$")


class JobStore:
    """Job table plus on-disk result storage under ``<root>/<job_id>/``.

    Reads of the table are lock-free; the table lock only guards inserts and
    removals. Each entry carries its own lock for mutation.
    """

    def __init__(self, root: Path) -> None:
        self._root = root
        self._entries: dict[str, JobEntry] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def add(self, job: Job) -> JobEntry:
        entry = JobEntry(job=job)
        with self._lock:
            self._entries[job.id] = entry
        return entry

    def get(self, job_id: str) -> JobEntry | None:
        return self._entries.get(job_id)

    def remove(self, job_id: str) -> JobEntry | None:
        with self._lock:
            return self._entries.pop(job_id, None)

    def entries(self) -> list[JobEntry]:
        with self._lock:
            return list(self._entries.values())

    def job_dir(self, job_id: str) -> Path:
        if not JOB_ID_RE.match(job_id):
            raise ValidationError(f"Invalid job id: {job_id!r}", code="INVALID_JOB_ID")
        return self._root / job_id

    def result_path(self, job_id: str, filename: str) -> Path:
        if not filename or sanitize_filename(filename) != filename:
            raise ValidationError(f"Invalid filename: {filename!r}", code="INVALID_FILENAME")
        job_dir = self.job_dir(job_id)
        path = job_dir / filename
        if path.resolve().parent != job_dir.resolve():
            raise ValidationError(f"Invalid filename: {filename!r}", code="INVALID_FILENAME")
        return path

    def write_result(self, job_id: str, filename: str, buffer: bytes) -> Path:
        path = self.result_path(job_id, filename)
        atomic_write_bytes(path, buffer)
        logger.info("Saved result for job %s to %s (%d bytes)", job_id, path, len(buffer))
        return path

    def open_result(self, job_id: str, filename: str) -> Path:
        path = self.result_path(job_id, filename)
        if not path.is_file():
            raise ResourceError(f"Result not found: {filename}", code="NOT_FOUND", status_code=404)
        return path

    def run_logger(self, job_id: str, log_file: str) -> RunLogger:
        return RunLogger(self.job_dir(job_id) / log_file, job_id=job_id)

    def delete_files(self, job_id: str) -> None:
        path = self.job_dir(job_id)
        if path.exists():
            shutil.rmtree(path)


__all__ = ["JobStore"]
