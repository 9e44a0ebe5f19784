from __future__ import annotations

import threading
from concurrent.futures import Future
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from ..utils import generate_job_id, iso, utc_now


class JobStatus(str, Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETED, JobStatus.FAILED}


STATUS_ORDER: dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.VALIDATING: 1,
    JobStatus.PROCESSING: 2,
    JobStatus.COMPLETED: 3,
    JobStatus.FAILED: 3,
}


@dataclass(slots=True)
class Job:
    id: str = field(default_factory=generate_job_id)
    status: JobStatus = JobStatus.PENDING
    progress: int = 0
    message: str = ""
    download_url: str | None = None
    result_path: Path | None = None
    filename: str | None = None
    error: str | None = None
    error_code: str | None = None
    item_count: int = 0
    summary: dict[str, Any] | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def snapshot(self) -> "Job":
        return replace(self, summary=dict(self.summary) if self.summary else None)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "jobId": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "message": self.message,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if self.download_url:
            payload["downloadUrl"] = self.download_url
        if self.filename:
            payload["filename"] = self.filename
        if self.error:
            payload["error"] = self.error
            payload["errorCode"] = self.error_code
        if self.item_count:
            payload["itemCount"] = self.item_count
        if self.summary:
            payload["summary"] = self.summary
        return payload


@dataclass(slots=True)
class JobEntry:
    """A job plus the per-job synchronization owned by the manager."""

    job: Job
    lock: threading.Lock = field(default_factory=threading.Lock)
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Future | None = None


__all__ = ["Job", "JobEntry", "JobStatus", "STATUS_ORDER"]
