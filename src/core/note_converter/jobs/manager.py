from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from pathlib import Path
from typing import Sequence
from urllib.parse import quote

from ..batch import BatchCoordinator
from ..categories import requires_api_key
from ..config import AppConfig
from ..core import enforce_size_limit, request_url
from ..errors import (
    AuthenticationError,
    JobCanceledError,
    ResourceError,
    ValidationError,
    describe_error,
)
from ..models import ConversionRequest
from ..utils import normalize_url, utc_now
from .models import STATUS_ORDER, Job, JobEntry, JobStatus
from .store import JobStore

logger = logging.getLogger(__name__)

PROGRESS_VALIDATED = 5
PROGRESS_PROCESSING = 10
PROGRESS_ITEMS_SPAN = 80
PROGRESS_SAVING = 95


class JobManager:
    """Own the job table and run conversions on a background worker pool."""

    def __init__(
        self,
        config: AppConfig,
        coordinator: BatchCoordinator,
        store: JobStore | None = None,
        *,
        start_retention: bool = True,
    ) -> None:
        self._config = config
        self._coordinator = coordinator
        self._store = store or JobStore(config.runtime.storage_dir)
        pool_size = config.runtime.jobs.worker_pool_size
        if pool_size <= 0:
            pool_size = min(4, max(1, os.cpu_count() or 1))
        self._executor = ThreadPoolExecutor(max_workers=pool_size, thread_name_prefix="job-worker")
        self._stop = threading.Event()
        self._retention_thread: threading.Thread | None = None
        if start_retention and config.runtime.jobs.retention_hours > 0:
            self._retention_thread = threading.Thread(
                target=self._retention_loop, name="job-retention", daemon=True
            )
            self._retention_thread.start()

    @property
    def store(self) -> JobStore:
        return self._store

    def create_job(self, *, item_count: int = 0) -> str:
        job = Job(message="Job created", item_count=item_count)
        self._store.add(job)
        logger.info("Created job %s", job.id)
        return job.id

    def submit(self, requests: Sequence[ConversionRequest]) -> Job:
        items = list(requests)
        job_id = self.create_job(item_count=len(items))
        entry = self._require(job_id)
        entry.future = self._executor.submit(self._run_job, job_id, items)
        return self.get_job(job_id) or entry.job.snapshot()

    def _run_job(self, job_id: str, requests: list[ConversionRequest]) -> None:
        entry = self._store.get(job_id)
        if entry is None:
            return
        try:
            self._execute(entry, requests)
        except JobCanceledError as exc:
            logger.info("Job %s canceled", job_id)
            self.fail_job(job_id, exc)
        except (ValidationError, AuthenticationError, ResourceError) as exc:
            logger.warning("Job %s rejected: %s", job_id, exc)
            self.fail_job(job_id, exc)
        except Exception as exc:
            logger.exception("Job %s failed", job_id)
            self.fail_job(job_id, exc)

    def _execute(self, entry: JobEntry, requests: list[ConversionRequest]) -> None:
        job_id = entry.job.id
        self._ensure_not_canceled(entry)
        self.update_job_status(job_id, JobStatus.VALIDATING, "Validating request")
        self.validate(requests)
        self.update_job_progress(job_id, PROGRESS_VALIDATED)

        self._ensure_not_canceled(entry)
        self.update_job_status(job_id, JobStatus.PROCESSING, f"Converting {len(requests)} item(s)")
        self.update_job_progress(job_id, PROGRESS_PROCESSING)

        def _progress(done: int, total: int) -> None:
            percent = PROGRESS_PROCESSING + (PROGRESS_ITEMS_SPAN * done) // max(total, 1)
            self.update_job_progress(job_id, percent, f"Converted {done}/{total} item(s)")

        outcome = self._coordinator.convert_batch(
            requests,
            progress=_progress,
            cancellation=entry.cancel_event,
            run_logger=self._store.run_logger(job_id, self._config.runtime.log_file),
        )
        self._ensure_not_canceled(entry)

        self.update_job_progress(job_id, PROGRESS_SAVING, "Saving archive")
        self.save_job_result(job_id, outcome.buffer, outcome.filename)
        outcome.buffer = b""
        with entry.lock:
            entry.job.summary = outcome.summary.as_dict()
        self.complete_job(job_id, self.generate_download_url(job_id, outcome.filename))

    def validate(self, requests: Sequence[ConversionRequest]) -> None:
        if not requests:
            raise ValidationError("No items to convert", code="EMPTY_BATCH")
        limits = self._config.runtime.limits
        for request in requests:
            enforce_size_limit(request, limits)
            if requires_api_key(request.type, request.extension) and not request.options.api_key:
                raise AuthenticationError(f"API key is required to convert {request.name}")
            if request.type.is_web:
                url = request_url(request)
                if not url:
                    raise ValidationError(f"{request.type.value} item {request.name} has no URL")
                normalize_url(url)

    def _ensure_not_canceled(self, entry: JobEntry) -> None:
        if entry.cancel_event.is_set():
            raise JobCanceledError("Job canceled")

    def _require(self, job_id: str) -> JobEntry:
        entry = self._store.get(job_id)
        if entry is None:
            raise ResourceError(f"Job not found: {job_id}", code="NOT_FOUND", status_code=404)
        return entry

    def update_job_status(self, job_id: str, status: JobStatus, message: str = "") -> bool:
        entry = self._store.get(job_id)
        if entry is None:
            return False
        with entry.lock:
            job = entry.job
            if job.is_terminal or STATUS_ORDER[status] < STATUS_ORDER[job.status]:
                return False
            job.status = status
            if message:
                job.message = message
            job.updated_at = utc_now()
        return True

    def update_job_progress(self, job_id: str, percent: float, message: str = "") -> bool:
        entry = self._store.get(job_id)
        if entry is None:
            return False
        value = int(max(0, min(100, percent)))
        with entry.lock:
            job = entry.job
            if job.is_terminal or value < job.progress:
                return False
            job.progress = value
            if message:
                job.message = message
            job.updated_at = utc_now()
        return True

    def complete_job(self, job_id: str, download_url: str) -> bool:
        entry = self._store.get(job_id)
        if entry is None:
            return False
        with entry.lock:
            job = entry.job
            if job.is_terminal:
                return False
            job.status = JobStatus.COMPLETED
            job.progress = 100
            job.download_url = download_url
            job.message = "Conversion completed"
            job.updated_at = utc_now()
        logger.info("Job %s completed: %s", job_id, download_url)
        return True

    def fail_job(self, job_id: str, error: BaseException | str, code: str | None = None) -> bool:
        entry = self._store.get(job_id)
        if entry is None:
            return False
        if isinstance(error, BaseException):
            error_code, message = describe_error(error)
        else:
            error_code, message = "INTERNAL", error
        with entry.lock:
            job = entry.job
            if job.is_terminal:
                return False
            job.status = JobStatus.FAILED
            job.error = message
            job.error_code = code or error_code
            job.message = "Job canceled" if job.error_code == JobCanceledError.code else "Conversion failed"
            job.updated_at = utc_now()
        return True

    def save_job_result(self, job_id: str, buffer: bytes, filename: str) -> Path:
        entry = self._require(job_id)
        path = self._store.write_result(job_id, filename, buffer)
        with entry.lock:
            entry.job.result_path = path
            entry.job.filename = filename
            entry.job.updated_at = utc_now()
        return path

    def get_job_result_path(self, job_id: str, filename: str) -> Path:
        return self._store.open_result(job_id, filename)

    def generate_download_url(self, job_id: str, filename: str) -> str:
        prefix = self._config.api.prefix.rstrip("/")
        return f"{prefix}/download/{quote(job_id, safe='')}/{quote(filename, safe='')}"

    def get_job(self, job_id: str) -> Job | None:
        entry = self._store.get(job_id)
        if entry is None:
            return None
        with entry.lock:
            return entry.job.snapshot()

    def list_jobs(self) -> list[Job]:
        jobs = []
        for entry in self._store.entries():
            with entry.lock:
                jobs.append(entry.job.snapshot())
        return sorted(jobs, key=lambda job: job.created_at)

    def cancel(self, job_id: str) -> Job | None:
        entry = self._store.get(job_id)
        if entry is None:
            return None
        entry.cancel_event.set()
        if entry.future is not None and entry.future.cancel():
            self.fail_job(job_id, JobCanceledError("Job canceled before it started"))
        logger.info("Cancellation requested for job %s", job_id)
        return self.get_job(job_id)

    def evict(self, job_id: str) -> bool:
        entry = self._store.remove(job_id)
        if entry is None:
            return False
        entry.cancel_event.set()
        self._store.delete_files(job_id)
        logger.info("Evicted job %s", job_id)
        return True

    def expire_stale_jobs(self, now: datetime | None = None) -> list[str]:
        hours = self._config.runtime.jobs.retention_hours
        if hours <= 0:
            return []
        cutoff = (now or utc_now()) - timedelta(hours=hours)
        expired = []
        for entry in self._store.entries():
            with entry.lock:
                stale = entry.job.is_terminal and entry.job.updated_at < cutoff
            if stale and self.evict(entry.job.id):
                expired.append(entry.job.id)
        if expired:
            logger.info("Expired %d job(s)", len(expired))
        return expired

    def _retention_loop(self) -> None:  # pragma: no cover - background thread timing
        interval = max(1, self._config.runtime.jobs.retention_interval_s)
        while not self._stop.wait(interval):
            try:
                self.expire_stale_jobs()
            except Exception:
                logger.exception("Job retention sweep failed")

    def shutdown(self, wait: bool = False) -> None:
        self._stop.set()
        for entry in self._store.entries():
            entry.cancel_event.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)


__all__ = ["JobManager"]
