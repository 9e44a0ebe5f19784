"""Job management service exports."""

from .manager import JobManager
from .models import Job, JobEntry, JobStatus
from .store import JobStore

__all__ = [
    "Job",
    "JobEntry",
    "JobManager",
    "JobStatus",
    "JobStore",
]
