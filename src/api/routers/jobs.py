from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from core.note_converter.errors import ResourceError
from core.note_converter.jobs import JobManager

from ..dependencies import get_job_manager

router = APIRouter(tags=["jobs"])


def _not_found(job_id: str) -> ResourceError:
    return ResourceError(f"Job {job_id} not found", code="JOB_NOT_FOUND", status_code=404)


@router.get("/job/{job_id}/status", summary="Retrieve job status")
def get_job_status(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    job = manager.get_job(job_id)
    if job is None:
        raise _not_found(job_id)
    return job.to_payload()


@router.post("/job/{job_id}/cancel", summary="Request cancellation of a job")
def cancel_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    job = manager.cancel(job_id)
    if job is None:
        raise _not_found(job_id)
    return job.to_payload()


@router.delete("/job/{job_id}", summary="Delete a job and its archive")
def delete_job(job_id: str, manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    if not manager.evict(job_id):
        raise _not_found(job_id)
    return {"jobId": job_id, "deleted": True}


@router.get("/jobs", summary="List known jobs")
def list_jobs(manager: JobManager = Depends(get_job_manager)) -> dict[str, Any]:
    return {"jobs": [job.to_payload() for job in manager.list_jobs()]}


@router.get("/download/{job_id}/{filename}", summary="Download a finished archive")
def download_result(
    job_id: str,
    filename: str,
    manager: JobManager = Depends(get_job_manager),
) -> FileResponse:
    if manager.get_job(job_id) is None:
        raise _not_found(job_id)
    path = manager.get_job_result_path(job_id, filename)
    return FileResponse(path, media_type="application/zip", filename=path.name)


__all__ = ["router"]
