"""Endpoints for CSV upload orchestration and tracking."""

from __future__ import annotations

import logging
import uuid

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    UploadFile,
    status,
)
from fastapi.concurrency import run_in_threadpool

from adinsight.api.dependencies.manager import get_manager
from adinsight.api.routers.job_helpers import serialize_job, to_http_exception
from adinsight.api.schemas.job import JobList, JobStats, JobStatus
from adinsight.core.exceptions import AdInsightError
from adinsight.db.models import JobStatus as JobState
from adinsight.services.job_manager import JobManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    summary="Upload a CSV and start an analysis job",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobStatus,
)
async def upload_csv(
    file: UploadFile = File(...),
    job_id: str | None = Form(None, description="Caller-supplied job id; generated when omitted"),
    manager: JobManager = Depends(get_manager),
) -> JobStatus:
    """Validate and stage the upload, then return the pending job."""
    job_id = job_id or str(uuid.uuid4())
    try:
        job = await run_in_threadpool(
            manager.submit, job_id, file.file, file.filename, file.size
        )
    except AdInsightError as exc:
        logger.warning(f"Rejected upload {file.filename!r} for job {job_id}: {exc}")
        raise to_http_exception(exc) from exc
    except Exception as exc:
        logger.error(f"Unexpected error starting job {job_id}: {exc}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start analysis job",
        ) from exc
    finally:
        await file.close()

    return serialize_job(job)


@router.get("", summary="List analysis jobs", response_model=JobList)
async def list_uploads(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status_filter: JobState | None = Query(None, alias="status"),
    manager: JobManager = Depends(get_manager),
) -> JobList:
    """Newest jobs first, optionally filtered by status."""
    jobs, total = await run_in_threadpool(
        manager.list_jobs, page, page_size, status_filter.value if status_filter else None
    )
    return JobList(
        items=[serialize_job(job) for job in jobs],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/stats", summary="Job counts and processing time", response_model=JobStats)
async def upload_stats(manager: JobManager = Depends(get_manager)) -> JobStats:
    return JobStats(**await run_in_threadpool(manager.stats))


@router.get(
    "/{job_id}/status",
    summary="Check analysis progress",
    response_model=JobStatus,
)
async def get_upload_status(
    job_id: str,
    manager: JobManager = Depends(get_manager),
) -> JobStatus:
    """Expose latest processing state to power UI progress bars (SSE/polling)."""
    try:
        job = await run_in_threadpool(manager.get_status, job_id)
    except AdInsightError as exc:
        raise to_http_exception(exc) from exc
    return serialize_job(job)


@router.delete(
    "/{job_id}",
    summary="Delete a job and its results",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_upload(
    job_id: str,
    manager: JobManager = Depends(get_manager),
) -> None:
    try:
        await run_in_threadpool(manager.remove, job_id)
    except AdInsightError as exc:
        raise to_http_exception(exc) from exc
