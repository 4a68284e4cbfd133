"""Real-time job progress over Server-Sent Events."""
from __future__ import annotations

import asyncio
from typing import AsyncGenerator

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse

from adinsight.api.dependencies.manager import get_manager
from adinsight.api.routers.job_helpers import serialize_job, to_http_exception
from adinsight.core.exceptions import AdInsightError, JobNotFoundError
from adinsight.services.job_manager import JobManager

router = APIRouter()

POLL_INTERVAL_SECONDS = 2.0
# Give up after this many polls without any change (10 minutes)
MAX_IDLE_POLLS = 300


@router.get(
    "/{job_id}/stream",
    summary="Server-Sent Events stream for real-time progress",
)
async def stream_job_progress(
    job_id: str,
    manager: JobManager = Depends(get_manager),
) -> StreamingResponse:
    """Stream job status updates via Server-Sent Events (SSE).

    Each ``data:`` event carries the job status JSON. The stream closes with
    a ``close`` event once the job completes or fails.
    """
    try:
        await run_in_threadpool(manager.get_status, job_id)
    except AdInsightError as exc:
        raise to_http_exception(exc) from exc

    async def event_generator() -> AsyncGenerator[str, None]:
        last_payload = None
        idle_polls = 0
        while True:
            try:
                job = await run_in_threadpool(manager.get_status, job_id)
            except JobNotFoundError:
                yield 'event: error\ndata: {"error": "Job not found"}\n\n'
                break

            payload = serialize_job(job).model_dump_json()
            if payload != last_payload:
                last_payload = payload
                idle_polls = 0
                yield f"data: {payload}\n\n"
            else:
                idle_polls += 1

            if job.status in ("completed", "failed"):
                yield "event: close\ndata: {}\n\n"
                break
            if idle_polls > MAX_IDLE_POLLS:
                yield "event: timeout\ndata: {}\n\n"
                break

            await asyncio.sleep(POLL_INTERVAL_SECONDS)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
