"""Analysis results and enrichment regeneration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from adinsight.api.dependencies.manager import get_manager
from adinsight.api.routers.job_helpers import to_http_exception
from adinsight.api.schemas.analysis import AnalysisResponse, EnrichmentResponse
from adinsight.core.exceptions import AdInsightError
from adinsight.services.job_manager import JobManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/{job_id}",
    summary="Fetch the analysis of a completed job",
    response_model=AnalysisResponse,
    responses={404: {"description": "Job not found"}, 409: {"description": "Job not completed"}},
)
async def get_analysis(
    job_id: str,
    manager: JobManager = Depends(get_manager),
) -> AnalysisResponse:
    """Served from the result cache when warm, rebuilt from the database otherwise."""
    try:
        result = await run_in_threadpool(manager.get_result, job_id)
    except AdInsightError as exc:
        raise to_http_exception(exc) from exc
    return AnalysisResponse.model_validate(result)


@router.post(
    "/{job_id}/optimize",
    summary="Regenerate insights and optimization tasks",
    response_model=EnrichmentResponse,
)
async def regenerate_optimization(
    job_id: str,
    manager: JobManager = Depends(get_manager),
) -> EnrichmentResponse:
    try:
        output = await run_in_threadpool(manager.regenerate_enrichment, job_id)
    except AdInsightError as exc:
        raise to_http_exception(exc) from exc
    logger.info(f"Generated optimization strategies for job {job_id}")
    return EnrichmentResponse(
        jobId=job_id,
        insights=output["insights"],
        tasks=output["tasks"],
        totalTasks=len(output["tasks"]),
        aiGenerated=output["aiGenerated"],
        error=output["error"],
    )
