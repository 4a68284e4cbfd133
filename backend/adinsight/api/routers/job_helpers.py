"""Shared helpers for shaping job responses and mapping errors."""
from __future__ import annotations

from fastapi import HTTPException, status

from adinsight.api.schemas.job import JobStatus
from adinsight.core.exceptions import (
    AdInsightError,
    DuplicateJobError,
    JobAlreadyRunningError,
    JobNotFoundError,
    JobNotReadyError,
    UploadValidationError,
)
from adinsight.db.models import AnalysisJob

_STATUS_CODES: list[tuple[type[AdInsightError], int]] = [
    (UploadValidationError, status.HTTP_400_BAD_REQUEST),
    (DuplicateJobError, status.HTTP_409_CONFLICT),
    (JobNotFoundError, status.HTTP_404_NOT_FOUND),
    (JobNotReadyError, status.HTTP_409_CONFLICT),
    (JobAlreadyRunningError, status.HTTP_409_CONFLICT),
]


def serialize_job(job: AnalysisJob) -> JobStatus:
    return JobStatus.model_validate(job)


def to_http_exception(exc: AdInsightError) -> HTTPException:
    """Translate a domain error into the HTTP status callers rely on."""
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=code, detail={"error": exc.message, **exc.details})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": exc.message},
    )
