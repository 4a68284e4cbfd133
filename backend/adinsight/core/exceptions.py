"""
Exception hierarchy for the ad insight pipeline.

Caller-facing failures (validation, not found, not ready) are raised
synchronously; processing failures are recorded on the job after retries.
"""

from typing import Any


class AdInsightError(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UploadValidationError(AdInsightError):
    """Raised when an upload is rejected before it reaches the queue."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class DuplicateJobError(AdInsightError):
    """Raised when a job identifier has already been submitted."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job already exists: {job_id}", {"job_id": job_id})


class JobNotFoundError(AdInsightError):
    """Raised when a job identifier is unknown."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}", {"job_id": job_id})


class JobNotReadyError(AdInsightError):
    """Raised when results are requested before a job has completed."""

    def __init__(
        self,
        job_id: str,
        status: str,
        progress: int = 0,
        error: str | None = None,
    ) -> None:
        self.job_id = job_id
        self.status = status
        self.progress = progress
        self.error = error
        details: dict[str, Any] = {"job_id": job_id, "status": status, "progress": progress}
        if error:
            details["error"] = error
        super().__init__(f"Job {job_id} is not completed (status: {status})", details)


class InvalidTransitionError(AdInsightError):
    """Raised when a job status change would leave a terminal state."""

    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Job {job_id} cannot move from {current} to {target}",
            {"job_id": job_id, "current": current, "target": target},
        )


class JobAlreadyRunningError(AdInsightError):
    """Raised when another worker holds the execution lock for a job."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job {job_id} is already being executed", {"job_id": job_id})


class SourceReadError(AdInsightError):
    """Raised when the uploaded CSV cannot be read at all."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message, {"path": path} if path else None)


class GenerationError(AdInsightError):
    """Raised when the generation capability fails or returns malformed output."""


class GenerationTimeoutError(GenerationError):
    """Raised when a generation call exceeds its time budget."""


class GenerationSetupError(GenerationError):
    """Raised when the generation capability cannot be initialized."""
