"""Async job status payloads."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    filename: str
    file_size: int = 0
    status: str = Field(..., description="pending|processing|completed|failed")
    progress: int = Field(0, ge=0, le=100, description="0-100 range for UI progress bars")
    message: str | None = None
    error_message: str | None = None
    attempts: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class JobList(BaseModel):
    items: list[JobStatus]
    total: int
    page: int
    page_size: int


class JobStats(BaseModel):
    total: int
    byStatus: dict[str, int]
    averageProcessingSeconds: float | None = None
