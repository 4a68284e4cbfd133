"""Track one CSV analysis job from upload to terminal state."""

from enum import Enum

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.types import DateTime

from adinsight.db.base import Base
from adinsight.db.models.types import utcnow


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# processing -> processing is a retry re-entering the pipeline
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.PROCESSING, JobStatus.FAILED}),
    JobStatus.PROCESSING: frozenset(
        {JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


class AnalysisJob(Base):
    __tablename__ = "analysis_jobs"

    id = Column(String(64), primary_key=True)
    filename = Column(String(255), nullable=False)
    file_path = Column(Text)
    file_size = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default=JobStatus.PENDING.value, index=True)
    progress = Column(Integer, nullable=False, default=0)
    message = Column(Text)
    error_message = Column(Text)
    attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
