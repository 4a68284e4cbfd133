"""Actionable optimization tasks generated for a job."""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.types import DateTime

from adinsight.db.base import Base
from adinsight.db.models.types import JSONType, utcnow


class OptimizationTask(Base):
    __tablename__ = "optimization_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(
        String(64),
        ForeignKey("analysis_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    task_type = Column(String(64), nullable=False, default="general")
    priority = Column(String(16), nullable=False, default="medium")
    description = Column(Text, nullable=False)
    estimated_impact = Column(String(16), nullable=False, default="medium")
    difficulty = Column(String(16), nullable=False, default="medium")
    action_items = Column(JSONType)
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), default=utcnow)
