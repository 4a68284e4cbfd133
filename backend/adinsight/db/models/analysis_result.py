"""Aggregate metrics for a completed job (one row per job)."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.types import DateTime

from adinsight.db.base import Base
from adinsight.db.models.types import JSONType, utcnow


class AnalysisResult(Base):
    __tablename__ = "analysis_results"

    job_id = Column(
        String(64), ForeignKey("analysis_jobs.id", ondelete="CASCADE"), primary_key=True
    )
    total_rows = Column(Integer, nullable=False, default=0)
    processed_rows = Column(Integer, nullable=False, default=0)
    discarded_rows = Column(Integer, nullable=False, default=0)
    discard_reasons = Column(JSONType)
    metrics_summary = Column(JSONType)
    top_performers = Column(JSONType)
    bottom_performers = Column(JSONType)
    trends = Column(JSONType)
    patterns = Column(JSONType)
    anomalies = Column(JSONType)
    created_at = Column(DateTime(timezone=True), default=utcnow)
