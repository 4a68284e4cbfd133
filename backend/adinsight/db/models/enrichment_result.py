"""Narrative insights produced by the enrichment stage."""

from sqlalchemy import Boolean, Column, ForeignKey, String, Text
from sqlalchemy.types import DateTime

from adinsight.db.base import Base
from adinsight.db.models.types import JSONType, utcnow


class EnrichmentResult(Base):
    __tablename__ = "enrichment_results"

    job_id = Column(
        String(64), ForeignKey("analysis_jobs.id", ondelete="CASCADE"), primary_key=True
    )
    insights = Column(JSONType, nullable=False)
    ai_generated = Column(Boolean, nullable=False, default=False)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
