"""Point-in-time performance snapshot taken when a job completes."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.types import DateTime

from adinsight.db.base import Base
from adinsight.db.models.types import JSONType, utcnow


class HistoricalSnapshot(Base):
    __tablename__ = "historical_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(
        String(64),
        ForeignKey("analysis_jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date_range = Column(JSONType)
    performance_metrics = Column(JSONType, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
