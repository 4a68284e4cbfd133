"""Normalized CSV rows that survived validation, with computed metrics."""

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text

from adinsight.db.base import Base
from adinsight.db.models.types import JSONType


class ProcessedRecord(Base):
    __tablename__ = "processed_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(
        String(64), ForeignKey("analysis_jobs.id", ondelete="CASCADE"), nullable=False
    )
    row_number = Column(Integer, nullable=False)
    keyword = Column(Text, nullable=False)
    row_data = Column(JSONType, nullable=False)
    metrics = Column(JSONType, nullable=False)

    __table_args__ = (Index("ix_processed_records_job_row", job_id, row_number),)
