"""Persistence gateway for jobs, processed records and results."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from adinsight.core.exceptions import (
    DuplicateJobError,
    InvalidTransitionError,
    JobNotFoundError,
)
from adinsight.db.models import (
    AnalysisJob,
    AnalysisResult,
    EnrichmentResult,
    HistoricalSnapshot,
    JobStatus,
    OptimizationTask,
    ProcessedRecord,
)
from adinsight.db.models.analysis_job import TERMINAL_STATUSES, can_transition
from adinsight.db.models.types import utcnow

logger = logging.getLogger(__name__)

PRIORITY_RANK = {"high": 0, "medium": 1, "low": 2}

# Child tables in delete order
_CHILD_MODELS = (
    ProcessedRecord,
    AnalysisResult,
    EnrichmentResult,
    OptimizationTask,
    HistoricalSnapshot,
)


class JobStore:
    """All database access for the job lifecycle goes through here."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        session: Session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # Jobs

    def create_job(
        self, job_id: str, filename: str, file_path: str | None, file_size: int
    ) -> AnalysisJob:
        job = AnalysisJob(
            id=job_id,
            filename=filename,
            file_path=file_path,
            file_size=file_size,
            status=JobStatus.PENDING.value,
            progress=0,
            message="Queued for processing",
            attempts=0,
        )
        try:
            with self.session() as session:
                session.add(job)
        except IntegrityError as e:
            raise DuplicateJobError(job_id) from e
        return job

    def get_job(self, job_id: str) -> AnalysisJob | None:
        with self.session() as session:
            return session.get(AnalysisJob, job_id)

    def require_job(self, job_id: str) -> AnalysisJob:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(
        self, limit: int = 50, offset: int = 0, status: str | None = None
    ) -> tuple[list[AnalysisJob], int]:
        with self.session() as session:
            query = select(AnalysisJob)
            count_query = select(func.count()).select_from(AnalysisJob)
            if status:
                query = query.where(AnalysisJob.status == status)
                count_query = count_query.where(AnalysisJob.status == status)
            query = query.order_by(AnalysisJob.created_at.desc()).offset(offset).limit(limit)
            jobs = list(session.scalars(query).all())
            total = session.scalar(count_query) or 0
        return jobs, total

    def job_stats(self) -> dict[str, Any]:
        with self.session() as session:
            rows = session.execute(
                select(AnalysisJob.status, func.count()).group_by(AnalysisJob.status)
            ).all()
            finished = session.execute(
                select(AnalysisJob.started_at, AnalysisJob.completed_at).where(
                    AnalysisJob.status == JobStatus.COMPLETED.value,
                    AnalysisJob.started_at.is_not(None),
                    AnalysisJob.completed_at.is_not(None),
                )
            ).all()

        counts = {status.value: 0 for status in JobStatus}
        for status, count in rows:
            counts[status] = count
        durations = [
            (_aware(completed) - _aware(started)).total_seconds()
            for started, completed in finished
        ]
        return {
            "total": sum(counts.values()),
            "byStatus": counts,
            "averageProcessingSeconds": (
                sum(durations) / len(durations) if durations else None
            ),
        }

    def _transition(
        self, session: Session, job_id: str, target: JobStatus
    ) -> AnalysisJob:
        job = session.get(AnalysisJob, job_id, with_for_update=True)
        if job is None:
            raise JobNotFoundError(job_id)
        if not can_transition(job.status, target.value):
            raise InvalidTransitionError(job_id, job.status, target.value)
        job.status = target.value
        return job

    def mark_processing(self, job_id: str, attempt: int) -> AnalysisJob:
        """Enter (or re-enter, on retry) the processing state at progress 0."""
        with self.session() as session:
            job = self._transition(session, job_id, JobStatus.PROCESSING)
            job.progress = 0
            job.attempts = attempt
            job.message = "Starting analysis" if attempt == 1 else f"Retrying (attempt {attempt})"
            job.error_message = None
            if job.started_at is None:
                job.started_at = utcnow()
        return job

    def update_progress(self, job_id: str, progress: int, message: str | None = None) -> bool:
        """Persist progress if it does not move backwards; returns whether it was written."""
        values: dict[str, Any] = {"progress": progress, "updated_at": utcnow()}
        if message is not None:
            values["message"] = message
        with self.session() as session:
            result = session.execute(
                update(AnalysisJob)
                .where(
                    AnalysisJob.id == job_id,
                    AnalysisJob.status == JobStatus.PROCESSING.value,
                    AnalysisJob.progress <= progress,
                )
                .values(**values)
            )
        return result.rowcount > 0

    def mark_completed(
        self, job_id: str, message: str = "Analysis complete", error: str | None = None
    ) -> AnalysisJob:
        with self.session() as session:
            job = self._transition(session, job_id, JobStatus.COMPLETED)
            job.progress = 100
            job.message = message
            job.error_message = error
            job.completed_at = utcnow()
        return job

    def mark_failed(self, job_id: str, error: str) -> AnalysisJob:
        with self.session() as session:
            job = self._transition(session, job_id, JobStatus.FAILED)
            job.error_message = error
            job.message = "Analysis failed"
            job.completed_at = utcnow()
        return job

    def note_retry(self, job_id: str, error: str, delay: float) -> None:
        """Record the error of a failed attempt that will be retried."""
        with self.session() as session:
            session.execute(
                update(AnalysisJob)
                .where(
                    AnalysisJob.id == job_id,
                    AnalysisJob.status.not_in([s.value for s in TERMINAL_STATUSES]),
                )
                .values(
                    error_message=error,
                    message=f"Attempt failed, retrying in {delay:g}s",
                    updated_at=utcnow(),
                )
            )

    # Records

    def clear_records(self, job_id: str) -> None:
        with self.session() as session:
            session.execute(delete(ProcessedRecord).where(ProcessedRecord.job_id == job_id))

    def insert_records(self, job_id: str, records: list[dict[str, Any]]) -> None:
        if not records:
            return
        rows = [
            {
                "job_id": job_id,
                "row_number": record["row_number"],
                "keyword": record["keyword"],
                "row_data": record["row_data"],
                "metrics": record["metrics"],
            }
            for record in records
        ]
        with self.session() as session:
            session.execute(insert(ProcessedRecord), rows)

    def iter_records(self, job_id: str, chunk_size: int = 500) -> Iterator[dict[str, Any]]:
        """Yield stored ``row_data`` in source order without loading them all."""
        session: Session = self.session_factory()
        try:
            query = (
                select(ProcessedRecord.row_data)
                .where(ProcessedRecord.job_id == job_id)
                .order_by(ProcessedRecord.row_number)
                .execution_options(yield_per=chunk_size)
            )
            for row_data in session.scalars(query):
                yield row_data
        finally:
            session.close()

    def count_records(self, job_id: str) -> int:
        with self.session() as session:
            return session.scalar(
                select(func.count()).select_from(ProcessedRecord).where(
                    ProcessedRecord.job_id == job_id
                )
            ) or 0

    # Results

    def save_analysis_result(self, job_id: str, stats: Any, analysis: dict[str, Any]) -> None:
        with self.session() as session:
            session.execute(delete(AnalysisResult).where(AnalysisResult.job_id == job_id))
            session.add(
                AnalysisResult(
                    job_id=job_id,
                    total_rows=stats.total_rows,
                    processed_rows=stats.valid_rows,
                    discarded_rows=stats.discarded_rows,
                    discard_reasons=dict(stats.discard_reasons),
                    metrics_summary=analysis["metrics"],
                    top_performers=analysis["topPerformers"],
                    bottom_performers=analysis["bottomPerformers"],
                    trends=analysis["trends"],
                    patterns=analysis["patterns"],
                    anomalies=analysis["anomalies"],
                )
            )

    def save_enrichment(
        self,
        job_id: str,
        insights: list[Any],
        tasks: list[dict[str, Any]],
        ai_generated: bool,
        error: str | None = None,
    ) -> None:
        """Replace the enrichment result and its optimization tasks."""
        with self.session() as session:
            session.execute(delete(EnrichmentResult).where(EnrichmentResult.job_id == job_id))
            session.execute(delete(OptimizationTask).where(OptimizationTask.job_id == job_id))
            session.add(
                EnrichmentResult(
                    job_id=job_id,
                    insights=list(insights),
                    ai_generated=ai_generated,
                    error=error,
                )
            )
            for position, task in enumerate(tasks):
                session.add(
                    OptimizationTask(
                        job_id=job_id,
                        position=position,
                        task_type=task.get("type", "general"),
                        priority=task.get("priority", "medium"),
                        description=task.get("description", ""),
                        estimated_impact=task.get("impact", "medium"),
                        difficulty=task.get("difficulty", "medium"),
                        action_items=list(task.get("action_items") or []),
                        status="pending",
                    )
                )

    def save_snapshot(
        self, job_id: str, performance_metrics: dict[str, Any], date_range: dict[str, Any] | None = None
    ) -> None:
        with self.session() as session:
            session.execute(delete(HistoricalSnapshot).where(HistoricalSnapshot.job_id == job_id))
            session.add(
                HistoricalSnapshot(
                    job_id=job_id,
                    date_range=date_range,
                    performance_metrics=performance_metrics,
                )
            )

    def get_result_bundle(
        self, job_id: str
    ) -> tuple[AnalysisResult | None, EnrichmentResult | None, list[OptimizationTask]]:
        with self.session() as session:
            analysis = session.get(AnalysisResult, job_id)
            enrichment = session.get(EnrichmentResult, job_id)
            tasks = list(
                session.scalars(
                    select(OptimizationTask)
                    .where(OptimizationTask.job_id == job_id)
                    .order_by(OptimizationTask.position)
                ).all()
            )
        tasks.sort(key=lambda t: (PRIORITY_RANK.get(t.priority, len(PRIORITY_RANK)), t.position))
        return analysis, enrichment, tasks

    # Removal

    def delete_job(self, job_id: str) -> bool:
        """Delete a job and everything derived from it."""
        with self.session() as session:
            for model in _CHILD_MODELS:
                session.execute(delete(model).where(model.job_id == job_id))
            result = session.execute(delete(AnalysisJob).where(AnalysisJob.id == job_id))
        return result.rowcount > 0

    def expired_job_ids(self, older_than_days: int) -> list[str]:
        cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        with self.session() as session:
            return list(
                session.scalars(
                    select(AnalysisJob.id).where(
                        AnalysisJob.status.in_([s.value for s in TERMINAL_STATUSES]),
                        AnalysisJob.created_at < cutoff,
                    )
                ).all()
            )


def _aware(value: datetime) -> datetime:
    # SQLite returns naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
