"""
Job lifecycle: submission, execution, retries, results and removal.

The manager is constructed with its collaborators (store, queue, pipeline,
cache, locks, storage) so workers, the API and tests can each wire their
own. Status is always read from the store; the cache only serves results
of jobs the store reports as completed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO

from adinsight.core.exceptions import (
    DuplicateJobError,
    JobNotFoundError,
    JobNotReadyError,
    SourceReadError,
    UploadValidationError,
)
from adinsight.db.models import AnalysisJob, JobStatus
from adinsight.db.models.analysis_job import TERMINAL_STATUSES
from adinsight.services.csv_ingest import DEFAULT_BATCH_SIZE, ingest_csv, read_header
from adinsight.services.enrichment.pipeline import EnrichmentPipeline
from adinsight.services.job_store import JobStore
from adinsight.services.metrics_engine import DEFAULT_TOP_N
from adinsight.services.result_cache import ResultCache
from adinsight.storage.local_storage import LocalUploadStorage
from adinsight.utils.csv_validator import ValidationError, validate_headers

if TYPE_CHECKING:
    from adinsight.workers.queue import JobQueue

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = (".csv",)
DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024


@dataclass(frozen=True)
class RetryPolicy:
    """Total attempts and exponential backoff between them."""

    max_attempts: int = 3
    base_delay: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed ``attempt`` (1-based) before the next one."""
        return self.base_delay * (2 ** (attempt - 1))

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RetryPolicy":
        if not data:
            return cls()
        return cls(
            max_attempts=int(data.get("max_attempts", cls.max_attempts)),
            base_delay=float(data.get("base_delay", cls.base_delay)),
        )


class ProgressReporter:
    """Monotonic progress writes for one execution attempt."""

    def __init__(self, store: JobStore, job_id: str) -> None:
        self.store = store
        self.job_id = job_id
        self.current = 0
        self._lock = threading.Lock()

    def report(self, progress: int, message: str | None = None) -> None:
        progress = max(0, min(100, int(progress)))
        with self._lock:
            if progress < self.current:
                logger.debug(
                    f"Ignoring progress regression for job {self.job_id}: {progress} < {self.current}"
                )
                return
            self.current = progress
            self.store.update_progress(self.job_id, progress, message)
        logger.info(f"Job {self.job_id} progress {progress}%: {message or ''}")


class JobManager:
    def __init__(
        self,
        store: JobStore,
        queue: "JobQueue",
        pipeline: EnrichmentPipeline,
        cache: ResultCache,
        locks: Any,
        storage: LocalUploadStorage,
        retry_policy: RetryPolicy | None = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        batch_size: int = DEFAULT_BATCH_SIZE,
        top_n: int = DEFAULT_TOP_N,
    ) -> None:
        self.store = store
        self.queue = queue
        self.pipeline = pipeline
        self.cache = cache
        self.locks = locks
        self.storage = storage
        self.retry_policy = retry_policy or RetryPolicy()
        self.max_upload_bytes = max_upload_bytes
        self.batch_size = batch_size
        self.top_n = top_n

    # Submission

    def submit(
        self,
        job_id: str,
        source: BinaryIO,
        filename: str | None,
        size: int | None = None,
    ) -> AnalysisJob:
        """Validate and stage an upload, persist a pending job and enqueue it."""
        job_id = (job_id or "").strip()
        if not job_id:
            raise UploadValidationError("Job id is required", field="job_id")
        if not filename or not filename.lower().endswith(ALLOWED_EXTENSIONS):
            raise UploadValidationError("Only CSV files are allowed", field="file")
        if size is not None and size > self.max_upload_bytes:
            raise UploadValidationError(
                f"File exceeds maximum size of {self.max_upload_bytes} bytes",
                field="file",
                details={"size": size, "max_bytes": self.max_upload_bytes},
            )
        if self.store.get_job(job_id) is not None:
            raise DuplicateJobError(job_id)

        path, written = self.storage.save(job_id, source, filename)
        try:
            self._validate_staged(path, written)
            job = self.store.create_job(job_id, filename, str(path), written)
        except Exception:
            self.storage.delete(path)
            raise

        try:
            self.queue.enqueue(job_id, self.retry_policy)
        except Exception as e:
            logger.error(f"Failed to enqueue job {job_id}: {e}", exc_info=True)
            self.store.mark_failed(job_id, f"Failed to enqueue job: {e}")
            raise

        logger.info(f"Queued analysis job {job_id} for {filename} ({written} bytes)")
        return job

    def _validate_staged(self, path: Path, written: int) -> None:
        if written == 0:
            raise UploadValidationError("Uploaded file is empty", field="file")
        if written > self.max_upload_bytes:
            raise UploadValidationError(
                f"File exceeds maximum size of {self.max_upload_bytes} bytes", field="file"
            )
        try:
            validate_headers(read_header(path))
        except (ValidationError, SourceReadError) as e:
            raise UploadValidationError(f"Invalid CSV: {e}", field="file") from e

    # Execution

    def execute(self, job_id: str, attempt: int = 1) -> None:
        """Run one attempt of a job while holding its execution lock.

        Raises whatever the attempt raised; the caller decides about retries
        through ``record_failure``.
        """
        with self.locks.hold(job_id):
            job = self.store.get_job(job_id)
            if job is None:
                logger.info(f"Job {job_id} no longer exists; skipping")
                return
            if JobStatus(job.status) in TERMINAL_STATUSES:
                logger.info(f"Job {job_id} is already {job.status}; skipping")
                return
            self._run_attempt(job, attempt)

    def _run_attempt(self, job: AnalysisJob, attempt: int) -> None:
        job_id = job.id
        logger.info(f"Starting analysis for job {job_id} (attempt {attempt}), file: {job.filename}")
        started = datetime.now(timezone.utc)

        self.store.mark_processing(job_id, attempt)
        reporter = ProgressReporter(self.store, job_id)
        reporter.report(10, "Processing CSV file")

        # Retries start over; earlier partial rows are replaced
        self.store.clear_records(job_id)
        ingest = ingest_csv(
            Path(job.file_path),
            on_batch=partial(self.store.insert_records, job_id),
            batch_size=self.batch_size,
            top_n=self.top_n,
        )
        self.store.save_analysis_result(job_id, ingest.stats, ingest.analysis)

        reporter.report(50, "Running enrichment pipeline")
        output = self.pipeline.run(self.store.iter_records(job_id))

        reporter.report(80, "Storing enrichment results")
        self.store.save_enrichment(
            job_id, output.insights, output.tasks, output.ai_generated, output.error
        )

        reporter.report(90, "Storing historical snapshot")
        self.store.save_snapshot(
            job_id,
            ingest.analysis["metrics"],
            {"start": started.isoformat(), "end": datetime.now(timezone.utc).isoformat()},
        )

        message = "Analysis complete"
        if output.error:
            message = "Analysis complete without enrichment"
        self.store.mark_completed(job_id, message=message, error=output.error)
        self.cache.invalidate(job_id)
        self.storage.delete(job.file_path)
        logger.info(
            f"Completed analysis for job {job_id}: {ingest.stats.valid_rows}/"
            f"{ingest.stats.total_rows} rows kept, aiGenerated={output.ai_generated}"
        )

    def record_failure(
        self,
        job_id: str,
        exc: BaseException,
        attempt: int,
        policy: RetryPolicy | None = None,
    ) -> bool:
        """Record a failed attempt; returns True when another attempt should run."""
        policy = policy or self.retry_policy
        error = str(exc) or type(exc).__name__
        job = self.store.get_job(job_id)
        if job is None or JobStatus(job.status) in TERMINAL_STATUSES:
            logger.warning(f"Attempt {attempt} of job {job_id} failed after the job was removed or finished: {error}")
            return False

        if policy.should_retry(attempt):
            delay = policy.delay_for(attempt)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} of job {job_id} failed: {error}; "
                f"retrying in {delay:g}s"
            )
            self.store.note_retry(job_id, error, delay)
            return True

        logger.error(f"Job {job_id} failed after {attempt} attempt(s): {error}")
        self.store.mark_failed(job_id, error)
        self.cache.invalidate(job_id)
        return False

    # Queries

    def get_status(self, job_id: str) -> AnalysisJob:
        return self.store.require_job(job_id)

    def list_jobs(
        self, page: int = 1, page_size: int = 20, status: str | None = None
    ) -> tuple[list[AnalysisJob], int]:
        offset = (max(page, 1) - 1) * page_size
        return self.store.list_jobs(limit=page_size, offset=offset, status=status)

    def stats(self) -> dict[str, Any]:
        return self.store.job_stats()

    def get_result(self, job_id: str) -> dict[str, Any]:
        """Return the full analysis of a completed job."""
        job = self.store.require_job(job_id)
        if job.status != JobStatus.COMPLETED.value:
            self.cache.invalidate(job_id)
            raise JobNotReadyError(job_id, job.status, job.progress or 0, job.error_message)

        cached = self.cache.get(job_id)
        if cached is not None:
            logger.debug(f"Serving cached analysis for job {job_id}")
            return cached

        result = self._build_result(job)
        self.cache.set(job_id, result)
        return result

    def _build_result(self, job: AnalysisJob) -> dict[str, Any]:
        analysis, enrichment, tasks = self.store.get_result_bundle(job.id)
        if analysis is None:
            raise JobNotReadyError(job.id, job.status, job.progress or 0, "Analysis results not found")

        total = analysis.total_rows or 0
        processed = analysis.processed_rows or 0
        success_rate = round(processed / total * 100, 2) if total else 0.0
        return {
            "jobId": job.id,
            "filename": job.filename,
            "status": job.status,
            "completedAt": job.completed_at.isoformat() if job.completed_at else None,
            "analysis": {
                "summary": {
                    "totalRows": total,
                    "processedRows": processed,
                    "discardedRows": analysis.discarded_rows or 0,
                    "discardReasons": analysis.discard_reasons or {},
                    "successRate": success_rate,
                    "metrics": analysis.metrics_summary or {},
                },
                "performance": {
                    "topPerformers": analysis.top_performers or {},
                    "bottomPerformers": analysis.bottom_performers or {},
                },
                "trends": analysis.trends or {},
                "patterns": analysis.patterns or [],
                "anomalies": analysis.anomalies or [],
                "insights": list(enrichment.insights) if enrichment else [],
                "optimizationTasks": [
                    {
                        "id": task.id,
                        "type": task.task_type,
                        "priority": task.priority,
                        "description": task.description,
                        "estimatedImpact": task.estimated_impact,
                        "difficulty": task.difficulty,
                        "actionItems": list(task.action_items or []),
                        "status": task.status,
                    }
                    for task in tasks
                ],
                "aiGenerated": bool(enrichment.ai_generated) if enrichment else False,
                "error": (enrichment.error if enrichment else None) or job.error_message,
            },
        }

    # Mutation

    def remove(self, job_id: str) -> None:
        """Cancel future attempts and delete the job with its results.

        An attempt already running is not interrupted; its later writes fail
        against the missing job and are discarded.
        """
        job = self.store.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if JobStatus(job.status) not in TERMINAL_STATUSES:
            self.queue.cancel(job_id)
        self.store.delete_job(job_id)
        self.cache.invalidate(job_id)
        self.storage.delete(job.file_path)
        logger.info(f"Removed job {job_id} (was {job.status})")

    def regenerate_enrichment(self, job_id: str) -> dict[str, Any]:
        """Re-run enrichment over the stored records of a completed job."""
        job = self.store.require_job(job_id)
        if job.status != JobStatus.COMPLETED.value:
            raise JobNotReadyError(job_id, job.status, job.progress or 0, job.error_message)

        with self.locks.hold(job_id):
            output = self.pipeline.run(self.store.iter_records(job_id))
            self.store.save_enrichment(
                job_id, output.insights, output.tasks, output.ai_generated, output.error
            )
        self.cache.invalidate(job_id)
        logger.info(f"Regenerated enrichment for job {job_id} ({len(output.tasks)} tasks)")
        return output.to_dict()

    def cleanup_old_jobs(self, older_than_days: int) -> int:
        removed = 0
        for job_id in self.store.expired_job_ids(older_than_days):
            try:
                self.remove(job_id)
                removed += 1
            except JobNotFoundError:
                continue
        logger.info(f"Cleanup removed {removed} job(s) older than {older_than_days} days")
        return removed
