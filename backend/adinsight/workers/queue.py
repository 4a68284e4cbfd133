"""Work queue interface with Celery and in-process implementations."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Callable

from adinsight.core.exceptions import JobAlreadyRunningError

if TYPE_CHECKING:
    from adinsight.services.job_manager import JobManager, RetryPolicy

logger = logging.getLogger(__name__)

ANALYSIS_QUEUE = "analysis"


class JobQueue(ABC):
    """Abstract interface for dispatching job attempts."""

    @abstractmethod
    def enqueue(self, job_id: str, retry_policy: "RetryPolicy") -> None:
        """Schedule the first attempt of a job."""
        ...

    @abstractmethod
    def cancel(self, job_id: str) -> None:
        """Prevent attempts that have not started yet."""
        ...


class CeleryJobQueue(JobQueue):
    """Durable at-least-once queue backed by Celery over Redis."""

    def enqueue(self, job_id: str, retry_policy: "RetryPolicy") -> None:
        from adinsight.workers.tasks.analyze_csv import analyze_csv_task

        analyze_csv_task.apply_async(
            args=[job_id],
            kwargs={"retry_policy": retry_policy.as_dict()},
            task_id=job_id,
            queue=ANALYSIS_QUEUE,
        )
        logger.info(f"Dispatched job {job_id} to Celery queue '{ANALYSIS_QUEUE}'")

    def cancel(self, job_id: str) -> None:
        from adinsight.workers.celery_app import celery_app

        # Retries reuse the task id, so revoking it covers pending retries too
        celery_app.control.revoke(job_id)
        logger.info(f"Revoked Celery task for job {job_id}")


class InProcessJobQueue(JobQueue):
    """Bounded thread pool with the same retry and backoff rules.

    Used for local development (``QUEUE_BACKEND=inprocess``) and tests.
    Cancellation is cooperative: it stops future attempts only.
    """

    def __init__(self, max_workers: int = 4, sleep: Callable[[float], None] = time.sleep) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="analysis")
        self._sleep = sleep
        self._manager: "JobManager | None" = None
        self._futures: dict[str, Future] = {}
        self._cancelled: set[str] = set()
        self._lock = threading.Lock()

    def bind(self, manager: "JobManager") -> None:
        self._manager = manager

    def enqueue(self, job_id: str, retry_policy: "RetryPolicy") -> None:
        if self._manager is None:
            raise RuntimeError("InProcessJobQueue is not bound to a JobManager")
        with self._lock:
            self._cancelled.discard(job_id)
            self._futures[job_id] = self._executor.submit(self._run, job_id, retry_policy)

    def cancel(self, job_id: str) -> None:
        with self._lock:
            future = self._futures.get(job_id)
            if future is None:
                return
            if future.cancel():
                # Never started, so _run will not clean up after it
                del self._futures[job_id]
            else:
                self._cancelled.add(job_id)

    def is_cancelled(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._cancelled

    def wait(self, job_id: str, timeout: float | None = None) -> None:
        """Block until every attempt of ``job_id`` has finished (tests, shutdown)."""
        with self._lock:
            future = self._futures.get(job_id)
        if future is not None and not future.cancelled():
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _forget(self, job_id: str) -> None:
        with self._lock:
            self._futures.pop(job_id, None)
            self._cancelled.discard(job_id)

    def _run(self, job_id: str, retry_policy: "RetryPolicy") -> None:
        try:
            self._attempt_until_done(job_id, retry_policy)
        finally:
            self._forget(job_id)

    def _attempt_until_done(self, job_id: str, retry_policy: "RetryPolicy") -> None:
        manager = self._manager
        attempt = 1
        while not self.is_cancelled(job_id):
            try:
                manager.execute(job_id, attempt)
                return
            except JobAlreadyRunningError:
                logger.info(f"Job {job_id} is locked by another worker; skipping duplicate run")
                return
            except Exception as exc:
                if not manager.record_failure(job_id, exc, attempt, retry_policy):
                    return
                self._sleep(retry_policy.delay_for(attempt))
                attempt += 1
        logger.info(f"Job {job_id} was cancelled before attempt {attempt}")
