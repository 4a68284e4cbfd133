"""Celery task that runs one attempt of a CSV analysis job."""

from __future__ import annotations

import logging

from adinsight.core.exceptions import JobAlreadyRunningError
from adinsight.services.factory import get_job_manager
from adinsight.services.job_manager import RetryPolicy
from adinsight.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Seconds between checks while another worker holds the job lock
LOCK_WAIT_COUNTDOWN = 30


@celery_app.task(bind=True, name="adinsight.workers.tasks.analyze_csv", max_retries=None)
def analyze_csv_task(self, job_id: str, retry_policy: dict | None = None, lock_waits: int = 0):
    """Drive metrics and enrichment for ``job_id``; retries with backoff on failure.

    A delivery that finds the job locked is re-scheduled rather than
    dropped, so a lock left behind by a crashed worker only delays the job
    until it expires. Those waits are not counted as attempts.
    """
    policy = RetryPolicy.from_dict(retry_policy)
    attempt = self.request.retries - lock_waits + 1
    manager = get_job_manager()
    try:
        manager.execute(job_id, attempt)
    except JobAlreadyRunningError as exc:
        logger.info(
            f"Job {job_id} is locked by another worker; checking again in {LOCK_WAIT_COUNTDOWN}s"
        )
        raise self.retry(
            exc=exc,
            countdown=LOCK_WAIT_COUNTDOWN,
            kwargs={"retry_policy": policy.as_dict(), "lock_waits": lock_waits + 1},
        )
    except Exception as exc:
        if manager.record_failure(job_id, exc, attempt, policy):
            raise self.retry(
                exc=exc,
                countdown=policy.delay_for(attempt),
                max_retries=policy.max_attempts - 1 + lock_waits,
            )
        raise
    return {"job_id": job_id, "attempt": attempt}
