"""Periodic removal of finished jobs past the retention window."""

from __future__ import annotations

from adinsight.core.config import get_settings
from adinsight.services.factory import get_job_manager
from adinsight.workers.celery_app import celery_app


@celery_app.task(name="adinsight.workers.tasks.cleanup_old_jobs")
def cleanup_old_jobs_task(older_than_days: int | None = None) -> dict:
    days = older_than_days or get_settings().job_retention_days
    removed = get_job_manager().cleanup_old_jobs(days)
    return {"removed": removed, "older_than_days": days}
