"""Wire the job manager and its collaborators from settings."""

from __future__ import annotations

import logging
from functools import lru_cache, partial

from adinsight.core.config import Settings, get_settings
from adinsight.services.enrichment.generation import build_generator
from adinsight.services.enrichment.pipeline import EnrichmentPipeline
from adinsight.services.job_locks import LocalJobLocks, RedisJobLocks
from adinsight.services.job_manager import JobManager, RetryPolicy
from adinsight.services.job_store import JobStore
from adinsight.services.result_cache import ResultCache
from adinsight.storage.local_storage import LocalUploadStorage
from adinsight.utils.redis_client import create_redis_client
from adinsight.workers.queue import CeleryJobQueue, InProcessJobQueue, JobQueue

logger = logging.getLogger(__name__)


def build_job_manager(settings: Settings, queue: JobQueue | None = None) -> JobManager:
    """Assemble a manager for the configured queue backend.

    Celery mode shares locks through Redis; in-process mode keeps them in
    memory and binds the thread pool to the manager.
    """
    from adinsight.db.session import SessionLocal

    redis_client = create_redis_client(settings.redis_url, decode_responses=True)
    if queue is None:
        if settings.queue_backend == "inprocess":
            queue = InProcessJobQueue(max_workers=settings.worker_concurrency)
        else:
            queue = CeleryJobQueue()

    if isinstance(queue, InProcessJobQueue):
        locks = LocalJobLocks()
    else:
        locks = RedisJobLocks(redis_client, ttl_seconds=settings.job_lock_ttl_seconds)

    manager = JobManager(
        store=JobStore(SessionLocal),
        queue=queue,
        pipeline=EnrichmentPipeline(partial(build_generator, settings)),
        cache=ResultCache(redis_client, ttl_seconds=settings.result_cache_ttl_seconds),
        locks=locks,
        storage=LocalUploadStorage(settings.uploads_dir, max_bytes=settings.max_upload_bytes),
        retry_policy=RetryPolicy(
            max_attempts=settings.job_max_attempts,
            base_delay=settings.job_retry_backoff_seconds,
        ),
        max_upload_bytes=settings.max_upload_bytes,
        batch_size=settings.record_batch_size,
    )
    if isinstance(queue, InProcessJobQueue):
        queue.bind(manager)
    logger.info(f"Job manager ready (queue backend: {type(queue).__name__})")
    return manager


@lru_cache
def get_job_manager() -> JobManager:
    """Process-wide manager for the API and Celery workers."""
    return build_job_manager(get_settings())
