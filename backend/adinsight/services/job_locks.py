"""Per-job execution locks so one worker runs a job at a time."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator

from redis import Redis
from redis.exceptions import LockError, RedisError

from adinsight.core.exceptions import JobAlreadyRunningError

logger = logging.getLogger(__name__)

LOCK_PREFIX = "jobs:lock:"


class RedisJobLocks:
    """Distributed locks shared by all Celery workers."""

    def __init__(self, redis_client: Redis, ttl_seconds: int = 3600) -> None:
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        lock = self.redis.lock(
            f"{LOCK_PREFIX}{job_id}", timeout=self.ttl_seconds, blocking=False
        )
        if not lock.acquire(blocking=False):
            raise JobAlreadyRunningError(job_id)
        try:
            yield
        finally:
            try:
                lock.release()
            except (LockError, RedisError) as e:
                # Expired or lost connection; the TTL cleans up
                logger.warning(f"Could not release lock for job {job_id}: {e}")


class LocalJobLocks:
    """Held job ids for the in-process queue; released ids are forgotten."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._held: set[str] = set()

    @contextmanager
    def hold(self, job_id: str) -> Iterator[None]:
        with self._guard:
            if job_id in self._held:
                raise JobAlreadyRunningError(job_id)
            self._held.add(job_id)
        try:
            yield
        finally:
            with self._guard:
                self._held.discard(job_id)
