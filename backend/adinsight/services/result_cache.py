"""Redis fast path for completed analysis results."""

from __future__ import annotations

import json
import logging
from typing import Any

from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

CACHE_PREFIX = "analysis:"


def _key(job_id: str) -> str:
    return f"{CACHE_PREFIX}{job_id}"


class ResultCache:
    """JSON-serialized results keyed by job id with a TTL.

    The cache is never authoritative; Redis outages only cost a rebuild.
    """

    def __init__(self, redis_client: Redis, ttl_seconds: int = 3600) -> None:
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    def get(self, job_id: str) -> dict[str, Any] | None:
        try:
            raw = self.redis.get(_key(job_id))
        except RedisError as e:
            logger.warning(f"Result cache read failed for job {job_id}: {e}")
            return None
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unreadable cached result for job {job_id}")
            return None

    def set(self, job_id: str, result: dict[str, Any]) -> None:
        try:
            self.redis.set(_key(job_id), json.dumps(result, default=str), ex=self.ttl_seconds)
        except RedisError as e:
            logger.warning(f"Result cache write failed for job {job_id}: {e}")

    def invalidate(self, job_id: str) -> None:
        try:
            self.redis.delete(_key(job_id))
        except RedisError as e:
            logger.warning(f"Result cache invalidation failed for job {job_id}: {e}")
