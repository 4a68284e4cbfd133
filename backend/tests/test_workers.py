import io
from unittest.mock import MagicMock

import pytest
from celery.exceptions import Retry
from redis.exceptions import LockError, RedisError

from adinsight.core.exceptions import JobAlreadyRunningError
from adinsight.db.models import JobStatus
from adinsight.services.job_locks import LocalJobLocks, RedisJobLocks
from adinsight.services.job_manager import RetryPolicy
from adinsight.services.result_cache import ResultCache
from adinsight.workers import queue as queue_module
from adinsight.workers.celery_app import celery_app
from adinsight.workers.tasks import analyze_csv as analyze_module

from conftest import SAMPLE_CSV, RecordingQueue

TASK_NAME = "adinsight.workers.tasks.analyze_csv"


class BrokenPipeline:
    def __init__(self):
        self.calls = 0

    def run(self, records):
        self.calls += 1
        raise RuntimeError("analyzer exploded")


@pytest.fixture
def task():
    return celery_app.tasks[TASK_NAME]


@pytest.fixture
def retries(task, monkeypatch):
    """Record retry requests instead of re-publishing the task."""
    calls = []

    def fake_retry(**kwargs):
        calls.append(kwargs)
        return Retry()

    monkeypatch.setattr(task, "retry", fake_retry)
    return calls


@pytest.fixture
def wire_manager(monkeypatch, make_manager):
    def _wire(**kwargs):
        manager = make_manager(queue=RecordingQueue(), **kwargs)
        manager.submit("job-1", io.BytesIO(SAMPLE_CSV.encode("utf-8")), "ads.csv")
        monkeypatch.setattr(analyze_module, "get_job_manager", lambda: manager)
        return manager

    return _wire


class TestAnalyzeCsvTask:
    def test_locked_job_is_rescheduled_not_dropped(self, task, retries, wire_manager, store):
        manager = wire_manager()

        with manager.locks.hold("job-1"):
            result = task.apply(args=["job-1"])

        assert result.state == "RETRY"
        assert len(retries) == 1
        assert retries[0]["countdown"] == analyze_module.LOCK_WAIT_COUNTDOWN
        assert retries[0]["kwargs"]["lock_waits"] == 1
        assert "max_retries" not in retries[0]
        job = store.get_job("job-1")
        assert job.status == JobStatus.PENDING.value
        assert job.attempts == 0

    def test_lock_waits_do_not_count_as_attempts(self, task, retries, wire_manager, store):
        wire_manager()

        result = task.apply(args=["job-1"], kwargs={"lock_waits": 2}, retries=2)

        assert result.state == "SUCCESS"
        assert result.result == {"job_id": "job-1", "attempt": 1}
        assert retries == []
        job = store.get_job("job-1")
        assert job.status == JobStatus.COMPLETED.value
        assert job.attempts == 1

    def test_failed_attempt_is_retried_with_backoff(self, task, retries, wire_manager, store):
        wire_manager(pipeline=BrokenPipeline())

        result = task.apply(args=["job-1"], kwargs={"retry_policy": RetryPolicy().as_dict()})

        assert result.state == "RETRY"
        assert retries[0]["countdown"] == 2.0
        assert retries[0]["max_retries"] == 2
        job = store.get_job("job-1")
        assert job.status == JobStatus.PROCESSING.value
        assert job.error_message == "analyzer exploded"

    def test_second_attempt_backs_off_longer(self, task, retries, wire_manager):
        wire_manager(pipeline=BrokenPipeline())

        task.apply(args=["job-1"], retries=1)

        assert retries[0]["countdown"] == 4.0

    def test_retry_limit_accounts_for_lock_waits(self, task, retries, wire_manager):
        wire_manager(pipeline=BrokenPipeline())

        task.apply(args=["job-1"], kwargs={"lock_waits": 1}, retries=1)

        assert retries[0]["countdown"] == 2.0
        assert retries[0]["max_retries"] == 3

    def test_last_attempt_fails_the_job(self, task, retries, wire_manager, store):
        wire_manager(pipeline=BrokenPipeline())

        result = task.apply(args=["job-1"], retries=2)

        assert result.state == "FAILURE"
        assert retries == []
        job = store.get_job("job-1")
        assert job.status == JobStatus.FAILED.value
        assert job.attempts == 3
        assert job.error_message == "analyzer exploded"

    def test_removed_job_is_a_no_op(self, task, retries, wire_manager):
        manager = wire_manager()
        manager.remove("job-1")

        result = task.apply(args=["job-1"])

        assert result.state == "SUCCESS"
        assert retries == []


class TestCeleryJobQueue:
    def test_enqueue_uses_job_id_as_task_id(self, task, monkeypatch):
        sent = []
        monkeypatch.setattr(task, "apply_async", lambda **kwargs: sent.append(kwargs))

        queue_module.CeleryJobQueue().enqueue("job-1", RetryPolicy(max_attempts=5, base_delay=1.0))

        assert sent == [
            {
                "args": ["job-1"],
                "kwargs": {"retry_policy": {"max_attempts": 5, "base_delay": 1.0}},
                "task_id": "job-1",
                "queue": "analysis",
            }
        ]

    def test_cancel_revokes_the_task(self, monkeypatch):
        revoke = MagicMock()
        monkeypatch.setattr(celery_app.control, "revoke", revoke)

        queue_module.CeleryJobQueue().cancel("job-1")

        revoke.assert_called_once_with("job-1")


class TestRedisJobLocks:
    def test_acquires_and_releases(self):
        redis_client = MagicMock()
        redis_client.lock.return_value.acquire.return_value = True
        locks = RedisJobLocks(redis_client, ttl_seconds=60)

        with locks.hold("job-1"):
            pass

        redis_client.lock.assert_called_once_with("jobs:lock:job-1", timeout=60, blocking=False)
        redis_client.lock.return_value.release.assert_called_once()

    def test_held_lock_raises(self):
        redis_client = MagicMock()
        redis_client.lock.return_value.acquire.return_value = False

        with pytest.raises(JobAlreadyRunningError):
            with RedisJobLocks(redis_client).hold("job-1"):
                pytest.fail("body must not run while the lock is held")

    def test_expired_lock_release_is_tolerated(self):
        redis_client = MagicMock()
        redis_client.lock.return_value.acquire.return_value = True
        redis_client.lock.return_value.release.side_effect = LockError("expired")

        with RedisJobLocks(redis_client).hold("job-1"):
            pass


class TestLocalJobLocks:
    def test_released_ids_are_forgotten(self):
        locks = LocalJobLocks()

        with locks.hold("job-1"):
            with pytest.raises(JobAlreadyRunningError):
                with locks.hold("job-1"):
                    pass

        assert locks._held == set()
        with locks.hold("job-1"):
            pass


class TestResultCache:
    def test_round_trip(self):
        redis_client = MagicMock()
        cache = ResultCache(redis_client, ttl_seconds=120)

        cache.set("job-1", {"jobId": "job-1"})

        key, raw = redis_client.set.call_args.args
        assert key == "analysis:job-1"
        assert redis_client.set.call_args.kwargs == {"ex": 120}
        redis_client.get.return_value = raw
        assert cache.get("job-1") == {"jobId": "job-1"}

    def test_unreadable_entry_is_a_miss(self):
        redis_client = MagicMock()
        redis_client.get.return_value = "{not json"

        assert ResultCache(redis_client).get("job-1") is None

    def test_redis_outage_degrades_to_misses(self):
        redis_client = MagicMock()
        redis_client.get.side_effect = RedisError("connection refused")
        redis_client.set.side_effect = RedisError("connection refused")
        redis_client.delete.side_effect = RedisError("connection refused")
        cache = ResultCache(redis_client)

        assert cache.get("job-1") is None
        cache.set("job-1", {"jobId": "job-1"})
        cache.invalidate("job-1")
