"""
Shared test fixtures: SQLite-backed store, fake cache/queue/generator,
and a manager factory wiring them together.
"""

import os
import tempfile
from pathlib import Path

# Settings are read at import time by several modules
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(), "adinsight.db"))
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp())
os.environ.setdefault("QUEUE_BACKEND", "inprocess")

import pytest

from adinsight.db.session import build_engine, build_session_factory, init_db
from adinsight.services.enrichment.pipeline import EnrichmentPipeline
from adinsight.services.job_locks import LocalJobLocks
from adinsight.services.job_manager import JobManager, RetryPolicy
from adinsight.services.job_store import JobStore
from adinsight.storage.local_storage import LocalUploadStorage
from adinsight.workers.queue import InProcessJobQueue, JobQueue

HEADER = "keyword,impressions,clicks,cost,sales\n"

SAMPLE_CSV = (
    HEADER
    + "a,100,10,20,60\n"
    + "b,50,0,5,0\n"
    + "c,200,300,1,1\n"
)

INSIGHTS = ["CTR on keyword a is strong", "Keyword b has no clicks"]
TASKS = [
    {
        "type": "bid_adjustment",
        "priority": "high",
        "description": "Raise bids on keyword a",
        "impact": "high",
        "difficulty": "low",
        "action_items": ["Increase bid by 15%"],
    },
    {"recommendation": "Pause keyword b", "priority": "low"},
]


class FakeCache:
    """In-memory stand-in for ResultCache that records calls."""

    def __init__(self):
        self.data = {}
        self.hits = 0
        self.invalidated = []

    def get(self, job_id):
        value = self.data.get(job_id)
        if value is not None:
            self.hits += 1
        return value

    def set(self, job_id, result):
        self.data[job_id] = result

    def invalidate(self, job_id):
        self.invalidated.append(job_id)
        self.data.pop(job_id, None)


class ScriptedGenerator:
    """Generation capability returning canned output per prompt name.

    A value that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses=None):
        self.responses = responses if responses is not None else {
            "analysis": list(INSIGHTS),
            "optimization": list(TASKS),
        }
        self.calls = []

    def generate(self, prompt_name, payload):
        self.calls.append((prompt_name, payload))
        response = self.responses.get(prompt_name)
        if isinstance(response, BaseException):
            raise response
        return response


class RecordingQueue(JobQueue):
    """Queue that only records what it was asked to do."""

    def __init__(self, fail_with=None):
        self.enqueued = []
        self.cancelled = []
        self.fail_with = fail_with

    def enqueue(self, job_id, retry_policy):
        if self.fail_with is not None:
            raise self.fail_with
        self.enqueued.append((job_id, retry_policy))

    def cancel(self, job_id):
        self.cancelled.append(job_id)


def write_csv(path: Path, content: str = SAMPLE_CSV, encoding: str = "utf-8") -> Path:
    path.write_text(content, encoding=encoding)
    return path


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def storage(tmp_path):
    return LocalUploadStorage(tmp_path / "uploads", max_bytes=1024 * 1024)


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def inprocess_queue(sleeps):
    queue = InProcessJobQueue(max_workers=2, sleep=sleeps.append)
    yield queue
    queue.shutdown(wait=True)


@pytest.fixture
def make_manager(store, cache, storage, generator):
    """Build a JobManager; in-process queues are bound automatically."""

    def _make(queue=None, pipeline=None, retry_policy=None, **kwargs):
        queue = queue if queue is not None else RecordingQueue()
        manager = JobManager(
            store=kwargs.pop("job_store", store),
            queue=queue,
            pipeline=pipeline or EnrichmentPipeline(lambda: generator),
            cache=cache,
            locks=LocalJobLocks(),
            storage=storage,
            retry_policy=retry_policy or RetryPolicy(max_attempts=3, base_delay=2.0),
            **kwargs,
        )
        if isinstance(queue, InProcessJobQueue):
            queue.bind(manager)
        return manager

    return _make
