"""Celery application factory for async processing."""

import ssl

from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging

from adinsight.core.config import get_settings
from adinsight.core.logging import configure_logging

settings = get_settings()

broker_url = settings.broker_url
backend_url = settings.result_backend_url

# Convert redis:// to rediss:// for Upstash domains to enable SSL
is_ssl = False
if ".upstash.io" in broker_url and broker_url.startswith("redis://"):
    broker_url = broker_url.replace("redis://", "rediss://", 1)
if ".upstash.io" in backend_url and backend_url.startswith("redis://"):
    backend_url = backend_url.replace("redis://", "rediss://", 1)
if broker_url.startswith("rediss://") or backend_url.startswith("rediss://"):
    is_ssl = True

# The Redis result backend reads SSL options from the URL during initialization
if is_ssl:
    ssl_param = "ssl_cert_reqs=none"
    if "ssl_cert_reqs" not in broker_url:
        separator = "&" if "?" in broker_url else "?"
        broker_url = f"{broker_url}{separator}{ssl_param}"
    if "ssl_cert_reqs" not in backend_url:
        separator = "&" if "?" in backend_url else "?"
        backend_url = f"{backend_url}{separator}{ssl_param}"

celery_app = Celery(
    "ad_insight",
    broker=broker_url,
    backend=backend_url,
)


@setup_logging.connect
def _configure_worker_logging(**_kwargs) -> None:
    configure_logging(settings.log_level)


celery_config = {
    "task_serializer": "json",
    "accept_content": ["json"],
    "result_serializer": "json",
    "timezone": "UTC",
    "enable_utc": True,
    "task_acks_late": True,  # Acknowledge after task completion
    "task_reject_on_worker_lost": True,  # Re-queue if worker dies
    "worker_prefetch_multiplier": 1,  # Fair task distribution
    "worker_concurrency": settings.worker_concurrency,
    "task_time_limit": 3600,  # 1 hour hard limit
    "task_soft_time_limit": 3300,  # 55 min soft limit
    "result_expires": 3600,
    "broker_connection_retry_on_startup": True,
    "worker_hijack_root_logger": False,
    "result_backend_always_retry": True,
    "result_backend_max_retries": 3,
    "task_routes": {
        "adinsight.workers.tasks.analyze_csv": {"queue": "analysis"},
        "adinsight.workers.tasks.cleanup_old_jobs": {"queue": "maintenance"},
    },
    "task_default_queue": "analysis",
    "beat_schedule": {
        "cleanup-old-jobs": {
            "task": "adinsight.workers.tasks.cleanup_old_jobs",
            "schedule": crontab(hour=3, minute=0),
        },
    },
}

if is_ssl:
    ssl_dict = {"ssl_cert_reqs": ssl.CERT_NONE}
    celery_config["broker_use_ssl"] = ssl_dict
    celery_config["redis_backend_use_ssl"] = ssl_dict
    celery_config["broker_transport_options"] = ssl_dict.copy()
    celery_config["result_backend_transport_options"] = ssl_dict.copy()

celery_app.conf.update(celery_config)

# Explicitly import tasks to ensure they're registered with celery_app
from adinsight.workers.tasks import analyze_csv, cleanup  # noqa: E402,F401
