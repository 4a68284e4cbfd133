"""Job manager dependency."""

from adinsight.services.factory import get_job_manager
from adinsight.services.job_manager import JobManager


def get_manager() -> JobManager:
    """FastAPI dependency returning the process-wide job manager."""
    return get_job_manager()
