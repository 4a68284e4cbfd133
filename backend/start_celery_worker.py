#!/usr/bin/env python3
"""Start the analysis worker with suppressed security warnings for containerized environments."""

import sys
import warnings

# Suppress the superuser privilege warning
warnings.filterwarnings('ignore', category=UserWarning, message='.*superuser privileges.*')
warnings.filterwarnings('ignore', category=RuntimeWarning, message='.*superuser privileges.*')

from adinsight.core.config import get_settings  # noqa: E402
from adinsight.workers.celery_app import celery_app  # noqa: E402

if __name__ == '__main__':
    settings = get_settings()
    celery_app.worker_main(
        argv=[
            'worker',
            '--loglevel=info',
            '--queues=analysis,maintenance',
            f'--concurrency={settings.worker_concurrency}',
            '--without-mingle',
            '--without-gossip',
        ] + sys.argv[1:]
    )
