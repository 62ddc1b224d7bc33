"""Celery configuration for background corpus sync."""
from celery import Celery
from celery.signals import setup_logging

from personal_agent.config import CELERY_BROKER_URL, CELERY_RESULT_BACKEND, configure_logging

# Create Celery instance
celery = Celery(
    'personal_agent',
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=['personal_agent.services.sync']  # Include task modules
)

# Sync jobs run on their own queue
celery.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,
    result_expires=24 * 3600,  # Sync reports are kept for a day
    task_track_started=True,
    task_time_limit=60 * 60,  # 1 hour hard limit
    task_soft_time_limit=55 * 60,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        'sync_store': {'queue': 'sync'},
        'sync_memory_directory': {'queue': 'sync'},
    },
    task_default_queue='default',
)

# Only StorageUnavailable is retried by the tasks themselves
celery.conf.task_default_retry_delay = 60
celery.conf.task_max_retries = 3


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging()


if __name__ == '__main__':
    celery.start()
