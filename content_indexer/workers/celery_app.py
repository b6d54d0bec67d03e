"""
Celery application instance and configuration.

Celery only drives the indexing worker: beat triggers the periodic tasks,
the job state itself lives in the index_jobs table. Pausing indexing is
done by stopping beat; queued jobs stay in the table.
"""

from datetime import timedelta

from celery import Celery
from celery.schedules import crontab

from content_indexer.core.config import settings

# Create Celery application
celery_app = Celery(
    "content_indexer",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    result_expires=3600,  # 1 hour
    # One batch at a time per worker process
    worker_prefetch_multiplier=1,
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'process-index-jobs': {
        'task': 'indexing.process_job_batch',
        'schedule': timedelta(seconds=settings.QUEUE_POLL_INTERVAL_SECONDS),
        'options': {'queue': 'indexing'},
    },
    'expire-stale-index-jobs': {
        'task': 'indexing.expire_stale_jobs',
        'schedule': crontab(minute='*/5'),  # Every 5 minutes
        'options': {'queue': 'indexing'},
    },
    'purge-archived-index-jobs': {
        'task': 'indexing.purge_archived_jobs',
        'schedule': crontab(minute='0'),  # Hourly
        'options': {'queue': 'indexing'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'indexing.*': {'queue': 'indexing'},
}

# Auto-discover tasks from content_indexer.tasks
celery_app.autodiscover_tasks(['content_indexer.tasks'])
