"""
Celery tasks for background processing.
"""

from content_indexer.tasks.indexing_tasks import (
    enqueue_pending_content,
    expire_stale_jobs,
    process_job_batch,
    purge_archived_jobs,
)

__all__ = [
    "process_job_batch",
    "expire_stale_jobs",
    "purge_archived_jobs",
    "enqueue_pending_content",
]
