"""
Celery tasks for the indexing job queue.

This module contains background tasks for:
- Working through queued indexing jobs in small concurrent batches
- Returning jobs of crashed workers to the queue
- Purging archived jobs
- Re-queueing pending content (recovery)

Retry scheduling is owned by the index_jobs table (see JobQueue): a
failed item is failed on its job, which schedules the next attempt.
Celery retries only cover infrastructure errors of the tasks themselves.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional

from celery import Task
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_indexer.core.config import settings
from content_indexer.db.session import create_engine, create_session_factory
from content_indexer.services.acquisition.acquirer import ContentAcquirer
from content_indexer.services.acquisition.browser import BrowserPool, RenderedPageStrategy
from content_indexer.services.indexing.orchestrator import IndexingOrchestrator, IndexingResult
from content_indexer.services.job_queue import ClaimedJob, JobQueue, JobQueueError
from content_indexer.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

JobHandler = Callable[[ClaimedJob], Awaitable[None]]


# ========================================
# Async Helper
# ========================================

def run_async(coro):
    """
    Run async coroutine, handling both event loop and no event loop scenarios.

    This helper allows tasks to work in both:
    - Production (Celery worker with no event loop) - uses asyncio.run()
    - Tests (pytest with existing event loop) - runs in thread pool
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No event loop running - we're in production Celery worker
        return asyncio.run(coro)
    else:
        # Event loop is running - run in a new thread to avoid
        # "loop already running" error
        import concurrent.futures

        with concurrent.futures.ThreadPoolExecutor() as executor:
            future = executor.submit(asyncio.run, coro)
            return future.result()


@asynccontextmanager
async def task_session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """
    Session factory on an engine owned by the current task.

    Every task runs in its own event loop; database connections must not
    outlive it, so the engine is disposed when the task finishes.
    """
    engine = create_engine()
    try:
        yield create_session_factory(engine)
    finally:
        await engine.dispose()


@asynccontextmanager
async def task_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    queue: JobQueue,
) -> AsyncIterator[IndexingOrchestrator]:
    """Orchestrator with a browser pool scoped to the current task."""
    pool = BrowserPool()
    acquirer = ContentAcquirer(
        rendered=RenderedPageStrategy(pool) if settings.INDEXING_BROWSER_FALLBACK_ENABLED else None,
    )
    try:
        yield IndexingOrchestrator(session_factory, acquirer=acquirer, queue=queue)
    finally:
        await pool.close()


# ========================================
# Worker
# ========================================

class JobFailedError(Exception):
    """Raised by a job handler when the item could not be indexed."""

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable

    @classmethod
    def from_result(cls, result: IndexingResult) -> "JobFailedError":
        retryable = result.error_kind.is_retryable if result.error_kind else True
        return cls(result.error or "Indexing failed", retryable=retryable)


@dataclass
class BatchReport:
    fetched: int = 0
    completed: list[int] = field(default_factory=list)
    # job id -> error message, one entry per failed job
    failed: dict[int, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'fetched': self.fetched,
            'completed': len(self.completed),
            'failed': {str(job_id): error for job_id, error in self.failed.items()},
        }


def index_job_handler(orchestrator: IndexingOrchestrator) -> JobHandler:
    """Job handler running the per-item pipeline; raises if the item failed."""

    async def handle(job: ClaimedJob) -> None:
        result = await orchestrator.index_single_item(job.content_item_id, job.url)
        if not result.success:
            raise JobFailedError.from_result(result)

    return handle


async def work_batch(
    queue: JobQueue,
    handler: JobHandler,
    batch_size: Optional[int] = None,
) -> BatchReport:
    """
    Fetch up to batch_size jobs and run them concurrently.

    Every job is settled individually: successful jobs are completed,
    each failed job is failed on its own (and retried by the queue), so
    one bad item never fails the whole batch.
    """
    jobs = await queue.fetch(batch_size or settings.QUEUE_BATCH_SIZE)
    report = BatchReport(fetched=len(jobs))
    if not jobs:
        return report

    outcomes = await asyncio.gather(*(handler(job) for job in jobs), return_exceptions=True)

    for job, outcome in zip(jobs, outcomes):
        try:
            if isinstance(outcome, BaseException):
                error = str(outcome) or type(outcome).__name__
                retryable = getattr(outcome, 'retryable', True)
                await queue.fail(job.id, error, retryable=retryable)
                report.failed[job.id] = error
            else:
                await queue.complete(job.id)
                report.completed.append(job.id)
        except (JobQueueError, SQLAlchemyError) as e:
            # Job stays active; expire_stale() hands it back later
            logger.error(f"Failed to settle job {job.id}: {e}")
            report.failed[job.id] = f"Failed to settle job: {e}"

    logger.info(
        f"Batch done: {len(report.completed)} completed, {len(report.failed)} failed "
        f"of {report.fetched} fetched"
    )
    return report


# ========================================
# Base Task Class
# ========================================

class IndexingTask(Task):
    """Base task class retrying on database errors only."""

    autoretry_for = (SQLAlchemyError,)
    retry_kwargs = {'max_retries': 3}
    retry_backoff = True
    retry_backoff_max = 600  # 10 minutes
    retry_jitter = True


# ========================================
# Tasks
# ========================================

@celery_app.task(base=IndexingTask, name='indexing.process_job_batch', bind=True)
def process_job_batch(self, batch_size: Optional[int] = None) -> dict:
    """
    Work one batch of queued indexing jobs.

    Scheduled by beat every QUEUE_POLL_INTERVAL_SECONDS. Does nothing
    while indexing is disabled; queued jobs wait in the table.

    Returns:
        {'fetched': int, 'completed': int, 'failed': {job_id: error}}
    """
    if not settings.ENABLE_CONTENT_INDEXING:
        logger.info("Content indexing disabled, leaving queued jobs untouched")
        return {'skipped': True, 'reason': 'indexing disabled'}

    async def _process():
        async with task_session_factory() as session_factory:
            queue = JobQueue(session_factory)
            async with task_orchestrator(session_factory, queue) as orchestrator:
                report = await work_batch(queue, index_job_handler(orchestrator), batch_size)
        return report.to_dict()

    return run_async(_process())


@celery_app.task(base=IndexingTask, name='indexing.expire_stale_jobs', bind=True)
def expire_stale_jobs(self) -> dict:
    """Return jobs stuck in active state (crashed worker) to the queue."""

    async def _expire():
        async with task_session_factory() as session_factory:
            return await JobQueue(session_factory).expire_stale()

    expired = run_async(_expire())
    return {'expired': expired}


@celery_app.task(base=IndexingTask, name='indexing.purge_archived_jobs', bind=True)
def purge_archived_jobs(self) -> dict:
    """Delete completed jobs past the archive window and old failed jobs."""

    async def _purge():
        async with task_session_factory() as session_factory:
            return await JobQueue(session_factory).purge_archived()

    purged = run_async(_purge())
    return {'purged': purged}


@celery_app.task(base=IndexingTask, name='indexing.enqueue_pending_content', bind=True)
def enqueue_pending_content(self) -> dict:
    """Queue every content item whose status is still pending."""

    async def _enqueue():
        async with task_session_factory() as session_factory:
            orchestrator = IndexingOrchestrator(session_factory, queue=JobQueue(session_factory))
            return await orchestrator.enqueue_pending()

    enqueued = run_async(_enqueue())
    logger.info(f"Enqueued {enqueued} pending content items")
    return {'enqueued': enqueued}
