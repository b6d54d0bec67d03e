"""
Durable indexing job queue backed by the index_jobs table.

Guarantees:
-----------
- At-least-once: a job is only marked completed after its handler
  returned. A worker that dies mid-job leaves it ACTIVE until
  expire_stale() hands it back for retry.
- Idempotent enqueue: one outstanding job per content item (singleton
  key = item id), enforced by a partial unique index so concurrent
  producers cannot race past the pre-check.
- Retry with backoff: failed jobs are rescheduled after
  QUEUE_RETRY_DELAYS_SECONDS[attempt - 1] (5 min, 30 min, 2 h by default)
  and fail permanently after QUEUE_RETRY_LIMIT retries.
- Archival: completed jobs are purged after QUEUE_ARCHIVE_AFTER_SECONDS
  (24 h), permanently failed ones after QUEUE_FAILED_RETENTION_DAYS.

Concurrent consumers are safe on PostgreSQL: fetch() claims rows with
SELECT ... FOR UPDATE SKIP LOCKED.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_indexer.core.config import settings
from content_indexer.db.base import utcnow
from content_indexer.models.jobs import OUTSTANDING_STATES, IndexJob, JobState


logger = logging.getLogger(__name__)


class JobQueueError(Exception):
    """Raised when the queue cannot persist a state change."""
    pass


@dataclass(frozen=True)
class ClaimedJob:
    """Snapshot of a job handed to a worker."""

    id: int
    content_item_id: int
    url: str
    attempt: int
    retry_limit: int


class JobQueue:
    """
    Table-backed job queue for indexing work.

    Example:
        >>> queue = JobQueue(AsyncSessionLocal)
        >>> job_id = await queue.enqueue(42, "https://example.com/post")
        >>> jobs = await queue.fetch(batch_size=5)
        >>> await queue.complete(jobs[0].id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name: Optional[str] = None,
        retry_limit: Optional[int] = None,
        retry_delays: Optional[list[int]] = None,
    ):
        self.session_factory = session_factory
        self.name = name or settings.QUEUE_NAME
        self.retry_limit = settings.QUEUE_RETRY_LIMIT if retry_limit is None else retry_limit
        self.retry_delays = retry_delays or settings.queue_retry_delays

    # ========================================
    # Producer Side
    # ========================================

    async def enqueue(self, content_item_id: int, url: str) -> Optional[int]:
        """
        Queue an indexing job for a content item.

        Returns:
            The new job id, or None if the item already has an
            outstanding job (created, retry or active)

        Raises:
            JobQueueError: If the job could not be stored
        """
        singleton_key = str(content_item_id)

        try:
            async with self.session_factory() as session:
                existing = await session.scalar(
                    select(IndexJob.id).where(
                        IndexJob.name == self.name,
                        IndexJob.singleton_key == singleton_key,
                        IndexJob.state.in_(OUTSTANDING_STATES),
                    )
                )
                if existing is not None:
                    logger.debug(f"Item {content_item_id} already queued as job {existing}")
                    return None

                job = IndexJob(
                    name=self.name,
                    payload={"content_item_id": content_item_id, "url": url},
                    singleton_key=singleton_key,
                    state=JobState.CREATED,
                    attempt=0,
                    retry_limit=self.retry_limit,
                    scheduled_at=utcnow(),
                )
                session.add(job)
                await session.commit()

        except IntegrityError:
            # Another producer won the race for the singleton key
            logger.debug(f"Item {content_item_id} enqueued concurrently, skipping")
            return None

        except SQLAlchemyError as e:
            logger.error(f"Failed to enqueue item {content_item_id}: {e}")
            raise JobQueueError(f"Failed to enqueue item {content_item_id}: {e}") from e

        logger.info(f"Enqueued job {job.id} for item {content_item_id}")
        return job.id

    # ========================================
    # Consumer Side
    # ========================================

    async def fetch(self, batch_size: Optional[int] = None) -> list[ClaimedJob]:
        """
        Claim up to ``batch_size`` due jobs and mark them active.

        Jobs are due when their state is created or retry and
        scheduled_at has passed; oldest first.
        """
        batch_size = batch_size or settings.QUEUE_BATCH_SIZE

        async with self.session_factory() as session:
            now = utcnow()
            result = await session.execute(
                select(IndexJob)
                .where(
                    IndexJob.name == self.name,
                    IndexJob.state.in_((JobState.CREATED, JobState.RETRY)),
                    IndexJob.scheduled_at <= now,
                )
                .order_by(IndexJob.scheduled_at, IndexJob.id)
                .limit(batch_size)
                .with_for_update(skip_locked=True)
            )
            jobs = list(result.scalars().all())

            for job in jobs:
                job.state = JobState.ACTIVE
                job.started_at = now
                job.attempt += 1

            claimed = [
                ClaimedJob(
                    id=job.id,
                    content_item_id=job.content_item_id,
                    url=job.url,
                    attempt=job.attempt,
                    retry_limit=job.retry_limit,
                )
                for job in jobs
            ]
            await session.commit()

        if claimed:
            logger.info(f"Fetched {len(claimed)} jobs from {self.name}")
        return claimed

    async def complete(self, job_id: int) -> None:
        """Mark an active job completed."""
        async with self.session_factory() as session:
            job = await session.get(IndexJob, job_id)
            if job is None:
                raise JobQueueError(f"Job {job_id} not found")

            job.state = JobState.COMPLETED
            job.completed_at = utcnow()
            job.last_error = None
            await session.commit()

        logger.debug(f"Job {job_id} completed")

    async def fail(self, job_id: int, error: str, retryable: bool = True) -> JobState:
        """
        Record a failed attempt.

        Schedules a retry with the configured backoff while retries are
        left, otherwise marks the job failed for good. Non-retryable
        failures skip the remaining retries.

        Returns:
            The job's new state (retry or failed)
        """
        async with self.session_factory() as session:
            job = await session.get(IndexJob, job_id)
            if job is None:
                raise JobQueueError(f"Job {job_id} not found")

            job.last_error = error
            self._schedule_retry_or_fail(job, retryable)
            state = job.state
            await session.commit()

        if state == JobState.RETRY:
            logger.warning(f"Job {job_id} failed (attempt {job.attempt}), retry at {job.scheduled_at}: {error}")
        else:
            logger.error(f"Job {job_id} failed permanently after {job.attempt} attempts: {error}")
        return state

    def _schedule_retry_or_fail(self, job: IndexJob, retryable: bool = True) -> None:
        if retryable and job.attempt <= job.retry_limit:
            delay = self.retry_delay(job.attempt)
            job.state = JobState.RETRY
            job.scheduled_at = utcnow() + timedelta(seconds=delay)
        else:
            job.state = JobState.FAILED
            job.completed_at = utcnow()

    def retry_delay(self, attempt: int) -> int:
        """Backoff in seconds after the given (1-based) failed attempt."""
        index = min(max(attempt, 1), len(self.retry_delays)) - 1
        return self.retry_delays[index]

    # ========================================
    # Maintenance
    # ========================================

    async def expire_stale(self, timeout_seconds: Optional[int] = None) -> int:
        """
        Hand back jobs stuck in ACTIVE (crashed worker) for another attempt.

        Returns:
            Number of expired jobs
        """
        timeout_seconds = timeout_seconds or settings.QUEUE_JOB_EXPIRE_SECONDS
        cutoff = utcnow() - timedelta(seconds=timeout_seconds)

        async with self.session_factory() as session:
            result = await session.execute(
                select(IndexJob).where(
                    IndexJob.name == self.name,
                    IndexJob.state == JobState.ACTIVE,
                    IndexJob.started_at < cutoff,
                )
            )
            jobs = list(result.scalars().all())

            for job in jobs:
                job.last_error = f"Job expired after {timeout_seconds}s in active state"
                self._schedule_retry_or_fail(job)

            await session.commit()

        if jobs:
            logger.warning(f"Expired {len(jobs)} stale jobs in {self.name}")
        return len(jobs)

    async def purge_archived(
        self,
        completed_after_seconds: Optional[int] = None,
        failed_after_days: Optional[int] = None,
    ) -> int:
        """
        Delete completed jobs older than the archive window and
        permanently failed jobs older than the failed retention.

        Returns:
            Number of deleted jobs
        """
        completed_after_seconds = completed_after_seconds or settings.QUEUE_ARCHIVE_AFTER_SECONDS
        failed_after_days = failed_after_days or settings.QUEUE_FAILED_RETENTION_DAYS

        now = utcnow()
        completed_cutoff = now - timedelta(seconds=completed_after_seconds)
        failed_cutoff = now - timedelta(days=failed_after_days)

        async with self.session_factory() as session:
            result = await session.execute(
                delete(IndexJob).where(
                    IndexJob.name == self.name,
                    or_(
                        and_(
                            IndexJob.state == JobState.COMPLETED,
                            IndexJob.completed_at < completed_cutoff,
                        ),
                        and_(
                            IndexJob.state == JobState.FAILED,
                            IndexJob.completed_at < failed_cutoff,
                        ),
                    ),
                )
            )
            await session.commit()

        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} archived jobs from {self.name}")
        return purged

    async def stats(self) -> dict[str, int]:
        """Job counts per state (every state present, zero if empty)."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(IndexJob.state, func.count(IndexJob.id))
                .where(IndexJob.name == self.name)
                .group_by(IndexJob.state)
            )
            counts = {state.value: 0 for state in JobState}
            for state, count in result.all():
                counts[JobState(state).value] = count

        return counts
