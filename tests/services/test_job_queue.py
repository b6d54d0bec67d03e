"""
Tests for the table-backed JobQueue (SQLite via aiosqlite).

Time travel is done by moving scheduled_at / started_at / completed_at
in the database; comparisons stay in SQL like the queue's own queries.
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from content_indexer.db.base import utcnow
from content_indexer.models.jobs import IndexJob, JobState
from content_indexer.services.job_queue import JobQueue, JobQueueError


@pytest.fixture
def queue(session_factory) -> JobQueue:
    return JobQueue(session_factory, retry_limit=3, retry_delays=[300, 1800, 7200])


async def make_due(session_factory, job_id: int) -> None:
    async with session_factory() as session:
        await session.execute(
            update(IndexJob)
            .where(IndexJob.id == job_id)
            .values(scheduled_at=utcnow() - timedelta(seconds=1))
        )
        await session.commit()


async def get_job(session_factory, job_id: int) -> IndexJob:
    async with session_factory() as session:
        return await session.get(IndexJob, job_id)


async def count_jobs(session_factory, *criteria) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(IndexJob.id)).where(*criteria))


# ========================================
# Enqueue
# ========================================

@pytest.mark.asyncio
class TestEnqueue:

    async def test_enqueue_creates_job(self, queue, session_factory):
        job_id = await queue.enqueue(42, "https://example.com/post")

        job = await get_job(session_factory, job_id)
        assert job.state == JobState.CREATED
        assert job.singleton_key == "42"
        assert job.content_item_id == 42
        assert job.url == "https://example.com/post"
        assert job.attempt == 0
        assert job.retry_limit == 3
        assert job.name == "index-content"

    async def test_singleton_key_deduplicates(self, queue, session_factory):
        first = await queue.enqueue(42, "https://example.com/post")
        second = await queue.enqueue(42, "https://example.com/post")

        assert first is not None
        assert second is None
        assert await count_jobs(session_factory) == 1

    async def test_active_job_still_blocks(self, queue, session_factory):
        await queue.enqueue(42, "https://example.com/post")
        await queue.fetch(5)

        assert await queue.enqueue(42, "https://example.com/post") is None

    async def test_completed_job_allows_new_one(self, queue, session_factory):
        await queue.enqueue(42, "https://example.com/post")
        (job,) = await queue.fetch(5)
        await queue.complete(job.id)

        assert await queue.enqueue(42, "https://example.com/post") is not None
        assert await count_jobs(session_factory) == 2

    async def test_partial_unique_index_rejects_racing_insert(self, queue, session_factory):
        """A second outstanding row for the same key is refused by the index itself."""
        from sqlalchemy.exc import IntegrityError

        await queue.enqueue(42, "https://example.com/post")

        with pytest.raises(IntegrityError):
            async with session_factory() as session:
                session.add(IndexJob(
                    name=queue.name,
                    payload={"content_item_id": 42, "url": "https://example.com/post"},
                    singleton_key="42",
                    state=JobState.CREATED,
                ))
                await session.commit()

    async def test_other_queue_name_is_independent(self, session_factory):
        await JobQueue(session_factory, name="a").enqueue(1, "https://example.com")

        assert await JobQueue(session_factory, name="b").enqueue(1, "https://example.com") is not None


# ========================================
# Fetch / Complete
# ========================================

@pytest.mark.asyncio
class TestFetch:

    async def test_fetch_claims_jobs(self, queue, session_factory):
        job_id = await queue.enqueue(1, "https://example.com/1")

        (claimed,) = await queue.fetch(5)

        assert claimed.id == job_id
        assert claimed.content_item_id == 1
        assert claimed.url == "https://example.com/1"
        assert claimed.attempt == 1
        job = await get_job(session_factory, job_id)
        assert job.state == JobState.ACTIVE
        assert job.started_at is not None

    async def test_fetch_respects_batch_size_and_order(self, queue):
        ids = [await queue.enqueue(i, f"https://example.com/{i}") for i in range(1, 8)]

        first = await queue.fetch(5)
        second = await queue.fetch(5)

        assert [job.id for job in first] == ids[:5]
        assert [job.id for job in second] == ids[5:]

    async def test_claimed_jobs_not_fetched_again(self, queue):
        await queue.enqueue(1, "https://example.com/1")
        await queue.fetch(5)

        assert await queue.fetch(5) == []

    async def test_complete(self, queue, session_factory):
        await queue.enqueue(1, "https://example.com/1")
        (job,) = await queue.fetch(5)

        await queue.complete(job.id)

        stored = await get_job(session_factory, job.id)
        assert stored.state == JobState.COMPLETED
        assert stored.completed_at is not None

    async def test_complete_unknown_job(self, queue):
        with pytest.raises(JobQueueError):
            await queue.complete(999)


# ========================================
# Failure / Retry
# ========================================

@pytest.mark.asyncio
class TestRetry:

    async def test_retry_delay(self, queue):
        assert queue.retry_delay(1) == 300
        assert queue.retry_delay(2) == 1800
        assert queue.retry_delay(3) == 7200
        # Past the table the last delay is reused
        assert queue.retry_delay(9) == 7200

    async def test_fail_schedules_retry_with_backoff(self, queue, session_factory):
        await queue.enqueue(1, "https://example.com/1")
        (job,) = await queue.fetch(5)

        state = await queue.fail(job.id, "Timeout after 5000ms")

        assert state == JobState.RETRY
        stored = await get_job(session_factory, job.id)
        assert stored.last_error == "Timeout after 5000ms"
        # Scheduled roughly five minutes ahead
        assert await count_jobs(
            session_factory,
            IndexJob.id == job.id,
            IndexJob.scheduled_at > utcnow() + timedelta(seconds=290),
            IndexJob.scheduled_at <= utcnow() + timedelta(seconds=300),
        ) == 1
        # Not due yet
        assert await queue.fetch(5) == []

    async def test_retry_becomes_due(self, queue, session_factory):
        await queue.enqueue(1, "https://example.com/1")
        (job,) = await queue.fetch(5)
        await queue.fail(job.id, "boom")
        await make_due(session_factory, job.id)

        (again,) = await queue.fetch(5)

        assert again.id == job.id
        assert again.attempt == 2

    async def test_fails_permanently_after_retry_limit(self, queue, session_factory):
        await queue.enqueue(1, "https://example.com/1")

        states = []
        for _ in range(4):
            (job,) = await queue.fetch(5)
            states.append(await queue.fail(job.id, "still broken"))
            await make_due(session_factory, job.id)

        assert states == [JobState.RETRY, JobState.RETRY, JobState.RETRY, JobState.FAILED]
        stored = await get_job(session_factory, job.id)
        assert stored.attempt == 4
        assert stored.completed_at is not None
        assert await queue.fetch(5) == []

    async def test_non_retryable_fails_immediately(self, queue, session_factory):
        await queue.enqueue(1, "https://example.com/1")
        (job,) = await queue.fetch(5)

        state = await queue.fail(job.id, "No content available", retryable=False)

        assert state == JobState.FAILED

    async def test_zero_retry_limit(self, session_factory):
        queue = JobQueue(session_factory, retry_limit=0)
        await queue.enqueue(1, "https://example.com/1")
        (job,) = await queue.fetch(5)

        assert await queue.fail(job.id, "boom") == JobState.FAILED

    async def test_failed_job_allows_new_enqueue(self, queue):
        await queue.enqueue(1, "https://example.com/1")
        (job,) = await queue.fetch(5)
        await queue.fail(job.id, "boom", retryable=False)

        assert await queue.enqueue(1, "https://example.com/1") is not None

    async def test_fail_unknown_job(self, queue):
        with pytest.raises(JobQueueError):
            await queue.fail(999, "boom")


# ========================================
# Maintenance
# ========================================

@pytest.mark.asyncio
class TestMaintenance:

    async def test_expire_stale(self, queue, session_factory):
        await queue.enqueue(1, "https://example.com/1")
        await queue.enqueue(2, "https://example.com/2")
        stale, fresh = await queue.fetch(5)
        async with session_factory() as session:
            await session.execute(
                update(IndexJob)
                .where(IndexJob.id == stale.id)
                .values(started_at=utcnow() - timedelta(hours=1))
            )
            await session.commit()

        expired = await queue.expire_stale(timeout_seconds=900)

        assert expired == 1
        stored = await get_job(session_factory, stale.id)
        assert stored.state == JobState.RETRY
        assert "expired" in stored.last_error
        assert (await get_job(session_factory, fresh.id)).state == JobState.ACTIVE

    async def test_purge_archived(self, queue, session_factory):
        for item_id in (1, 2, 3, 4):
            await queue.enqueue(item_id, f"https://example.com/{item_id}")
        old_done, new_done, old_failed, pending = await queue.fetch(4)
        await queue.complete(old_done.id)
        await queue.complete(new_done.id)
        await queue.fail(old_failed.id, "gone", retryable=False)

        async with session_factory() as session:
            await session.execute(
                update(IndexJob)
                .where(IndexJob.id == old_done.id)
                .values(completed_at=utcnow() - timedelta(hours=25))
            )
            await session.execute(
                update(IndexJob)
                .where(IndexJob.id == old_failed.id)
                .values(completed_at=utcnow() - timedelta(days=8))
            )
            await session.commit()

        purged = await queue.purge_archived()

        assert purged == 2
        remaining = await count_jobs(session_factory)
        assert remaining == 2
        assert await get_job(session_factory, new_done.id) is not None
        assert await get_job(session_factory, pending.id) is not None

    async def test_stats(self, queue):
        for item_id in (1, 2, 3):
            await queue.enqueue(item_id, f"https://example.com/{item_id}")
        first, second = await queue.fetch(2)
        await queue.complete(first.id)

        stats = await queue.stats()

        assert stats == {
            "created": 1,
            "retry": 0,
            "active": 1,
            "completed": 1,
            "failed": 0,
        }
