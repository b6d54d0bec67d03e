"""
Indexing Orchestrator

Entry point for turning content items into searchable chunks.

Per-item pipeline (index_single_item):
--------------------------------------
    fetch URL ──▶ redirect guard ──▶ content hash ──▶ upsert content_text
        │               │                  │ (unchanged + indexed: skip)
        ▼               ▼                  ▼
      failed         failed            chunk ──▶ embed chunks concurrently
                                                  (failure: NULL vector)
                                                        │
                                                        ▼
                                      replace chunks + mark indexed

Batches (index_content):
------------------------
- Up to INDEXING_SYNC_THRESHOLD items are indexed right away, at most
  INDEXING_SYNC_CONCURRENCY at a time, one item's failure never
  affecting the others.
- Items beyond the threshold go to the job queue (one outstanding job per
  item) and get a pending content_text placeholder so their status reads
  "pending" instead of "not found".

Every failure ends with the item's content_text row at status failed
with a readable error, never stuck at pending.
"""

import asyncio
import enum
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_indexer.core.config import settings
from content_indexer.models.content import IndexStatus
from content_indexer.services.acquisition.acquirer import ContentAcquirer
from content_indexer.services.acquisition.base import FetchError, count_words
from content_indexer.services.indexing.store import IndexStatusView, IndexStore
from content_indexer.services.job_queue import JobQueue, JobQueueError
from content_indexer.services.processors.chunker import Chunk, ContentChunker, count_tokens
from content_indexer.services.processors.embedder import (
    EmbeddingError,
    EmbeddingService,
    get_embedding_service,
)


logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "Content indexing disabled (ENABLE_CONTENT_INDEXING=false)"
NO_CONTENT_MESSAGE = "No content available (empty or transcript unavailable)"


class IndexErrorKind(str, enum.Enum):
    FETCH = "fetch"
    NO_CONTENT = "no_content"
    REDIRECT_CONFLICT = "redirect_conflict"
    QUEUE = "queue"
    DISABLED = "disabled"
    STORAGE = "storage"
    NOT_FOUND = "not_found"
    INTERNAL = "internal"

    @property
    def is_retryable(self) -> bool:
        """Whether running the same item again later can succeed."""
        return self not in (
            IndexErrorKind.NO_CONTENT,
            IndexErrorKind.REDIRECT_CONFLICT,
            IndexErrorKind.NOT_FOUND,
        )


@dataclass(frozen=True)
class IndexItem:
    id: int
    url: str


@dataclass
class IndexingResult:
    success: bool
    content_item_id: int
    error: Optional[str] = None
    error_kind: Optional[IndexErrorKind] = None
    queued: bool = False
    # Content unchanged since the last successful run
    skipped: bool = False
    chunk_count: int = 0
    job_id: Optional[int] = None


@dataclass
class IndexingStats:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    queued: int = 0
    results: list[IndexingResult] = field(default_factory=list)

    @classmethod
    def from_results(cls, results: list[IndexingResult]) -> "IndexingStats":
        return cls(
            total=len(results),
            succeeded=sum(1 for r in results if r.success and not r.queued),
            failed=sum(1 for r in results if not r.success),
            queued=sum(1 for r in results if r.success and r.queued),
            results=results,
        )


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class IndexingOrchestrator:
    """
    Coordinates acquisition, chunking, embedding and storage.

    Example:
        >>> orchestrator = IndexingOrchestrator(AsyncSessionLocal)
        >>> stats = await orchestrator.index_content([IndexItem(1, "https://example.com/a")])
        >>> stats.succeeded, stats.failed, stats.queued
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        acquirer: Optional[ContentAcquirer] = None,
        chunker: Optional[ContentChunker] = None,
        embedder: Optional[EmbeddingService] = None,
        queue: Optional[JobQueue] = None,
        enabled: Optional[bool] = None,
        sync_threshold: Optional[int] = None,
        sync_concurrency: Optional[int] = None,
    ):
        self.store = IndexStore(session_factory)
        self.acquirer = acquirer or ContentAcquirer()
        self.chunker = chunker or ContentChunker()
        self.embedder = embedder or get_embedding_service()
        self.queue = queue or JobQueue(session_factory)
        self.enabled = settings.ENABLE_CONTENT_INDEXING if enabled is None else enabled
        self.sync_threshold = (
            settings.INDEXING_SYNC_THRESHOLD if sync_threshold is None else sync_threshold
        )
        self.sync_concurrency = sync_concurrency or settings.INDEXING_SYNC_CONCURRENCY

    # ========================================
    # Batch Entry Point
    # ========================================

    async def index_content(self, items: Sequence[IndexItem]) -> IndexingStats:
        """
        Index a batch of content items.

        The first sync_threshold items are processed before returning,
        the rest are queued.
        """
        if not self.enabled:
            logger.info(f"Indexing disabled, rejecting {len(items)} items")
            return IndexingStats.from_results([self._disabled(item.id) for item in items])

        sync_items = list(items[: self.sync_threshold])
        queue_items = list(items[self.sync_threshold:])

        logger.info(
            f"Indexing {len(items)} items: {len(sync_items)} now, {len(queue_items)} queued"
        )

        results = await self._index_concurrently(sync_items)
        for item in queue_items:
            results.append(await self._enqueue(item))

        stats = IndexingStats.from_results(results)
        logger.info(
            f"Indexing batch done: {stats.succeeded} succeeded, {stats.failed} failed, "
            f"{stats.queued} queued"
        )
        return stats

    async def _index_concurrently(self, items: list[IndexItem]) -> list[IndexingResult]:
        semaphore = asyncio.Semaphore(self.sync_concurrency)

        async def run(item: IndexItem) -> IndexingResult:
            async with semaphore:
                return await self.index_single_item(item.id, item.url)

        outcomes = await asyncio.gather(*(run(item) for item in items), return_exceptions=True)

        results = []
        for item, outcome in zip(items, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"Unexpected error indexing item {item.id}: {outcome}")
                outcome = IndexingResult(
                    success=False,
                    content_item_id=item.id,
                    error=str(outcome) or type(outcome).__name__,
                    error_kind=IndexErrorKind.INTERNAL,
                )
            results.append(outcome)
        return results

    async def _enqueue(self, item: IndexItem) -> IndexingResult:
        try:
            job_id = await self.queue.enqueue(item.id, item.url)
        except (JobQueueError, SQLAlchemyError) as e:
            logger.error(f"Failed to queue item {item.id}: {e}")
            return IndexingResult(
                success=False,
                content_item_id=item.id,
                error=f"Failed to enqueue item: {e}",
                error_kind=IndexErrorKind.QUEUE,
            )

        # The job is live from here on; the worker settles the status either way
        try:
            await self.store.mark_placeholder_pending(item.id)
        except SQLAlchemyError as e:
            logger.warning(f"Item {item.id} queued but its pending status was not recorded: {e}")

        if job_id is None:
            logger.info(f"Item {item.id} already queued")
        return IndexingResult(success=True, content_item_id=item.id, queued=True, job_id=job_id)

    # ========================================
    # Single Item
    # ========================================

    async def index_single_item(
        self,
        content_item_id: int,
        url: str,
        force: bool = False,
    ) -> IndexingResult:
        """
        Fetch, chunk, embed and store one item.

        Args:
            content_item_id: Item being indexed
            url: URL to acquire
            force: Rebuild chunks even if the content hash is unchanged

        Returns:
            IndexingResult; failures are reported, never raised
        """
        try:
            try:
                result = await self.acquirer.fetch(url)
            except FetchError as e:
                logger.warning(f"Fetch failed for item {content_item_id} ({e.kind.value}): {e}")
                return await self._fail(content_item_id, str(e), IndexErrorKind.FETCH)

            if result.is_empty:
                return await self._fail(content_item_id, NO_CONTENT_MESSAGE, IndexErrorKind.NO_CONTENT)

            if result.was_redirected:
                logger.info(f"Item {content_item_id}: {url} redirected to {result.final_url}")
                conflict = await self.store.find_redirect_conflict(content_item_id, result.final_url)
                if conflict is not None:
                    return await self._fail(
                        content_item_id,
                        f"URL redirects to {result.final_url} which already exists ({conflict.title})",
                        IndexErrorKind.REDIRECT_CONFLICT,
                    )

            digest = content_hash(result.plain_text)

            if not force:
                existing = await self.store.get_text_for_item(content_item_id)
                if (
                    existing is not None
                    and existing.content_hash == digest
                    and existing.index_status == IndexStatus.INDEXED
                    and await self.store.count_chunks(existing.id) > 0
                ):
                    logger.info(f"Item {content_item_id} unchanged, keeping existing chunks")
                    return IndexingResult(success=True, content_item_id=content_item_id, skipped=True)

            record = await self.store.save_fetched_text(content_item_id, result, digest)
            chunk_count = await self._chunk_and_store(record.id, result.plain_text)

        except SQLAlchemyError as e:
            logger.error(f"Storage error indexing item {content_item_id}: {e}")
            return await self._fail(content_item_id, f"Storage error: {e}", IndexErrorKind.STORAGE)

        except Exception as e:
            logger.exception(f"Unexpected error indexing item {content_item_id}")
            return await self._fail(content_item_id, str(e) or type(e).__name__, IndexErrorKind.INTERNAL)

        logger.info(f"Indexed item {content_item_id}: {chunk_count} chunks ({result.strategy.value})")
        return IndexingResult(success=True, content_item_id=content_item_id, chunk_count=chunk_count)

    async def index_from_existing_content(self, content_text_id: int) -> IndexingResult:
        """
        Re-chunk and re-embed text that was written directly by a content
        sync (no fetch).
        """
        if not self.enabled:
            return self._disabled(content_text_id)

        content_item_id: Optional[int] = None
        try:
            record = await self.store.get_text(content_text_id)
            if record is None:
                return IndexingResult(
                    success=False,
                    content_item_id=content_text_id,
                    error=f"Content text {content_text_id} not found",
                    error_kind=IndexErrorKind.NOT_FOUND,
                )

            content_item_id = record.content_item_id
            plain_text = record.plain_text or ""
            if not plain_text.strip():
                return await self._fail(content_item_id, NO_CONTENT_MESSAGE, IndexErrorKind.NO_CONTENT)

            await self.store.update_text_metadata(
                record.id,
                content_hash(plain_text),
                word_count=record.word_count or count_words(plain_text),
                token_count=record.token_count or count_tokens(plain_text),
            )
            chunk_count = await self._chunk_and_store(record.id, plain_text)

        except SQLAlchemyError as e:
            logger.error(f"Storage error indexing content text {content_text_id}: {e}")
            return await self._fail_existing(
                content_text_id, content_item_id, f"Storage error: {e}", IndexErrorKind.STORAGE
            )

        except Exception as e:
            logger.exception(f"Unexpected error indexing content text {content_text_id}")
            return await self._fail_existing(
                content_text_id, content_item_id, str(e) or type(e).__name__, IndexErrorKind.INTERNAL
            )

        logger.info(f"Indexed content text {content_text_id}: {chunk_count} chunks")
        return IndexingResult(success=True, content_item_id=content_item_id, chunk_count=chunk_count)

    async def _fail_existing(
        self,
        content_text_id: int,
        content_item_id: Optional[int],
        error: str,
        kind: IndexErrorKind,
    ) -> IndexingResult:
        # The row could not be read, there is no status to update
        if content_item_id is None:
            return IndexingResult(
                success=False,
                content_item_id=content_text_id,
                error=error,
                error_kind=kind,
            )
        return await self._fail(content_item_id, error, kind)

    async def reindex_content(self, content_item_id: int) -> IndexingResult:
        """Re-acquire an item from its current URL, ignoring the content hash."""
        if not self.enabled:
            return self._disabled(content_item_id)

        item = await self.store.get_item(content_item_id)
        if item is None:
            return IndexingResult(
                success=False,
                content_item_id=content_item_id,
                error=f"Content item {content_item_id} not found",
                error_kind=IndexErrorKind.NOT_FOUND,
            )
        return await self.index_single_item(item.id, item.current_url, force=True)

    # ========================================
    # Queue Recovery
    # ========================================

    async def enqueue_pending(self) -> int:
        """Queue every item whose text is pending (e.g. after losing queue rows)."""
        return await self._enqueue_with_status(IndexStatus.PENDING)

    async def retry_failed(self) -> int:
        """Queue every item whose last indexing attempt failed."""
        return await self._enqueue_with_status(IndexStatus.FAILED)

    async def _enqueue_with_status(self, status: IndexStatus) -> int:
        items = await self.store.list_items_with_status(status)

        enqueued = 0
        for item_id, url in items:
            result = await self._enqueue(IndexItem(id=item_id, url=url))
            if result.job_id is not None:
                enqueued += 1

        logger.info(f"Enqueued {enqueued} of {len(items)} {status.value} items")
        return enqueued

    # ========================================
    # Status
    # ========================================

    async def get_index_status(self, content_item_id: int) -> Optional[IndexStatusView]:
        return await self.store.get_status(content_item_id)

    # ========================================
    # Helpers
    # ========================================

    async def _chunk_and_store(self, content_text_id: int, plain_text: str) -> int:
        chunks = await asyncio.to_thread(self.chunker.chunk, plain_text)
        embeddings = await asyncio.gather(*(self._embed_chunk(chunk) for chunk in chunks))

        missing = sum(1 for embedding in embeddings if embedding is None)
        if missing:
            logger.warning(
                f"Content text {content_text_id}: {missing} of {len(chunks)} chunks stored without embedding"
            )

        return await self.store.replace_chunks(content_text_id, list(zip(chunks, embeddings)))

    async def _embed_chunk(self, chunk: Chunk) -> Optional[list[float]]:
        try:
            return await self.embedder.embed(chunk.text)
        except EmbeddingError as e:
            logger.warning(f"Embedding failed for chunk {chunk.index}: {e}")
            return None

    async def _fail(
        self,
        content_item_id: int,
        error: str,
        kind: IndexErrorKind,
    ) -> IndexingResult:
        try:
            await self.store.mark_failed(content_item_id, error)
        except SQLAlchemyError as e:
            logger.error(f"Failed to record failure for item {content_item_id}: {e}")

        return IndexingResult(
            success=False,
            content_item_id=content_item_id,
            error=error,
            error_kind=kind,
        )

    @staticmethod
    def _disabled(content_item_id: int) -> IndexingResult:
        return IndexingResult(
            success=False,
            content_item_id=content_item_id,
            error=DISABLED_MESSAGE,
            error_kind=IndexErrorKind.DISABLED,
        )
