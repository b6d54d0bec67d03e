"""
Persistence for the indexing pipeline (content_text and content_chunks).

Every public method opens and commits its own session, so the store can
be shared by concurrently running item pipelines.

Write rules:
------------
- One content_text row per content item, found by content_item_id and
  updated in place (upsert).
- The chunk set of a row is replaced as a whole: old chunks are deleted
  and the new ones inserted in the same transaction that flips the row
  to indexed, so readers never see a mix of old and new chunks.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import Text, cast, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_indexer.db.base import utcnow
from content_indexer.models.content import (
    ContentChunk,
    ContentItem,
    ContentText,
    IndexStatus,
)
from content_indexer.services.acquisition.base import FetchResult, normalize_url
from content_indexer.services.processors.chunker import Chunk


logger = logging.getLogger(__name__)


@dataclass
class IndexStatusView:
    """Read-only status projection of one content item."""

    content_item_id: int
    status: IndexStatus
    error: Optional[str]
    word_count: int
    token_count: int
    chunk_count: int
    indexed_at: Optional[datetime]
    crawled_at: Optional[datetime]


@dataclass(frozen=True)
class ConflictingItem:
    id: int
    title: str
    url: str


class IndexStore:
    """Database access for content text, chunks and status."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ========================================
    # Lookups
    # ========================================

    async def get_item(self, content_item_id: int) -> Optional[ContentItem]:
        async with self.session_factory() as session:
            return await session.get(ContentItem, content_item_id)

    async def get_text(self, content_text_id: int) -> Optional[ContentText]:
        async with self.session_factory() as session:
            return await session.get(ContentText, content_text_id)

    async def get_text_for_item(self, content_item_id: int) -> Optional[ContentText]:
        async with self.session_factory() as session:
            return await session.scalar(
                select(ContentText).where(ContentText.content_item_id == content_item_id)
            )

    async def count_chunks(self, content_text_id: int) -> int:
        async with self.session_factory() as session:
            count = await session.scalar(
                select(func.count(ContentChunk.id)).where(
                    ContentChunk.content_text_id == content_text_id
                )
            )
        return count or 0

    async def find_redirect_conflict(
        self,
        content_item_id: int,
        final_url: str,
    ) -> Optional[ConflictingItem]:
        """
        Another content item already known under ``final_url``.

        Both the current URL and the previous URLs of other items are
        checked; trailing slashes and fragments are ignored.
        """
        target = normalize_url(final_url)
        variants = {target, target + "/"}

        async with self.session_factory() as session:
            item = await session.scalar(
                select(ContentItem)
                .where(
                    ContentItem.id != content_item_id,
                    ContentItem.current_url.in_(variants),
                )
                .order_by(ContentItem.id)
                .limit(1)
            )
            if item is not None:
                return ConflictingItem(id=item.id, title=item.title, url=item.current_url)

            # previous_urls is a JSON list: narrow down with a text match,
            # then compare exactly
            result = await session.execute(
                select(ContentItem)
                .where(
                    ContentItem.id != content_item_id,
                    cast(ContentItem.previous_urls, Text).contains(target, autoescape=True),
                )
                .order_by(ContentItem.id)
            )
            for item in result.scalars():
                if any(normalize_url(url) == target for url in item.previous_urls or []):
                    return ConflictingItem(id=item.id, title=item.title, url=item.current_url)

        return None

    # ========================================
    # Content Text Writes
    # ========================================

    async def save_fetched_text(
        self,
        content_item_id: int,
        result: FetchResult,
        content_hash: str,
    ) -> ContentText:
        """Upsert the acquired text for an item and set it to pending."""
        async with self.session_factory() as session:
            record = await self._get_or_create(session, content_item_id)

            record.full_text = result.full_text
            record.plain_text = result.plain_text
            record.word_count = result.word_count
            record.token_count = result.token_count
            record.content_hash = content_hash
            record.crawl_duration_ms = result.duration_ms
            record.crawled_at = utcnow()
            record.index_status = IndexStatus.PENDING
            record.index_error = None

            await session.commit()
            return record

    async def update_text_metadata(
        self,
        content_text_id: int,
        content_hash: str,
        word_count: int,
        token_count: int,
    ) -> None:
        """Recompute-derived fields for text supplied by a content sync."""
        async with self.session_factory() as session:
            record = await session.get(ContentText, content_text_id)
            if record is None:
                return
            record.content_hash = content_hash
            record.word_count = word_count
            record.token_count = token_count
            record.index_status = IndexStatus.PENDING
            record.index_error = None
            await session.commit()

    async def mark_placeholder_pending(self, content_item_id: int) -> None:
        """
        Make the item's status read "pending" while a job is queued.

        Creates an empty row when none exists; an existing row keeps its
        text and chunks until the job replaces them.
        """
        async with self.session_factory() as session:
            record = await self._get_or_create(session, content_item_id)
            record.index_status = IndexStatus.PENDING
            record.index_error = None
            await session.commit()

    async def mark_failed(self, content_item_id: int, error: str) -> None:
        """Record a failed indexing attempt, creating the row if needed."""
        async with self.session_factory() as session:
            if await session.get(ContentItem, content_item_id) is None:
                logger.warning(f"Cannot record failure for unknown content item {content_item_id}")
                return

            record = await self._get_or_create(session, content_item_id)
            record.index_status = IndexStatus.FAILED
            record.index_error = error
            await session.commit()

    async def mark_indexed(self, content_text_id: int) -> None:
        async with self.session_factory() as session:
            record = await session.get(ContentText, content_text_id)
            if record is None:
                return
            record.index_status = IndexStatus.INDEXED
            record.index_error = None
            record.indexed_at = utcnow()
            await session.commit()

    # ========================================
    # Chunk Writes
    # ========================================

    async def replace_chunks(
        self,
        content_text_id: int,
        chunks: Sequence[tuple[Chunk, Optional[list[float]]]],
    ) -> int:
        """
        Delete the row's chunks, insert ``chunks`` and mark it indexed,
        all in one transaction.

        Args:
            content_text_id: Owning content_text row
            chunks: (chunk, embedding) pairs; embedding may be None

        Returns:
            Number of chunks written
        """
        async with self.session_factory() as session:
            await session.execute(
                delete(ContentChunk).where(ContentChunk.content_text_id == content_text_id)
            )

            session.add_all([
                ContentChunk(
                    content_text_id=content_text_id,
                    chunk_text=chunk.text,
                    chunk_index=chunk.index,
                    chunk_token_count=chunk.token_count,
                    embedding=embedding,
                )
                for chunk, embedding in chunks
            ])

            record = await session.get(ContentText, content_text_id)
            if record is not None:
                record.index_status = IndexStatus.INDEXED
                record.index_error = None
                record.indexed_at = utcnow()

            await session.commit()

        return len(chunks)

    # ========================================
    # Status Queries
    # ========================================

    async def get_status(self, content_item_id: int) -> Optional[IndexStatusView]:
        """Status projection, or None if the item was never indexed or queued."""
        chunk_count = (
            select(func.count(ContentChunk.id))
            .where(ContentChunk.content_text_id == ContentText.id)
            .scalar_subquery()
        )

        async with self.session_factory() as session:
            row = (await session.execute(
                select(ContentText, chunk_count.label("chunk_count"))
                .where(ContentText.content_item_id == content_item_id)
            )).first()

        if row is None:
            return None

        record, count = row
        return IndexStatusView(
            content_item_id=record.content_item_id,
            status=record.index_status,
            error=record.index_error,
            word_count=record.word_count,
            token_count=record.token_count,
            chunk_count=count or 0,
            indexed_at=record.indexed_at,
            crawled_at=record.crawled_at,
        )

    async def list_items_with_status(self, status: IndexStatus) -> list[tuple[int, str]]:
        """(content_item_id, current_url) of every item whose text has ``status``."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(ContentItem.id, ContentItem.current_url)
                .join(ContentText, ContentText.content_item_id == ContentItem.id)
                .where(ContentText.index_status == status)
                .order_by(ContentItem.id)
            )
            return [(item_id, url) for item_id, url in result.all()]

    # ========================================
    # Helpers
    # ========================================

    @staticmethod
    async def _get_or_create(session: AsyncSession, content_item_id: int) -> ContentText:
        record = await session.scalar(
            select(ContentText).where(ContentText.content_item_id == content_item_id)
        )
        if record is None:
            record = ContentText(
                content_item_id=content_item_id,
                full_text="",
                plain_text="",
                word_count=0,
                token_count=0,
                content_hash="",
                index_status=IndexStatus.PENDING,
            )
            session.add(record)
        return record
