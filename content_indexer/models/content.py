"""
Content Models

Models Included:
----------------
1. ContentItem - an addressable piece of content (page, video, CMS entry)
2. ContentText - acquired text for one ContentItem plus its index status
3. ContentChunk - token-bounded slice of a ContentText with its embedding
4. IndexStatus (Enum) - pending / indexed / failed

Ownership:
----------
content_items belongs to the metadata layer (titles, tags, imports). The
indexing pipeline only reads its id and URLs. content_text and
content_chunks are written exclusively by the indexing pipeline.

Relationships:
--------------
ContentItem (1) ←→ (0..1) ContentText (1) ←→ (Many) ContentChunk
"""

import enum
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from content_indexer.core.config import settings
from content_indexer.db.base import BaseModel, String64, String255, String2048


# ================================
# Enums
# ================================

class ContentSourceType(str, enum.Enum):
    """Where a content item comes from."""

    WEB = "web"
    YOUTUBE = "youtube"
    API = "api"  # CMS / API-synced content, text supplied directly


class IndexStatus(str, enum.Enum):
    """
    Index status of a ContentText row.

    Status Flow:
    ------------
    PENDING → INDEXED (success path)
        ↓
      FAILED (error message stored in index_error)

    Re-indexing moves a row back to PENDING.
    """

    PENDING = "pending"
    INDEXED = "indexed"
    FAILED = "failed"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


# ================================
# ContentItem
# ================================

class ContentItem(BaseModel):
    """
    Content item as registered by the metadata layer.

    Only the fields the indexer needs are mapped here: the canonical URL
    (current_url), earlier URLs the item was known under (previous_urls)
    and the source type.
    """

    __tablename__ = "content_items"

    title: Mapped[str] = mapped_column(
        String255,
        nullable=False,
        default="",
        comment="Display title"
    )

    current_url: Mapped[str] = mapped_column(
        String2048,
        nullable=False,
        unique=True,
        comment="Canonical URL of the item"
    )

    previous_urls: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="URLs this item was previously known under"
    )

    source_type: Mapped[ContentSourceType] = mapped_column(
        Enum(
            ContentSourceType,
            name="content_source_type",
            native_enum=False,
            values_callable=_enum_values,
            length=20,
        ),
        nullable=False,
        default=ContentSourceType.WEB,
    )

    content_text: Mapped["ContentText | None"] = relationship(
        back_populates="content_item",
        uselist=False,
    )

    def __repr__(self) -> str:
        return f"ContentItem(id={self.id}, url='{self.current_url}')"


# ================================
# ContentText
# ================================

class ContentText(BaseModel):
    """
    Acquired text for exactly one content item.

    Table: content_text
    -------------------
    - One row per content item (unique content_item_id), upserted on
      every (re-)index.
    - content_hash is the SHA-256 hex digest of plain_text; an unchanged
      hash on re-index means chunks and embeddings can be kept.
    - index_status / index_error / indexed_at are the status projection
      served to callers.

    A row with empty text and status PENDING is a placeholder written
    when an item is handed to the job queue.
    """

    __tablename__ = "content_text"

    content_item_id: Mapped[int] = mapped_column(
        ForeignKey("content_items.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="Owning content item (one-to-one)"
    )

    full_text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Raw acquired document (HTML or transcript)"
    )

    plain_text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Normalized plain text used for chunking"
    )

    word_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    content_hash: Mapped[str] = mapped_column(
        String64,
        nullable=False,
        default="",
        comment="SHA-256 hex digest of plain_text"
    )

    crawled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the text was last acquired"
    )

    crawl_duration_ms: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="How long acquisition took"
    )

    index_status: Mapped[IndexStatus] = mapped_column(
        Enum(
            IndexStatus,
            name="index_status",
            native_enum=False,
            values_callable=_enum_values,
            length=20,
        ),
        nullable=False,
        default=IndexStatus.PENDING,
        index=True,
    )

    index_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    indexed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    content_item: Mapped[ContentItem] = relationship(back_populates="content_text")

    chunks: Mapped[list["ContentChunk"]] = relationship(
        back_populates="content_text",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ContentChunk.chunk_index",
    )

    def __repr__(self) -> str:
        return (
            f"ContentText(id={self.id}, content_item_id={self.content_item_id}, "
            f"status={self.index_status.value})"
        )

    @property
    def is_indexed(self) -> bool:
        return self.index_status == IndexStatus.INDEXED


# ================================
# ContentChunk
# ================================

class ContentChunk(BaseModel):
    """
    A chunk of a ContentText, the unit of embedding and retrieval.

    Table: content_chunks
    ---------------------
    - (content_text_id, chunk_index) is unique; chunk_index is 0-based and
      contiguous.
    - The whole chunk set of a ContentText is deleted and re-inserted on
      re-index, never merged.
    - embedding is NULL when embedding generation failed for this chunk;
      such chunks are still found by keyword search.

    Search indexes (created in the migration, PostgreSQL only):
    - GIN on to_tsvector('english', chunk_text) for keyword search
    - HNSW (vector_cosine_ops) on embedding for vector search
    """

    __tablename__ = "content_chunks"

    content_text_id: Mapped[int] = mapped_column(
        ForeignKey("content_text.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    chunk_text: Mapped[str] = mapped_column(Text, nullable=False)

    chunk_index: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Position of this chunk within its text (0-indexed)"
    )

    chunk_token_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    embedding = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=True,
        comment="Embedding vector, NULL if generation failed"
    )

    content_text: Mapped[ContentText] = relationship(back_populates="chunks")

    __table_args__ = (
        UniqueConstraint(
            "content_text_id",
            "chunk_index",
            name="uq_content_chunks_text_chunk_index"
        ),
    )

    def __repr__(self) -> str:
        preview = self.chunk_text[:50] + "..." if self.chunk_text else ""
        return (
            f"ContentChunk(id={self.id}, content_text_id={self.content_text_id}, "
            f"index={self.chunk_index}, text='{preview}')"
        )
