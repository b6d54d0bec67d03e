"""
Pydantic schemas for the indexing API endpoints.

Response schemas read directly from the orchestrator's result dataclasses
(from_attributes=True).
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from content_indexer.models.content import IndexStatus
from content_indexer.services.indexing.orchestrator import IndexErrorKind


# ========================================
# Request Schemas
# ========================================


class IndexItemRequest(BaseModel):
    """One content item to index."""

    id: int = Field(..., gt=0, description="Content item id")
    url: str = Field(
        ...,
        min_length=1,
        max_length=2048,
        description="URL to acquire the item's text from",
        examples=["https://example.com/blog/post", "https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Strip whitespace and require an http(s) URL."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v


class IndexContentRequest(BaseModel):
    """Batch of items handed over by an import or sync."""

    items: List[IndexItemRequest] = Field(..., min_length=1, max_length=1000)


# ========================================
# Response Schemas
# ========================================


class IndexingResultResponse(BaseModel):
    """Outcome for one item."""

    model_config = ConfigDict(from_attributes=True)

    success: bool
    content_item_id: int
    error: Optional[str] = None
    error_kind: Optional[IndexErrorKind] = None
    queued: bool = False
    skipped: bool = False
    chunk_count: int = 0
    job_id: Optional[int] = None


class IndexingStatsResponse(BaseModel):
    """Outcome of a batch: counts plus one result per item, in input order."""

    model_config = ConfigDict(from_attributes=True)

    total: int
    succeeded: int
    failed: int
    queued: int
    results: List[IndexingResultResponse]


class IndexStatusResponse(BaseModel):
    """Index status of one content item."""

    model_config = ConfigDict(from_attributes=True)

    content_item_id: int
    status: IndexStatus
    error: Optional[str] = None
    word_count: int
    token_count: int
    chunk_count: int
    indexed_at: Optional[datetime] = None
    crawled_at: Optional[datetime] = None


class QueueStatsResponse(BaseModel):
    """Job counts per state."""

    queue: str
    created: int = 0
    retry: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0


class EnqueueResponse(BaseModel):
    enqueued: int
