"""
Database Models

Import models from this module so they are registered on the metadata
(Alembic autogenerate and create_all rely on it):

    from content_indexer.models import ContentItem, ContentText, ContentChunk, IndexJob
"""

from content_indexer.models.content import (
    ContentChunk,
    ContentItem,
    ContentSourceType,
    ContentText,
    IndexStatus,
)
from content_indexer.models.jobs import OUTSTANDING_STATES, IndexJob, JobState

__all__ = [
    "ContentItem",
    "ContentSourceType",
    "ContentText",
    "ContentChunk",
    "IndexStatus",
    "IndexJob",
    "JobState",
    "OUTSTANDING_STATES",
]
