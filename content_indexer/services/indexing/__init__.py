"""
Indexing Services

- store: content_text / content_chunks persistence and status projection
- orchestrator: per-item pipeline, sync/queued batches, recovery helpers
"""

from content_indexer.services.indexing.orchestrator import (
    DISABLED_MESSAGE,
    NO_CONTENT_MESSAGE,
    IndexErrorKind,
    IndexingOrchestrator,
    IndexingResult,
    IndexingStats,
    IndexItem,
    content_hash,
)
from content_indexer.services.indexing.store import ConflictingItem, IndexStatusView, IndexStore

__all__ = [
    "DISABLED_MESSAGE",
    "NO_CONTENT_MESSAGE",
    "IndexErrorKind",
    "IndexingOrchestrator",
    "IndexingResult",
    "IndexingStats",
    "IndexItem",
    "content_hash",
    "ConflictingItem",
    "IndexStatusView",
    "IndexStore",
]
