"""
Indexing API endpoints.

Entry points for the metadata layer (imports, content edits, API syncs)
and for operators: batch indexing, re-index, status lookups and queue
maintenance.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from content_indexer.api.deps import get_job_queue, get_orchestrator
from content_indexer.schemas.indexing import (
    EnqueueResponse,
    IndexContentRequest,
    IndexingResultResponse,
    IndexingStatsResponse,
    IndexStatusResponse,
    QueueStatsResponse,
)
from content_indexer.services.indexing.orchestrator import (
    IndexErrorKind,
    IndexingOrchestrator,
    IndexingResult,
    IndexItem,
)
from content_indexer.services.job_queue import JobQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/indexing", tags=["Indexing"])


def _result_response(result: IndexingResult) -> IndexingResultResponse:
    if result.error_kind == IndexErrorKind.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return IndexingResultResponse.model_validate(result, from_attributes=True)


# ========================================
# Indexing
# ========================================


@router.post("/index", response_model=IndexingStatsResponse)
async def index_content(
    request: IndexContentRequest,
    orchestrator: IndexingOrchestrator = Depends(get_orchestrator),
) -> IndexingStatsResponse:
    """
    Index a batch of content items.

    Small batches are indexed before the response is sent; items beyond
    INDEXING_SYNC_THRESHOLD are queued and reported with queued=true.
    """
    items = [IndexItem(id=item.id, url=item.url) for item in request.items]
    stats = await orchestrator.index_content(items)
    return IndexingStatsResponse.model_validate(stats, from_attributes=True)


@router.post("/items/{content_item_id}/reindex", response_model=IndexingResultResponse)
async def reindex_item(
    content_item_id: int,
    orchestrator: IndexingOrchestrator = Depends(get_orchestrator),
) -> IndexingResultResponse:
    """Re-acquire and re-index one item from its current URL."""
    logger.info(f"Re-index requested for item {content_item_id}")
    return _result_response(await orchestrator.reindex_content(content_item_id))


@router.post("/content-text/{content_text_id}/index", response_model=IndexingResultResponse)
async def index_existing_content(
    content_text_id: int,
    orchestrator: IndexingOrchestrator = Depends(get_orchestrator),
) -> IndexingResultResponse:
    """Chunk and embed text that a content sync already stored."""
    return _result_response(await orchestrator.index_from_existing_content(content_text_id))


@router.get("/items/{content_item_id}/status", response_model=IndexStatusResponse)
async def get_index_status(
    content_item_id: int,
    orchestrator: IndexingOrchestrator = Depends(get_orchestrator),
) -> IndexStatusResponse:
    """Index status of a content item."""
    view = await orchestrator.get_index_status(content_item_id)
    if view is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No index status for content item {content_item_id}",
        )
    return IndexStatusResponse.model_validate(view, from_attributes=True)


# ========================================
# Queue Maintenance
# ========================================


@router.get("/queue/stats", response_model=QueueStatsResponse)
async def get_queue_stats(queue: JobQueue = Depends(get_job_queue)) -> QueueStatsResponse:
    """Number of indexing jobs per state."""
    counts = await queue.stats()
    return QueueStatsResponse(queue=queue.name, **counts)


@router.post("/queue/enqueue-pending", response_model=EnqueueResponse)
async def enqueue_pending(
    orchestrator: IndexingOrchestrator = Depends(get_orchestrator),
) -> EnqueueResponse:
    """Queue every item whose status is pending but has no outstanding job."""
    return EnqueueResponse(enqueued=await orchestrator.enqueue_pending())


@router.post("/queue/retry-failed", response_model=EnqueueResponse)
async def retry_failed(
    orchestrator: IndexingOrchestrator = Depends(get_orchestrator),
) -> EnqueueResponse:
    """Queue every item whose last indexing attempt failed."""
    return EnqueueResponse(enqueued=await orchestrator.retry_failed())
