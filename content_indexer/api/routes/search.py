"""
Search API endpoint.

Hybrid mode fuses full-text and vector results; keyword mode skips
embedding generation entirely.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from content_indexer.api.deps import get_search_service
from content_indexer.core.config import settings
from content_indexer.schemas.search import SearchMode, SearchResponse, SearchResultResponse
from content_indexer.services.processors.embedder import EmbeddingError
from content_indexer.services.search.hybrid import HybridSearchService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["Search"])


@router.get("", response_model=SearchResponse)
async def search(
    q: str = Query(..., min_length=1, max_length=500, description="Search query"),
    limit: int = Query(settings.SEARCH_DEFAULT_LIMIT, ge=1, le=100),
    mode: SearchMode = Query(SearchMode.HYBRID),
    service: HybridSearchService = Depends(get_search_service),
) -> SearchResponse:
    """Ranked chunks matching the query, with snippets."""
    if mode == SearchMode.KEYWORD:
        results = await service.keyword_search(q, limit=limit)
    else:
        try:
            results = await service.hybrid_search(q, limit=limit)
        except EmbeddingError as e:
            logger.error(f"Hybrid search unavailable: {e}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Semantic search unavailable: {e}. Use mode=keyword.",
            )

    return SearchResponse(
        query=q,
        mode=mode,
        total=len(results),
        results=[SearchResultResponse.model_validate(r, from_attributes=True) for r in results],
    )
