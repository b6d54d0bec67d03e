"""
Pydantic schemas for the search endpoint.
"""

import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from content_indexer.services.search.fusion import MatchType


class SearchMode(str, enum.Enum):
    HYBRID = "hybrid"
    KEYWORD = "keyword"


class SearchResultResponse(BaseModel):
    """One ranked chunk."""

    model_config = ConfigDict(from_attributes=True)

    content_item_id: int
    chunk_id: int
    chunk_text: str
    snippet: str
    relevance_score: float
    match_type: MatchType
    matched_terms: List[str]
    text_rank: Optional[float] = None


class SearchResponse(BaseModel):
    query: str
    mode: SearchMode
    total: int
    results: List[SearchResultResponse]
