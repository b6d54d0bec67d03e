"""
Search Services

- Reciprocal Rank Fusion of keyword and vector candidates
- Snippet extraction around query terms
- Hybrid and keyword-only search over indexed chunks
"""

from content_indexer.services.search.fusion import (
    Candidate,
    FusedCandidate,
    MatchType,
    reciprocal_rank_fusion,
    rrf_scores,
)
from content_indexer.services.search.hybrid import HybridSearchService, SearchResult
from content_indexer.services.search.snippet import Snippet, extract_snippet, query_terms

__all__ = [
    "Candidate",
    "FusedCandidate",
    "MatchType",
    "reciprocal_rank_fusion",
    "rrf_scores",
    "HybridSearchService",
    "SearchResult",
    "Snippet",
    "extract_snippet",
    "query_terms",
]
