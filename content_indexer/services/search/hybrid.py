"""
Hybrid search over indexed chunks.

Two candidate lookups run concurrently, each in its own session:

1. Keyword: PostgreSQL full-text search,
   to_tsvector('english', chunk_text) @@ plainto_tsquery('english', q),
   ordered by ts_rank (served by the GIN index from the migration).
2. Semantic: pgvector cosine distance between the query embedding and
   chunk embeddings (served by the HNSW index). Chunks whose embedding
   failed (NULL) are skipped here but still reachable by keyword.

Both lists are capped at SEARCH_CANDIDATES_PER_LIST (larger than any
page size, so fusion has enough material), fused with Reciprocal Rank
Fusion, truncated to ``limit`` and given snippets.

keyword_search() is the embedding-free variant: text-ranked list only,
scored 1 / (rank + 1).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import func, literal_column, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_indexer.core.config import settings
from content_indexer.models.content import ContentChunk, ContentText
from content_indexer.services.processors.embedder import EmbeddingService
from content_indexer.services.search.fusion import (
    Candidate,
    FusedCandidate,
    MatchType,
    reciprocal_rank_fusion,
)
from content_indexer.services.search.snippet import extract_snippet


logger = logging.getLogger(__name__)

TS_CONFIG = literal_column("'english'::regconfig")


@dataclass
class SearchResult:
    content_item_id: int
    chunk_id: int
    chunk_text: str
    snippet: str
    relevance_score: float
    match_type: MatchType
    matched_terms: list[str] = field(default_factory=list)
    # ts_rank of keyword hits, when the engine provided one
    text_rank: Optional[float] = None


class HybridSearchService:
    """
    Keyword + vector search with Reciprocal Rank Fusion.

    Example:
        >>> service = HybridSearchService(AsyncSessionLocal, get_embedding_service())
        >>> results = await service.hybrid_search("postgres insert performance", limit=10)
        >>> [(r.match_type, round(r.relevance_score, 4)) for r in results]
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Optional[EmbeddingService] = None,
        rrf_k: Optional[int] = None,
        candidates_per_list: Optional[int] = None,
        snippet_length: Optional[int] = None,
    ):
        """
        Args:
            session_factory: Each lookup opens its own session from this
            embedder: Needed only when hybrid_search() gets no embedding
            rrf_k: RRF smoothing constant (default SEARCH_RRF_K)
            candidates_per_list: Pool size per lookup (default SEARCH_CANDIDATES_PER_LIST)
            snippet_length: Snippet max length (default SNIPPET_MAX_LENGTH)
        """
        self.session_factory = session_factory
        self.embedder = embedder
        self.rrf_k = settings.SEARCH_RRF_K if rrf_k is None else rrf_k
        self.candidates_per_list = candidates_per_list or settings.SEARCH_CANDIDATES_PER_LIST
        self.snippet_length = snippet_length or settings.SNIPPET_MAX_LENGTH

    # ========================================
    # Public API
    # ========================================

    async def hybrid_search(
        self,
        query: str,
        limit: int = 10,
        embedding: Optional[Sequence[float]] = None,
    ) -> list[SearchResult]:
        """
        Fused keyword + semantic search.

        Args:
            query: Search text
            limit: Maximum number of results
            embedding: Precomputed query embedding; generated with the
                embedder when omitted

        Raises:
            EmbeddingError: If the query embedding cannot be generated
        """
        query = query.strip()
        if not query or limit <= 0:
            return []

        if embedding is None:
            if self.embedder is None:
                raise ValueError("hybrid_search needs an embedding or an embedder")
            embedding = await self.embedder.embed_query(query)

        keyword, semantic = await asyncio.gather(
            self.keyword_candidates(query, self.candidates_per_list),
            self.vector_candidates(embedding, self.candidates_per_list),
        )

        fused = reciprocal_rank_fusion(keyword, semantic, k=self.rrf_k, limit=limit)

        logger.info(
            f"Hybrid search '{query}': {len(keyword)} keyword + {len(semantic)} semantic "
            f"candidates -> {len(fused)} results"
        )
        return [self._to_result(item, query) for item in fused]

    async def keyword_search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """Text-ranked results only; no embedding is generated."""
        query = query.strip()
        if not query or limit <= 0:
            return []

        candidates = await self.keyword_candidates(query, limit)

        results = []
        for rank, candidate in enumerate(candidates):
            snippet = extract_snippet(candidate.chunk_text, query, self.snippet_length)
            results.append(SearchResult(
                content_item_id=candidate.content_item_id,
                chunk_id=candidate.chunk_id,
                chunk_text=candidate.chunk_text,
                snippet=snippet.snippet,
                relevance_score=1 / (rank + 1),
                match_type=MatchType.KEYWORD,
                matched_terms=snippet.matched_terms,
                text_rank=candidate.raw_score,
            ))
        return results

    # ========================================
    # Candidate Lookups
    # ========================================

    async def keyword_candidates(self, query: str, limit: int) -> list[Candidate]:
        """Chunks matching the query, best ts_rank first."""
        ts_query = func.plainto_tsquery(TS_CONFIG, query)
        ts_vector = func.to_tsvector(TS_CONFIG, ContentChunk.chunk_text)
        rank_score = func.ts_rank(ts_vector, ts_query).label("rank_score")

        stmt = (
            select(
                ContentChunk.id.label("chunk_id"),
                ContentText.content_item_id,
                ContentChunk.chunk_text,
                rank_score,
            )
            .join(ContentText, ContentText.id == ContentChunk.content_text_id)
            .where(ts_vector.op("@@")(ts_query))
            .order_by(rank_score.desc(), ContentChunk.id)
            .limit(limit)
        )

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            Candidate(
                chunk_id=row.chunk_id,
                content_item_id=row.content_item_id,
                chunk_text=row.chunk_text,
                raw_score=float(row.rank_score),
            )
            for row in rows
        ]

    async def vector_candidates(self, embedding: Sequence[float], limit: int) -> list[Candidate]:
        """Chunks nearest to the embedding by cosine distance."""
        distance = ContentChunk.embedding.cosine_distance(list(embedding)).label("distance")

        stmt = (
            select(
                ContentChunk.id.label("chunk_id"),
                ContentText.content_item_id,
                ContentChunk.chunk_text,
                distance,
            )
            .join(ContentText, ContentText.id == ContentChunk.content_text_id)
            .where(ContentChunk.embedding.isnot(None))
            .order_by(distance, ContentChunk.id)
            .limit(limit)
        )

        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            Candidate(
                chunk_id=row.chunk_id,
                content_item_id=row.content_item_id,
                chunk_text=row.chunk_text,
                raw_score=float(row.distance),
            )
            for row in rows
        ]

    # ========================================
    # Helpers
    # ========================================

    def _to_result(self, item: FusedCandidate, query: str) -> SearchResult:
        candidate = item.candidate
        snippet = extract_snippet(candidate.chunk_text, query, self.snippet_length)
        return SearchResult(
            content_item_id=candidate.content_item_id,
            chunk_id=candidate.chunk_id,
            chunk_text=candidate.chunk_text,
            snippet=snippet.snippet,
            relevance_score=item.score,
            match_type=item.match_type,
            matched_terms=snippet.matched_terms,
            text_rank=candidate.raw_score if item.match_type != MatchType.SEMANTIC else None,
        )
