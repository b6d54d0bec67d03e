"""
Reciprocal Rank Fusion (RRF).

Combines ranked candidate lists whose raw scores are not comparable
(ts_rank vs. cosine distance) using rank positions only:

    score(chunk) = Σ over lists containing chunk of 1 / (k + rank + 1)

with 0-based ``rank``. ``k`` damps the advantage of the top ranks; 60 is
the usual value from the IR literature.

Example with k = 1, keyword = [c1, c2], semantic = [c2, c3]:

    c2 = 1/3 + 1/2 = 5/6   (both)
    c1 = 1/2               (keyword)
    c3 = 1/3               (semantic)
"""

import enum
import operator
from collections import defaultdict
from dataclasses import dataclass
from typing import Hashable, Optional, Sequence


class MatchType(str, enum.Enum):
    KEYWORD = "keyword"
    SEMANTIC = "semantic"
    BOTH = "both"


@dataclass(frozen=True)
class Candidate:
    """A chunk returned by one of the candidate lookups."""

    chunk_id: int
    content_item_id: int
    chunk_text: str
    # Raw engine score: ts_rank for keyword hits, cosine distance for vector hits
    raw_score: Optional[float] = None


@dataclass(frozen=True)
class FusedCandidate:
    candidate: Candidate
    score: float
    match_type: MatchType


def rrf_scores(*ranked_lists: Sequence[Hashable], k: int = 60) -> list[tuple[Hashable, float]]:
    """
    Fuse ranked lists of hashable keys.

    Returns (key, score) pairs sorted by score, descending. Ties keep
    first-seen order (earlier lists first), so the output is a pure
    function of the inputs.
    """
    scores: dict[Hashable, float] = defaultdict(float)
    for items in ranked_lists:
        for rank, item in enumerate(items):
            scores[item] += 1 / (k + rank + 1)

    return sorted(scores.items(), key=operator.itemgetter(1), reverse=True)


def reciprocal_rank_fusion(
    keyword: Sequence[Candidate],
    semantic: Sequence[Candidate],
    k: int = 60,
    limit: Optional[int] = None,
) -> list[FusedCandidate]:
    """
    Fuse keyword-ranked and vector-ranked candidates by chunk id.

    Args:
        keyword: Candidates ordered by text relevance, best first
        semantic: Candidates ordered by vector similarity, best first
        k: RRF smoothing constant
        limit: Truncate the fused list to this many results

    Returns:
        Fused candidates, best first, with their match type
    """
    by_id: dict[int, Candidate] = {}
    for candidate in (*keyword, *semantic):
        by_id.setdefault(candidate.chunk_id, candidate)

    keyword_ids = [c.chunk_id for c in keyword]
    semantic_ids = [c.chunk_id for c in semantic]
    in_keyword = set(keyword_ids)
    in_semantic = set(semantic_ids)

    fused = []
    for chunk_id, score in rrf_scores(keyword_ids, semantic_ids, k=k):
        if chunk_id in in_keyword and chunk_id in in_semantic:
            match_type = MatchType.BOTH
        elif chunk_id in in_keyword:
            match_type = MatchType.KEYWORD
        else:
            match_type = MatchType.SEMANTIC
        fused.append(FusedCandidate(candidate=by_id[chunk_id], score=score, match_type=match_type))

    return fused if limit is None else fused[:limit]
