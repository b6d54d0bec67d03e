"""
Search snippet extraction.

Shows where the query terms occur in a matched chunk instead of always
showing the chunk's first characters.
"""

from dataclasses import dataclass, field

# Characters of context kept before the first match
CONTEXT_BEFORE = 60
ELLIPSIS = "..."


@dataclass
class Snippet:
    snippet: str
    matched_terms: list[str] = field(default_factory=list)


def query_terms(query: str) -> list[str]:
    """Lowercased query terms longer than two characters, in query order, without repeats."""
    terms: list[str] = []
    for term in query.lower().split():
        if len(term) > 2 and term not in terms:
            terms.append(term)
    return terms


def extract_snippet(chunk_text: str, query: str, max_length: int = 200) -> Snippet:
    """
    Excerpt of ``chunk_text`` around the earliest query-term match.

    - Terms of length <= 2 are ignored ("a", "of", "to").
    - Matching is case-insensitive; matched_terms are the lowercased
      terms found anywhere in the chunk.
    - Without any match (pure semantic hit) the first max_length
      characters are returned.
    - The window keeps up to CONTEXT_BEFORE characters before the match
      (less when max_length is too small to fit the term otherwise) and
      gets "..." on each side where it does not reach the text boundary.
    """
    lowered = chunk_text.lower()

    first_pos = -1
    first_term = ""
    matched_terms: list[str] = []

    for term in query_terms(query):
        pos = lowered.find(term)
        if pos == -1:
            continue
        matched_terms.append(term)
        if first_pos == -1 or pos < first_pos:
            first_pos = pos
            first_term = term

    if first_pos == -1:
        return Snippet(snippet=chunk_text[:max_length], matched_terms=[])

    lead = min(CONTEXT_BEFORE, max(0, (max_length - len(first_term)) // 2))
    start = max(0, first_pos - lead)
    end = min(len(chunk_text), start + max_length)

    snippet = chunk_text[start:end]
    if start > 0:
        snippet = ELLIPSIS + snippet
    if end < len(chunk_text):
        snippet = snippet + ELLIPSIS

    return Snippet(snippet=snippet, matched_terms=matched_terms)
