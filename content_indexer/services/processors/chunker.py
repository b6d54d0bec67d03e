"""
Content Chunking Service

Splits normalized plain text into overlapping, token-bounded chunks
suitable for embedding and retrieval.

Strategy:
---------
1. Text that fits in one chunk is returned as a single chunk.
2. Otherwise paragraphs (blank-line separated) are packed into chunks
   up to CHUNK_MAX_TOKENS.
3. A paragraph that alone exceeds the limit is packed sentence by
   sentence; a sentence that alone exceeds the limit (unpunctuated
   auto-captions) is cut into token windows.
4. Each new chunk starts with the last CHUNK_OVERLAP_SENTENCES sentences
   of the previous chunk (~50 tokens) so context carries across
   boundaries. Text without sentence boundaries carries over its last
   words instead, and token windows leave room for them. The overlap is
   dropped if it would push the chunk over the limit.

The chunker is pure: the same text always yields the same chunks, and
chunk indexes are 0-based and contiguous.

Token counting uses tiktoken's cl100k_base encoding so chunk sizes
track what embedding models accept.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional

import tiktoken

from content_indexer.core.config import settings


logger = logging.getLogger(__name__)

PARAGRAPH_SPLIT = re.compile(r"\n\s*\n+")
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
OVERLAP_TOKENS_PER_SENTENCE = 25


@dataclass(frozen=True)
class Chunk:
    text: str
    index: int
    token_count: int


@lru_cache(maxsize=1)
def get_tokenizer() -> Optional[tiktoken.Encoding]:
    """Shared cl100k_base encoding, or None if it cannot be loaded."""
    try:
        return tiktoken.get_encoding("cl100k_base")
    except Exception as e:
        # Encoding files are downloaded on first use; offline hosts fall
        # back to the character estimate
        logger.warning(f"tiktoken unavailable, estimating token counts: {e}")
        return None


def count_tokens(text: str) -> int:
    """
    Count tokens in text using tiktoken.

    Falls back to the usual approximation (1 token ≈ 4 characters) when
    the encoding is unavailable.
    """
    tokenizer = get_tokenizer()
    if tokenizer is not None:
        return len(tokenizer.encode(text, disallowed_special=()))
    return len(text) // 4


def split_paragraphs(text: str) -> list[str]:
    return [p.strip() for p in PARAGRAPH_SPLIT.split(text) if p.strip()]


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in SENTENCE_SPLIT.split(text) if s.strip()]


class ContentChunker:
    """
    Token-bounded chunker with sentence overlap.

    Usage:
    ------
    chunker = ContentChunker()
    for chunk in chunker.chunk(plain_text):
        print(chunk.index, chunk.token_count)
    """

    def __init__(
        self,
        max_tokens: int = None,
        overlap_sentences: int = None,
    ):
        """
        Args:
            max_tokens: Max tokens per chunk (default from settings)
            overlap_sentences: Sentences carried into the next chunk (default from settings)
        """
        self.max_tokens = max_tokens or settings.CHUNK_MAX_TOKENS
        self.overlap_sentences = (
            settings.CHUNK_OVERLAP_SENTENCES if overlap_sentences is None else overlap_sentences
        )
        # Word overlap for text without sentence boundaries, ~25 tokens per sentence
        self.overlap_tokens = min(OVERLAP_TOKENS_PER_SENTENCE * self.overlap_sentences, self.max_tokens // 4)

    def count_tokens(self, text: str) -> int:
        return count_tokens(text)

    def chunk(self, text: str) -> list[Chunk]:
        """
        Split text into chunks.

        Args:
            text: Normalized plain text

        Returns:
            Chunks in order; empty list for blank text
        """
        text = text.strip()
        if not text:
            return []

        total_tokens = self.count_tokens(text)
        if total_tokens <= self.max_tokens:
            return [Chunk(text=text, index=0, token_count=total_tokens)]

        texts: list[str] = []
        current = ""

        for paragraph in split_paragraphs(text):
            if self.count_tokens(paragraph) <= self.max_tokens:
                current = self._append(texts, current, paragraph, separator="\n\n")
                continue

            # Oversized paragraph: pack it sentence by sentence
            for sentence in split_sentences(paragraph):
                for piece in self._split_oversized(sentence):
                    current = self._append(texts, current, piece, separator=" ")

        if current:
            texts.append(current)

        return [
            Chunk(text=chunk_text, index=i, token_count=self.count_tokens(chunk_text))
            for i, chunk_text in enumerate(texts)
        ]

    # ========================================
    # Helpers
    # ========================================

    def _append(self, texts: list[str], current: str, piece: str, separator: str) -> str:
        """Add piece to the current chunk, flushing it first if it would overflow."""
        if not current:
            return piece

        candidate = f"{current}{separator}{piece}"
        if self.count_tokens(candidate) <= self.max_tokens:
            return candidate

        texts.append(current)

        overlap = self._overlap(current)
        if overlap:
            with_overlap = f"{overlap} {piece}"
            if self.count_tokens(with_overlap) <= self.max_tokens:
                return with_overlap
        return piece

    def _overlap(self, chunk_text: str) -> str:
        if self.overlap_sentences <= 0:
            return ""
        sentences = split_sentences(chunk_text.replace("\n\n", " "))
        if len(sentences) <= 1:
            # No sentence boundary (unpunctuated captions): carry the last
            # words instead
            return self._tail_words(chunk_text)
        keep = min(self.overlap_sentences, len(sentences) - 1)
        return " ".join(sentences[-keep:])

    def _tail_words(self, chunk_text: str) -> str:
        """Last words of the chunk worth up to overlap_tokens, never the whole chunk."""
        cost, scale = self._word_cost()
        limit = self.overlap_tokens * scale

        words = chunk_text.split()
        tail: list[str] = []
        used = 0
        for word in reversed(words[1:]):
            word_cost = cost(word)
            if used + word_cost > limit:
                break
            tail.append(word)
            used += word_cost
        return " ".join(reversed(tail))

    def _word_cost(self) -> tuple[Callable[[str], int], int]:
        """Per-word cost function and its units per token."""
        tokenizer = get_tokenizer()
        if tokenizer is None:
            # Characters, matching the len // 4 estimate
            return (lambda word: len(word) + 1), 4

        # Per-word counts with the leading space match how cl100k splits
        # running text, so the sum tracks the joined count
        return (lambda word: len(tokenizer.encode(f" {word}", disallowed_special=()))), 1

    def _split_oversized(self, sentence: str) -> list[str]:
        """Cut a single over-long sentence into token windows, leaving room for overlap."""
        if self.count_tokens(sentence) <= self.max_tokens:
            return [sentence]

        cost, scale = self._word_cost()
        budget = (self.max_tokens - self.overlap_tokens) * scale

        pieces = []
        current: list[str] = []
        used = 0
        for word in sentence.split():
            word_cost = cost(word)
            if current and used + word_cost > budget:
                pieces.append(" ".join(current))
                current, used = [], 0
            current.append(word)
            used += word_cost
        if current:
            pieces.append(" ".join(current))
        return pieces
