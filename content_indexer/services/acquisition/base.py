"""
Shared types for content acquisition.

Every strategy returns a FetchResult or raises FetchError. FetchError is
the only exception that leaves an acquisition strategy; its ``kind``
tells callers what went wrong (a timeout is distinct from an unreachable
host or a non-2xx status).
"""

import enum
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from content_indexer.services.processors.chunker import count_tokens


# ========================================
# Custom Exceptions
# ========================================


class FetchErrorKind(str, enum.Enum):
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    UNREACHABLE = "unreachable"
    INSUFFICIENT_CONTENT = "insufficient_content"
    INVALID_VIDEO_URL = "invalid_video_url"
    TRANSCRIPT_UNAVAILABLE = "transcript_unavailable"
    RENDER_FAILED = "render_failed"


class FetchError(Exception):
    """Raised when a URL cannot be turned into text."""

    def __init__(
        self,
        url: str,
        message: str,
        kind: FetchErrorKind,
        duration_ms: int = 0,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.url = url
        self.message = message
        self.kind = kind
        self.duration_ms = duration_ms
        self.status_code = status_code
        self.cause = cause

    @property
    def is_timeout(self) -> bool:
        return self.kind == FetchErrorKind.TIMEOUT

    def __str__(self) -> str:
        return self.message


# ========================================
# Results
# ========================================


class StrategyName(str, enum.Enum):
    STATIC_PAGE = "static_page"
    VIDEO_TRANSCRIPT = "video_transcript"
    RENDERED_PAGE = "rendered_page"


@dataclass
class FetchResult:
    """Normalized text acquired from one URL."""

    url: str
    final_url: str
    plain_text: str
    full_text: str
    word_count: int
    token_count: int
    duration_ms: int
    strategy: StrategyName

    @property
    def was_redirected(self) -> bool:
        return normalize_url(self.final_url) != normalize_url(self.url)

    @property
    def is_empty(self) -> bool:
        return not self.plain_text.strip()


class AcquisitionStrategy(Protocol):
    """One way of turning a URL into text."""

    name: StrategyName

    async def fetch(self, url: str) -> FetchResult:
        ...


# ========================================
# Helpers
# ========================================


def count_words(text: str) -> int:
    return len(text.split())


def normalize_url(url: str) -> str:
    """Comparison form of a URL: no fragment, no trailing slash."""
    url = url.split("#", 1)[0].strip()
    return url.rstrip("/") if url.count("/") > 2 else url


def build_result(
    url: str,
    final_url: str,
    plain_text: str,
    full_text: str,
    started: float,
    strategy: StrategyName,
) -> FetchResult:
    return FetchResult(
        url=url,
        final_url=final_url,
        plain_text=plain_text,
        full_text=full_text,
        word_count=count_words(plain_text),
        token_count=count_tokens(plain_text) if plain_text else 0,
        duration_ms=elapsed_ms(started),
        strategy=strategy,
    )


def elapsed_ms(started: float) -> int:
    """Milliseconds since ``started`` (a time.monotonic() value)."""
    return int((time.monotonic() - started) * 1000)
