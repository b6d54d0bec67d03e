"""
Pytest configuration and fixtures.

Environment variables are set before any content_indexer import: the
settings object and the global engine are created at import time.

Database tests run against a throwaway SQLite file per test (aiosqlite),
created from the models with create_all. PostgreSQL-only SQL (full-text
ranking, pgvector distance) is not exercised here; the search tests inject
candidate lists instead.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENABLE_CONTENT_INDEXING"] = "true"
os.environ["INDEXING_BROWSER_FALLBACK_ENABLED"] = "false"
# SQLite allows one writer at a time
os.environ["INDEXING_SYNC_CONCURRENCY"] = "1"
os.environ["EMBEDDING_DIMENSION"] = "8"
os.environ["LOG_FORMAT"] = "text"

from typing import AsyncGenerator, Optional, Union  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from content_indexer.db.base import Base  # noqa: E402
from content_indexer.db.session import create_session_factory  # noqa: E402
from content_indexer.models import ContentItem, ContentSourceType  # noqa: E402
from content_indexer.services.acquisition.base import (  # noqa: E402
    FetchError,
    FetchResult,
    StrategyName,
    count_words,
)
from content_indexer.services.processors.chunker import Chunk  # noqa: E402
from content_indexer.services.processors.embedder import EmbeddingError  # noqa: E402

EMBEDDING_DIMENSION = 8


# ================================
# Database Fixtures
# ================================

@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Engine on a fresh SQLite file with all tables created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest.fixture
def make_item(session_factory):
    """Create a content item row and return its id."""

    async def _make_item(
        url: str,
        title: str = "Test item",
        previous_urls: Optional[list[str]] = None,
        source_type: ContentSourceType = ContentSourceType.WEB,
    ) -> int:
        async with session_factory() as session:
            item = ContentItem(
                title=title,
                current_url=url,
                previous_urls=previous_urls or [],
                source_type=source_type,
            )
            session.add(item)
            await session.commit()
            return item.id

    return _make_item


# ================================
# Collaborator Fakes
# ================================

def make_fetch_result(
    url: str,
    text: str,
    final_url: Optional[str] = None,
    strategy: StrategyName = StrategyName.STATIC_PAGE,
) -> FetchResult:
    return FetchResult(
        url=url,
        final_url=final_url or url,
        plain_text=text,
        full_text=f"<html><body>{text}</body></html>",
        word_count=count_words(text),
        token_count=len(text) // 4,
        duration_ms=12,
        strategy=strategy,
    )


class FakeAcquirer:
    """Returns canned results (or raises canned errors) per URL."""

    def __init__(self):
        self.responses: dict[str, Union[FetchResult, FetchError]] = {}
        self.calls: list[str] = []

    def set_text(self, url: str, text: str, final_url: Optional[str] = None) -> None:
        self.responses[url] = make_fetch_result(url, text, final_url=final_url)

    def set_error(self, url: str, error: FetchError) -> None:
        self.responses[url] = error

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        response = self.responses[url]
        if isinstance(response, FetchError):
            raise response
        return response


class ParagraphChunker:
    """One chunk per paragraph; keeps chunk boundaries obvious in tests."""

    def chunk(self, text: str) -> list[Chunk]:
        paragraphs = [p.strip() for p in text.split("\n\n") if p.strip()]
        return [
            Chunk(text=paragraph, index=i, token_count=len(paragraph.split()))
            for i, paragraph in enumerate(paragraphs)
        ]


class FakeEmbedder:
    """Deterministic vectors; texts containing fail_marker raise EmbeddingError."""

    def __init__(self, fail_marker: Optional[str] = None):
        self.fail_marker = fail_marker
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail_marker and self.fail_marker in text:
            raise EmbeddingError("upstream embedding failure")
        return [float(len(text) % 7) / 7.0] * EMBEDDING_DIMENSION


@pytest.fixture
def fake_acquirer() -> FakeAcquirer:
    return FakeAcquirer()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def paragraph_chunker() -> ParagraphChunker:
    return ParagraphChunker()
