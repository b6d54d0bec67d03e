"""
Tests for the HTTP API.

Services are injected through app.dependency_overrides: the orchestrator
and queue run on the per-test SQLite database with fake collaborators,
search uses a mocked service.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from content_indexer.api.deps import get_job_queue, get_orchestrator, get_search_service
from content_indexer.main import app
from content_indexer.services.acquisition.base import FetchError, FetchErrorKind
from content_indexer.services.indexing import IndexingOrchestrator
from content_indexer.services.job_queue import JobQueue
from content_indexer.services.processors.embedder import EmbeddingError
from content_indexer.services.search.fusion import MatchType
from content_indexer.services.search.hybrid import SearchResult


PREFIX = "/api/v1"


@pytest.fixture
def orchestrator(session_factory, fake_acquirer, paragraph_chunker, fake_embedder) -> IndexingOrchestrator:
    return IndexingOrchestrator(
        session_factory,
        acquirer=fake_acquirer,
        chunker=paragraph_chunker,
        embedder=fake_embedder,
        queue=JobQueue(session_factory),
        enabled=True,
        sync_threshold=2,
        sync_concurrency=1,
    )


@pytest.fixture
def search_service() -> MagicMock:
    service = MagicMock()
    service.hybrid_search = AsyncMock(return_value=[])
    service.keyword_search = AsyncMock(return_value=[])
    return service


@pytest_asyncio.fixture
async def client(session_factory, orchestrator, search_service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app with services overridden."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_job_queue] = lambda: JobQueue(session_factory)
    app.dependency_overrides[get_search_service] = lambda: search_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ================================
# Health Check Tests
# ================================

@pytest.mark.asyncio
class TestHealth:

    async def test_healthy(self, client):
        with patch("content_indexer.main.check_db_health", AsyncMock(return_value=True)):
            response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["indexing_enabled"] is True

    async def test_database_down(self, client):
        with patch("content_indexer.main.check_db_health", AsyncMock(return_value=False)):
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"


# ================================
# Indexing Tests
# ================================

@pytest.mark.asyncio
class TestIndexingRoutes:

    async def test_index_batch(self, client, make_item, fake_acquirer):
        items = []
        for i in range(3):
            url = f"https://example.com/{i}"
            fake_acquirer.set_text(url, f"Paragraph {i}.\n\nAnother paragraph {i}.")
            items.append({"id": await make_item(url), "url": url})

        response = await client.post(f"{PREFIX}/indexing/index", json={"items": items})

        assert response.status_code == 200
        data = response.json()
        assert (data["total"], data["succeeded"], data["failed"], data["queued"]) == (3, 2, 0, 1)
        assert data["results"][0]["chunk_count"] == 2
        assert data["results"][2]["queued"] is True
        assert data["results"][2]["job_id"] is not None

    async def test_index_batch_validation(self, client):
        response = await client.post(f"{PREFIX}/indexing/index", json={"items": []})
        assert response.status_code == 422

        response = await client.post(
            f"{PREFIX}/indexing/index", json={"items": [{"id": 1, "url": "ftp://example.com"}]}
        )
        assert response.status_code == 422

    async def test_status(self, client, make_item, fake_acquirer):
        item_id = await make_item("https://example.com/a")
        fake_acquirer.set_text("https://example.com/a", "One.\n\nTwo.\n\nThree.")
        await client.post(
            f"{PREFIX}/indexing/index", json={"items": [{"id": item_id, "url": "https://example.com/a"}]}
        )

        response = await client.get(f"{PREFIX}/indexing/items/{item_id}/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "indexed"
        assert data["chunk_count"] == 3
        assert data["error"] is None

    async def test_status_failed_item(self, client, make_item, fake_acquirer):
        item_id = await make_item("https://example.com/gone")
        fake_acquirer.set_error(
            "https://example.com/gone",
            FetchError("https://example.com/gone", "HTTP 404: Not Found", FetchErrorKind.HTTP_STATUS),
        )
        await client.post(
            f"{PREFIX}/indexing/index", json={"items": [{"id": item_id, "url": "https://example.com/gone"}]}
        )

        data = (await client.get(f"{PREFIX}/indexing/items/{item_id}/status")).json()

        assert data["status"] == "failed"
        assert data["error"] == "HTTP 404: Not Found"

    async def test_status_not_found(self, client):
        response = await client.get(f"{PREFIX}/indexing/items/999/status")

        assert response.status_code == 404

    async def test_reindex(self, client, make_item, fake_acquirer, fake_embedder):
        item_id = await make_item("https://example.com/a")
        fake_acquirer.set_text("https://example.com/a", "One.\n\nTwo.")

        response = await client.post(f"{PREFIX}/indexing/items/{item_id}/reindex")

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert response.json()["chunk_count"] == 2

    async def test_reindex_unknown_item(self, client):
        response = await client.post(f"{PREFIX}/indexing/items/999/reindex")

        assert response.status_code == 404

    async def test_index_existing_content_not_found(self, client):
        response = await client.post(f"{PREFIX}/indexing/content-text/999/index")

        assert response.status_code == 404

    async def test_queue_stats_and_recovery(self, client, make_item, fake_acquirer):
        item_id = await make_item("https://example.com/flaky")
        fake_acquirer.set_error(
            "https://example.com/flaky",
            FetchError("https://example.com/flaky", "Timeout after 5000ms", FetchErrorKind.TIMEOUT),
        )
        await client.post(
            f"{PREFIX}/indexing/index", json={"items": [{"id": item_id, "url": "https://example.com/flaky"}]}
        )

        response = await client.post(f"{PREFIX}/indexing/queue/retry-failed")
        assert response.json() == {"enqueued": 1}

        response = await client.post(f"{PREFIX}/indexing/queue/enqueue-pending")
        assert response.json() == {"enqueued": 0}

        stats = (await client.get(f"{PREFIX}/indexing/queue/stats")).json()
        assert stats["queue"] == "index-content"
        assert stats["created"] == 1
        assert stats["failed"] == 0


# ================================
# Search Tests
# ================================

@pytest.mark.asyncio
class TestSearchRoutes:

    def result(self, **overrides) -> SearchResult:
        values = dict(
            content_item_id=10,
            chunk_id=1,
            chunk_text="Reciprocal rank fusion merges ranked lists.",
            snippet="Reciprocal rank fusion merges ranked lists.",
            relevance_score=0.0328,
            match_type=MatchType.BOTH,
            matched_terms=["fusion"],
        )
        values.update(overrides)
        return SearchResult(**values)

    async def test_hybrid(self, client, search_service):
        search_service.hybrid_search.return_value = [self.result()]

        response = await client.get(f"{PREFIX}/search", params={"q": "rank fusion", "limit": 5})

        assert response.status_code == 200
        data = response.json()
        assert data["mode"] == "hybrid"
        assert data["total"] == 1
        assert data["results"][0]["match_type"] == "both"
        assert data["results"][0]["matched_terms"] == ["fusion"]
        search_service.hybrid_search.assert_awaited_once_with("rank fusion", limit=5)

    async def test_keyword_mode(self, client, search_service):
        search_service.keyword_search.return_value = [
            self.result(match_type=MatchType.KEYWORD, relevance_score=1.0, text_rank=0.6),
        ]

        response = await client.get(f"{PREFIX}/search", params={"q": "fusion", "mode": "keyword"})

        assert response.status_code == 200
        data = response.json()
        assert data["results"][0]["relevance_score"] == 1.0
        assert data["results"][0]["text_rank"] == 0.6
        search_service.hybrid_search.assert_not_called()

    async def test_embedding_unavailable(self, client, search_service):
        search_service.hybrid_search.side_effect = EmbeddingError("model not loaded")

        response = await client.get(f"{PREFIX}/search", params={"q": "fusion"})

        assert response.status_code == 503
        assert "mode=keyword" in response.json()["detail"]

    async def test_query_required(self, client):
        response = await client.get(f"{PREFIX}/search")

        assert response.status_code == 422

    async def test_limit_bounds(self, client):
        response = await client.get(f"{PREFIX}/search", params={"q": "fusion", "limit": 0})

        assert response.status_code == 422
