"""
Service Dependencies for FastAPI Routes

Routes declare the service they need; tests swap them through
app.dependency_overrides:

    app.dependency_overrides[get_orchestrator] = lambda: fake_orchestrator

Services receive the session factory, not a request-scoped session:
they open short sessions per operation and may run several at once.
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from content_indexer.db.session import AsyncSessionLocal
from content_indexer.services.indexing.orchestrator import IndexingOrchestrator
from content_indexer.services.job_queue import JobQueue
from content_indexer.services.processors.embedder import get_embedding_service
from content_indexer.services.search.hybrid import HybridSearchService


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_job_queue() -> JobQueue:
    return JobQueue(get_session_factory())


def get_orchestrator() -> IndexingOrchestrator:
    session_factory = get_session_factory()
    return IndexingOrchestrator(session_factory, queue=JobQueue(session_factory))


def get_search_service() -> HybridSearchService:
    return HybridSearchService(get_session_factory(), embedder=get_embedding_service())
