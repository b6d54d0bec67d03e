"""Database utilities and session management."""

from content_indexer.db.base import Base, BaseModel, utcnow
from content_indexer.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    create_engine,
    create_session_factory,
    engine,
    init_db,
)

__all__ = [
    "Base",
    "BaseModel",
    "utcnow",
    "engine",
    "AsyncSessionLocal",
    "create_engine",
    "create_session_factory",
    "init_db",
    "close_db",
    "check_db_health",
]
