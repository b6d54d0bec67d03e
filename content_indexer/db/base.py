"""
Declarative base and shared column mixins for the indexing tables.

Key Concepts:
--------------
1. Base: SQLAlchemy 2.0 DeclarativeBase bound to a MetaData with a
   constraint naming convention, so Alembic autogenerate produces stable
   names (uq_content_text_content_item_id, fk_content_chunks_..., ...).
2. TimestampMixin: created_at / updated_at in UTC.
3. BaseModel: abstract base with an integer primary key plus timestamps.

All timestamps are timezone-aware UTC on PostgreSQL. SQLite (used by the
test suite) stores them naive, so comparisons against "now" are always
done in SQL rather than in Python.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ================================
# Naming Convention for Constraints
# ================================
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    metadata = metadata

    __tablename__: str


class TimestampMixin:
    """Adds created_at / updated_at columns maintained by the ORM."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        comment="Timestamp when record was created (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        comment="Timestamp when record was last updated (UTC)"
    )


class BaseModel(Base, TimestampMixin):
    """
    Abstract base: integer primary key + timestamps.

    Usage:
        class ContentText(BaseModel):
            __tablename__ = "content_text"
            ...
    """

    __abstract__ = True

    id: Mapped[int] = mapped_column(
        primary_key=True,
        autoincrement=True,
        comment="Auto-incrementing primary key"
    )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id})"

    def dict(self) -> dict[str, Any]:
        """Column values as a plain dict (debugging and logging)."""
        return {
            column.name: getattr(self, column.name)
            for column in self.__table__.columns
        }


# ================================
# String Length Constraints
# ================================
String20 = String(20)
String64 = String(64)  # hex digests
String100 = String(100)
String255 = String(255)
String2048 = String(2048)  # URLs
