"""
Job queue model.

The indexing queue is a table, not a broker: job state survives worker and
broker restarts, and a job is only marked completed after its handler
returned, which gives at-least-once processing.

Job State Machine:
------------------
    CREATED ──fetch──▶ ACTIVE ──complete──▶ COMPLETED ──(archive window)──▶ purged
                         │
                         └──fail──▶ RETRY ──fetch──▶ ACTIVE ...
                                     (after retry_limit retries: FAILED)

singleton_key holds the content item id. A partial unique index allows
at most one *outstanding* (created / retry / active) job per key, so
re-triggering indexing while a job is queued never duplicates work.
"""

import enum
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from content_indexer.db.base import BaseModel, String100, String255, utcnow


class JobState(str, enum.Enum):
    CREATED = "created"
    RETRY = "retry"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# States in which a job still counts as outstanding for its singleton key
OUTSTANDING_STATES = (JobState.CREATED, JobState.RETRY, JobState.ACTIVE)

_OUTSTANDING_SQL = "state IN ('created', 'retry', 'active')"


class IndexJob(BaseModel):
    """A queued unit of indexing work: {content_item_id, url}."""

    __tablename__ = "index_jobs"

    name: Mapped[str] = mapped_column(
        String100,
        nullable=False,
        comment="Queue name (index-content)"
    )

    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Job data: content_item_id and url"
    )

    singleton_key: Mapped[str | None] = mapped_column(
        String255,
        nullable=True,
        comment="Deduplication key (content item id)"
    )

    state: Mapped[JobState] = mapped_column(
        Enum(
            JobState,
            name="job_state",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            length=20,
        ),
        nullable=False,
        default=JobState.CREATED,
    )

    attempt: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Number of times the job has been started"
    )

    retry_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=3)

    scheduled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Earliest time the job may be fetched"
    )

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        # Fetch order: oldest due job first
        Index("ix_index_jobs_name_state_scheduled_at", "name", "state", "scheduled_at"),
        Index(
            "uq_index_jobs_outstanding_singleton",
            "name",
            "singleton_key",
            unique=True,
            postgresql_where=text(_OUTSTANDING_SQL),
            sqlite_where=text(_OUTSTANDING_SQL),
        ),
    )

    @property
    def content_item_id(self) -> int:
        return int(self.payload["content_item_id"])

    @property
    def url(self) -> str:
        return self.payload["url"]

    def __repr__(self) -> str:
        return f"IndexJob(id={self.id}, key={self.singleton_key}, state={self.state.value}, attempt={self.attempt})"
