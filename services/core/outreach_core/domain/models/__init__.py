"""Domain models for Outreach.

This module defines the SQLAlchemy ORM models: the job ledger backing
the work queues and the generic document table backing the default
document store.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (columns store naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class JobStatus(str):
    """Job status values."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskKind(str):
    """Task kinds; each kind is one queue."""

    CONNECT_REQUEST = "connect_request"
    REPLY = "reply"
    STATUS_CHECK = "status_check"
    INBOX_POLL = "inbox_poll"
    PROFILE_EXTRACT = "profile_extract"


ALL_TASK_KINDS = (
    TaskKind.CONNECT_REQUEST,
    TaskKind.REPLY,
    TaskKind.STATUS_CHECK,
    TaskKind.INBOX_POLL,
    TaskKind.PROFILE_EXTRACT,
)


# =============================================================================
# JOB LEDGER
# =============================================================================


class Job(Base):
    """Durable queue entry; the id is the admission idempotency key."""

    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    queue_name: Mapped[str] = mapped_column(String(64), nullable=False)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        Enum("waiting", "active", "completed", "failed", name="job_status_enum"),
        nullable=False,
        default="waiting",
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    run_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    failed_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retryable: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    client_error: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    return_value: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_jobs_queue_status", "queue_name", "status", "run_at"),
    )


class QueueLock(Base):
    """One row per queue; claimers lock it so claims of a queue never overlap."""

    __tablename__ = "queue_locks"

    queue_name: Mapped[str] = mapped_column(String(64), primary_key=True)
    locked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


# =============================================================================
# DOCUMENTS
# =============================================================================


class Document(Base):
    """A schemaless record addressed by (collection, doc_id)."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(255), primary_key=True)
    doc_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )
