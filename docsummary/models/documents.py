"""
SQLAlchemy ORM Models — Documents

Only the columns the summary pipeline reads or writes are mapped here.
Document CRUD (ownership, sharing, categories) lives with the owning
service and is not mapped here.

Types are the dialect-neutral SQLAlchemy 2.x ones (Uuid, DateTime with
timezone) so the same model runs against PostgreSQL in production.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Declarative base: shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document model: documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    Uploaded file plus its AI summary state.

    State machine (summary_status column):
        none       — created, no summary requested yet
        pending    — a run is queued or in flight
        completed  — summary holds the generated digest
        failed     — summary_error (mirrored into summary) explains why

    Run lease (summary_lock_token / summary_lock_expires_at):
        Set by a conditional UPDATE when a pipeline run starts and
        cleared when it ends. A second run for the same document finds
        the lease held and backs off.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "summary_status IN ('none', 'pending', 'completed', 'failed')",
            name="documents_summary_status_check",
        ),
        Index("idx_documents_summary_status", "summary_status", "summary_updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Where the original bytes live: https://…, s3://bucket/key or a legacy local path
    storage_reference: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default="",
        comment="Remote URL, s3:// URI or legacy local path; immutable once set",
    )
    filename: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Original filename; used for extension fallback",
    )
    declared_mime_type: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Client-declared MIME type; absent on legacy rows",
    )

    # Summary state machine
    summary_status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="none",
        server_default="none",
    )
    summary: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        server_default="",
    )
    summary_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    summary_updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Per-document run lease
    summary_lock_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    summary_lock_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} summary_status={self.summary_status} "
            f"retry_count={self.retry_count} file={self.filename!r}>"
        )
