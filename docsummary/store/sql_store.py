"""
SQLAlchemy StatusStore — PostgreSQL (asyncpg) in production.

Every method runs in its own short transaction obtained from
get_admin_db(). Writes are column-scoped UPDATE statements; columns
outside the summary state are never written.

Run lease:
    UPDATE documents
       SET summary_lock_token = :token, summary_lock_expires_at = :expiry
     WHERE id = :id
       AND (summary_lock_token IS NULL OR summary_lock_expires_at < :now)

The statement is atomic on the row, so two API processes or two Celery
workers racing for the same document cannot both see rowcount == 1.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docsummary.models.documents import Document
from docsummary.schemas.documents import SummaryStatus
from docsummary.store.base import DocumentRecord, StatusStore, utcnow

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _default_session_factory() -> SessionFactory:
    from docsummary.db.session import get_admin_db
    return get_admin_db


def _to_record(row: Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        storage_reference=row.storage_reference or "",
        filename=row.filename,
        declared_mime_type=row.declared_mime_type,
        summary_status=SummaryStatus(row.summary_status),
        summary=row.summary or "",
        summary_error=row.summary_error,
        retry_count=row.retry_count or 0,
        summary_updated_at=row.summary_updated_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlStatusStore(StatusStore):

    def __init__(
        self,
        session_factory: SessionFactory | None = None,
        clock:           Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory or _default_session_factory()
        self._clock           = clock

    async def load(self, document_id: uuid.UUID) -> DocumentRecord | None:
        async with self._session_factory() as db:
            result = await db.execute(select(Document).where(Document.id == document_id))
            row = result.scalars().first()
        return _to_record(row) if row else None

    async def save(self, record: DocumentRecord) -> None:
        async with self._session_factory() as db:
            result = await db.execute(
                update(Document)
                .where(Document.id == record.id)
                .values(
                    summary_status=SummaryStatus(record.summary_status).value,
                    summary=record.summary,
                    summary_error=record.summary_error,
                    retry_count=record.retry_count,
                    summary_updated_at=record.summary_updated_at,
                )
            )
        if result.rowcount == 0:
            logger.debug("Save skipped, document gone | doc=%s", record.id)

    async def increment_retry(self, document_id: uuid.UUID) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(Document)
                .where(Document.id == document_id)
                .values(retry_count=Document.retry_count + 1)
            )

    async def try_acquire_lease(
        self,
        document_id: uuid.UUID,
        token:       str,
        ttl_seconds: int,
    ) -> bool:
        now = self._clock()
        async with self._session_factory() as db:
            result = await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    or_(
                        Document.summary_lock_token.is_(None),
                        Document.summary_lock_expires_at < now,
                    ),
                )
                .values(
                    summary_lock_token=token,
                    summary_lock_expires_at=now + timedelta(seconds=ttl_seconds),
                )
            )
        return result.rowcount == 1

    async def renew_lease(
        self,
        document_id: uuid.UUID,
        token:       str,
        ttl_seconds: int,
    ) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.summary_lock_token == token,
                )
                .values(
                    summary_lock_expires_at=self._clock() + timedelta(seconds=ttl_seconds),
                )
            )
        return result.rowcount == 1

    async def release_lease(self, document_id: uuid.UUID, token: str) -> None:
        async with self._session_factory() as db:
            await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.summary_lock_token == token,
                )
                .values(summary_lock_token=None, summary_lock_expires_at=None)
            )

    async def lease_active(self, document_id: uuid.UUID) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Document.summary_lock_expires_at).where(
                    Document.id == document_id,
                    Document.summary_lock_token.is_not(None),
                )
            )
            expires_at = result.scalars().first()
        return expires_at is not None and expires_at > self._clock()

    async def find_stuck(self, older_than: datetime, limit: int = 50) -> list[DocumentRecord]:
        last_transition = func.coalesce(Document.summary_updated_at, Document.updated_at)
        async with self._session_factory() as db:
            result = await db.execute(
                select(Document)
                .where(
                    and_(
                        Document.summary_status == SummaryStatus.PENDING.value,
                        last_transition < older_than,
                    )
                )
                .order_by(last_transition)
                .limit(limit)
            )
            rows = result.scalars().all()
        return [_to_record(row) for row in rows]
