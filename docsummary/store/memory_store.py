"""
In-memory StatusStore.

Used for local development (STATUS_STORE_BACKEND=memory) and tests.
Single-process only: the lease is guarded by an asyncio.Lock, which is
enough because every coroutine runs on the same event loop.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable

from docsummary.schemas.documents import SummaryStatus
from docsummary.store.base import DocumentRecord, StatusStore, utcnow

logger = logging.getLogger(__name__)


class InMemoryStatusStore(StatusStore):

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock   = clock
        self._records: dict[uuid.UUID, DocumentRecord] = {}
        self._leases:  dict[uuid.UUID, tuple[str, datetime]] = {}
        self._guard   = asyncio.Lock()

    # ------------------------------------------------------------------
    # Document CRUD stand-ins (owned by another service in production)
    # ------------------------------------------------------------------

    def add(self, record: DocumentRecord) -> DocumentRecord:
        self._records[record.id] = record.copy()
        return record

    def delete(self, document_id: uuid.UUID) -> None:
        self._records.pop(document_id, None)
        self._leases.pop(document_id, None)

    # ------------------------------------------------------------------
    # StatusStore
    # ------------------------------------------------------------------

    async def load(self, document_id: uuid.UUID) -> DocumentRecord | None:
        record = self._records.get(document_id)
        return record.copy() if record else None

    async def save(self, record: DocumentRecord) -> None:
        stored = self._records.get(record.id)
        if stored is None:
            logger.debug("Save skipped, document gone | doc=%s", record.id)
            return
        stored.summary_status     = SummaryStatus(record.summary_status)
        stored.summary            = record.summary
        stored.summary_error      = record.summary_error
        stored.retry_count        = record.retry_count
        stored.summary_updated_at = record.summary_updated_at
        stored.updated_at         = self._clock()

    async def increment_retry(self, document_id: uuid.UUID) -> None:
        stored = self._records.get(document_id)
        if stored is not None:
            stored.retry_count += 1

    async def try_acquire_lease(
        self,
        document_id: uuid.UUID,
        token:       str,
        ttl_seconds: int,
    ) -> bool:
        async with self._guard:
            now = self._clock()
            held = self._leases.get(document_id)
            if held is not None and held[1] > now:
                return False
            self._leases[document_id] = (token, now + timedelta(seconds=ttl_seconds))
            return True

    async def renew_lease(
        self,
        document_id: uuid.UUID,
        token:       str,
        ttl_seconds: int,
    ) -> bool:
        async with self._guard:
            held = self._leases.get(document_id)
            if document_id not in self._records or held is None or held[0] != token:
                return False
            self._leases[document_id] = (token, self._clock() + timedelta(seconds=ttl_seconds))
            return True

    async def release_lease(self, document_id: uuid.UUID, token: str) -> None:
        async with self._guard:
            held = self._leases.get(document_id)
            if held is not None and held[0] == token:
                del self._leases[document_id]

    async def lease_active(self, document_id: uuid.UUID) -> bool:
        held = self._leases.get(document_id)
        return held is not None and held[1] > self._clock()

    async def find_stuck(self, older_than: datetime, limit: int = 50) -> list[DocumentRecord]:
        stuck = [
            r.copy() for r in self._records.values()
            if r.summary_status == SummaryStatus.PENDING
            and r.last_transition_at < older_than
        ]
        stuck.sort(key=lambda r: r.last_transition_at)
        return stuck[:limit]
