"""
Summary Triggers — every way a pipeline run gets started

  trigger_processing(id)   upload / generic; fire-and-forget, the run
                           itself decides whether to proceed
  regenerate(id)           explicit user request; resets the summary and
                           the retry budget, rejected while a run is in
                           flight
  read_status(id)          read path; re-dispatches absent, failed (with
                           retry budget left) and stuck summaries
  requeue_stuck()          periodic sweep for pending documents whose
                           run was lost

Regenerate and the read path claim the per-document run lease BEFORE
resetting state and hand the lease token to the dispatched run, so a
second trigger arriving before the first run has even started is
already rejected.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from docsummary.schemas.documents import SummaryStatus
from docsummary.services.pipeline import needs_refresh
from docsummary.store.base import DocumentRecord, StatusStore, utcnow
from docsummary.workers.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)


class TriggerOutcome(str, Enum):
    DISPATCHED = "dispatched"
    IN_FLIGHT  = "in_flight"
    NOT_FOUND  = "not_found"


class SummaryTriggers:

    def __init__(
        self,
        store:                 StatusStore,
        dispatcher:            JobDispatcher,
        stuck_timeout_seconds: int = 300,
        lease_seconds:         int = 300,
        clock:                 Callable[[], datetime] = utcnow,
    ) -> None:
        self._store         = store
        self._dispatcher    = dispatcher
        self._stuck_timeout = stuck_timeout_seconds
        self._lease_seconds = lease_seconds
        self._clock         = clock

    # ------------------------------------------------------------------
    # Upload / generic trigger
    # ------------------------------------------------------------------

    async def trigger_processing(self, document_id: uuid.UUID) -> TriggerOutcome:
        """Fire-and-forget. Outcomes are visible only through the stored status."""
        if await self._store.load(document_id) is None:
            return TriggerOutcome.NOT_FOUND
        await self._dispatcher.dispatch(document_id)
        return TriggerOutcome.DISPATCHED

    # ------------------------------------------------------------------
    # Explicit regenerate
    # ------------------------------------------------------------------

    async def regenerate(self, document_id: uuid.UUID) -> TriggerOutcome:
        record = await self._store.load(document_id)
        if record is None:
            return TriggerOutcome.NOT_FOUND

        token = await self._claim(document_id)
        if token is None:
            logger.info("Regenerate rejected, run in flight | doc=%s", document_id)
            return TriggerOutcome.IN_FLIGHT

        record.retry_count = 0
        await self._restart(record, token)
        logger.info("Regenerate dispatched | doc=%s", document_id)
        return TriggerOutcome.DISPATCHED

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def read_status(self, document_id: uuid.UUID) -> tuple[DocumentRecord | None, bool]:
        """
        Return (record, retriggered).

        If the summary is absent, failed within its retry budget, or stuck
        in pending past the staleness window, the record is reset to
        pending and a fresh run is dispatched before returning.
        """
        record = await self._store.load(document_id)
        if record is None:
            return None, False

        if not needs_refresh(record, self._clock(), self._stuck_timeout):
            return record, False

        token = await self._claim(document_id)
        if token is None:
            return record, False

        logger.info(
            "Retriggering summary | doc=%s status=%s retry_count=%d",
            document_id, record.summary_status.value, record.retry_count,
        )
        await self._restart(record, token)
        return record, True

    # ------------------------------------------------------------------
    # Stuck sweep
    # ------------------------------------------------------------------

    async def requeue_stuck(self, limit: int = 50) -> int:
        """Re-dispatch pending documents older than the staleness window."""
        cutoff = self._clock() - timedelta(seconds=self._stuck_timeout)
        requeued = 0

        for record in await self._store.find_stuck(cutoff, limit=limit):
            token = await self._claim(record.id)
            if token is None:
                continue
            await self._restart(record, token)
            requeued += 1
            logger.info("Re-queued stuck document | doc=%s", record.id)

        return requeued

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _claim(self, document_id: uuid.UUID) -> str | None:
        token = uuid.uuid4().hex
        if await self._store.try_acquire_lease(document_id, token, self._lease_seconds):
            return token
        return None

    async def _restart(self, record: DocumentRecord, token: str) -> None:
        """Reset to pending, clear the previous summary and hand the lease to a new run."""
        record.summary_status     = SummaryStatus.PENDING
        record.summary            = ""
        record.summary_error      = None
        record.summary_updated_at = self._clock()

        try:
            await self._store.save(record)
            await self._dispatcher.dispatch(record.id, lease_token=token)
        except Exception:
            await self._store.release_lease(record.id, token)
            raise
