"""
Summary Pipeline — the per-document state machine

  none ──► pending ──► completed
              │
              └──────► failed ──► pending ──► completed | failed

Run sequence for SummaryPipeline.run(document_id):

  ┌───────────────────────────────────────────────────────────────────┐
  │ 1. load document                  absent     → NOT_FOUND (no write)│
  │ 2. failed and retry_count ≥ 1 ?   yes        → SKIPPED_RETRY_LIMIT │
  │ 3. claim run lease, or renew      held       → SKIPPED_IN_FLIGHT   │
  │    the token a trigger handed in  lost       → SKIPPED_IN_FLIGHT   │
  │ 4. storage reference empty ?      yes        → failed  (no retry+) │
  │ 5. acquire bytes                  not found  → failed  (no retry+) │
  │                                   fetch err  → failed  (retry+1)   │
  │ 6. extract (temp file released on every path)                      │
  │      error                                  → failed  (retry+1)    │
  │      scanned PDF                            → failed  (no retry+)  │
  │      < 50 chars                             → failed  (no retry+)  │
  │ 7. status → pending, summary and error cleared; summarize          │
  │ 8. completed, error cleared, retry_count = 0                       │
  │ *  anything else                            → failed  (retry+1)    │
  │ 9. release run lease                                               │
  └───────────────────────────────────────────────────────────────────┘

Every status write renews the lease under the run's token first. A run
whose lease was taken over (it expired while the job sat in a queue and
a stuck-job trigger claimed it) stops without writing: SKIPPED_IN_FLIGHT.

Failures rooted in the document's content (scanned, too little text)
leave retry_count untouched; infrastructure failures (network, OCR
engine, summarization endpoint, unexpected errors) consume the single
retry. Nothing raised inside a run escapes run(): every outcome other
than a lost lease becomes a status write.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable

from docsummary.core.errors import (
    InsufficientInputError,
    MissingStorageReferenceError,
    PipelineError,
    ScannedDocumentError,
    SummarizerNotConfiguredError,
)
from docsummary.llm.summarizer import SummarizerClient
from docsummary.processing.extractor import ExtractionRouter
from docsummary.schemas.documents import SummaryStatus
from docsummary.storage.acquirer import ContentAcquirer
from docsummary.store.base import DocumentRecord, StatusStore, utcnow

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Policy constants
# ---------------------------------------------------------------------------

# failed + retry_count >= MAX_RETRIES → no further automatic runs
MAX_RETRIES = 1

MIN_EXTRACTED_TEXT_CHARS = 50

NO_STORAGE_REFERENCE_MESSAGE = "No file URL found"
SCANNED_PDF_MESSAGE = "Scanned PDF detected. OCR is limited for full PDFs in this environment."
INSUFFICIENT_TEXT_MESSAGE = "Insufficient text content found to summarize."
NOT_CONFIGURED_MESSAGE = "AI API Key is NOT configured. Set AI_API_KEY to enable summaries."


class LeaseLostError(Exception):
    """Another run now owns the document's lease."""


class RunOutcome(str, Enum):
    COMPLETED           = "completed"
    FAILED              = "failed"
    SKIPPED_RETRY_LIMIT = "skipped_retry_limit"
    SKIPPED_IN_FLIGHT   = "skipped_in_flight"
    NOT_FOUND           = "not_found"


# ---------------------------------------------------------------------------
# State-machine predicates (shared with the trigger service)
# ---------------------------------------------------------------------------

def retry_limit_reached(record: DocumentRecord) -> bool:
    return record.summary_status == SummaryStatus.FAILED and record.retry_count >= MAX_RETRIES


def is_stuck(record: DocumentRecord, now: datetime, window_seconds: int) -> bool:
    """pending for longer than the staleness window → presumed abandoned."""
    if record.summary_status != SummaryStatus.PENDING:
        return False
    return now - record.last_transition_at > timedelta(seconds=window_seconds)


def needs_refresh(record: DocumentRecord, now: datetime, window_seconds: int) -> bool:
    """Whether a reader should dispatch a fresh run for this document."""
    status = record.summary_status
    if status == SummaryStatus.NONE:
        return True
    if status == SummaryStatus.FAILED:
        return not retry_limit_reached(record)
    return is_stuck(record, now, window_seconds)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

class SummaryPipeline:
    """
    Constructor args:
        store          : StatusStore (the only shared mutable state)
        acquirer       : ContentAcquirer
        router         : ExtractionRouter
        summarizer     : SummarizerClient, or None when no credential is configured
        lease_seconds  : run lease TTL; bounds recovery from a crashed run
        clock          : injectable for tests
    """

    def __init__(
        self,
        store:         StatusStore,
        acquirer:      ContentAcquirer,
        router:        ExtractionRouter,
        summarizer:    SummarizerClient | None,
        lease_seconds: int = 300,
        clock:         Callable[[], datetime] = utcnow,
    ) -> None:
        self._store         = store
        self._acquirer      = acquirer
        self._router        = router
        self._summarizer    = summarizer
        self._lease_seconds = lease_seconds
        self._clock         = clock

    async def run(self, document_id: uuid.UUID, lease_token: str | None = None) -> RunOutcome:
        """
        Execute one run for the document.

        `lease_token` is passed when the caller already claimed the run
        lease (explicit regenerate, read-path refresh). The run renews it
        before doing any work, since the job may have waited in a queue
        past the lease TTL, and releases it on exit.
        """
        token = lease_token
        try:
            record = await self._store.load(document_id)
            if record is None:
                logger.info("Summary run aborted, document not found | doc=%s", document_id)
                return RunOutcome.NOT_FOUND

            if retry_limit_reached(record):
                logger.info(
                    "Summary run skipped, retry limit reached | doc=%s retry_count=%d",
                    document_id, record.retry_count,
                )
                return RunOutcome.SKIPPED_RETRY_LIMIT

            if token is None:
                candidate = uuid.uuid4().hex
                if not await self._store.try_acquire_lease(
                    document_id, candidate, self._lease_seconds,
                ):
                    logger.info("Summary run skipped, already in flight | doc=%s", document_id)
                    return RunOutcome.SKIPPED_IN_FLIGHT
                token = candidate
            elif not await self._store.renew_lease(document_id, token, self._lease_seconds):
                logger.info("Summary run skipped, handed-over lease lost | doc=%s", document_id)
                token = None
                return RunOutcome.SKIPPED_IN_FLIGHT

            logger.info(
                "Summary run | doc=%s status=%s retry_count=%d",
                document_id, record.summary_status.value, record.retry_count,
            )
            return await self._run_locked(record, token)
        except LeaseLostError:
            if await self._store.load(document_id) is None:
                logger.info("Summary run aborted, document deleted mid-run | doc=%s", document_id)
                return RunOutcome.NOT_FOUND
            logger.warning("Summary run abandoned, lease taken over | doc=%s", document_id)
            return RunOutcome.SKIPPED_IN_FLIGHT
        finally:
            if token is not None:
                await self._store.release_lease(document_id, token)

    # ------------------------------------------------------------------
    # Run body: lease held
    # ------------------------------------------------------------------

    async def _run_locked(self, record: DocumentRecord, token: str) -> RunOutcome:
        try:
            if not record.storage_reference.strip():
                raise MissingStorageReferenceError(NO_STORAGE_REFERENCE_MESSAGE)

            async with self._acquirer.acquire(record) as path:
                result = await self._router.extract(path, record.declared_mime_type)

            if result.is_error:
                return await self._fail(
                    record, token, f"Extraction failed: {result.error}",
                    retriable=True, error_code="EXTRACTION_FAILED",
                )
            if result.is_scanned:
                raise ScannedDocumentError(SCANNED_PDF_MESSAGE)

            text = result.text
            if len(text) < MIN_EXTRACTED_TEXT_CHARS:
                raise InsufficientInputError(INSUFFICIENT_TEXT_MESSAGE)

            await self._write(record, token, SummaryStatus.PENDING, summary="", error=None)

            if self._summarizer is None:
                raise SummarizerNotConfiguredError(NOT_CONFIGURED_MESSAGE)
            summary = await self._summarizer.summarize(text)

        except LeaseLostError:
            raise
        except PipelineError as exc:
            return await self._fail(
                record, token, exc.message,
                retriable=exc.retriable, error_code=exc.error_code,
            )
        except Exception as exc:
            logger.exception("Summary run crashed | doc=%s", record.id)
            return await self._fail(
                record, token, str(exc) or type(exc).__name__,
                retriable=True, error_code="UNEXPECTED_ERROR",
            )

        record.retry_count = 0
        await self._write(record, token, SummaryStatus.COMPLETED, summary=summary, error=None)
        logger.info("Summary completed | doc=%s chars=%d", record.id, len(summary))
        return RunOutcome.COMPLETED

    # ------------------------------------------------------------------
    # Status writes
    # ------------------------------------------------------------------

    async def _write(
        self,
        record:  DocumentRecord,
        token:   str,
        status:  SummaryStatus,
        *,
        summary: str | None = None,
        error:   str | None = None,
    ) -> None:
        if not await self._store.renew_lease(record.id, token, self._lease_seconds):
            raise LeaseLostError(record.id)

        record.summary_status     = status
        record.summary_error      = error
        record.summary_updated_at = self._clock()
        if summary is not None:
            record.summary = summary
        await self._store.save(record)

    async def _fail(
        self,
        record:     DocumentRecord,
        token:      str,
        message:    str,
        *,
        retriable:  bool,
        error_code: str,
    ) -> RunOutcome:
        # The message doubles as the display text for failed summaries
        await self._write(record, token, SummaryStatus.FAILED, summary=message, error=message)
        if retriable:
            await self._store.increment_retry(record.id)

        logger.warning(
            "Summary failed | doc=%s code=%s retriable=%s error=%s",
            record.id, error_code, retriable, message,
        )
        return RunOutcome.FAILED
