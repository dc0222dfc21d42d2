"""
Status Store — Abstract Base

Every persistence backend for summary state (SQL, in-memory) implements
this interface. The pipeline, the trigger service and the stuck-job
sweeper only speak this protocol, so backends are swappable without
touching orchestration code.

Contract (enforced by ALL implementations):
  - save() persists the summary fields of a record only; storage
    reference, filename and MIME type are owned by document CRUD.
  - increment_retry() is atomic with respect to concurrent writers.
  - try_acquire_lease() is a single compare-and-set: it succeeds only
    when no unexpired lease exists for the document.
  - renew_lease() is a compare-and-set on the token: it extends the
    lease only while no other run has claimed it since.
  - release_lease() clears the lease only if the caller still owns it.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from docsummary.schemas.documents import SummaryStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared data types
# ---------------------------------------------------------------------------

@dataclass
class DocumentRecord:
    """The summary-relevant slice of a Document row."""
    id:                 uuid.UUID
    storage_reference:  str                  = ""
    filename:           str | None           = None
    declared_mime_type: str | None           = None
    summary_status:     SummaryStatus        = SummaryStatus.NONE
    summary:            str                  = ""
    summary_error:      str | None           = None
    retry_count:        int                  = 0
    summary_updated_at: datetime | None      = None
    created_at:         datetime             = field(default_factory=utcnow)
    updated_at:         datetime | None      = None

    def copy(self) -> "DocumentRecord":
        return replace(self)

    @property
    def last_transition_at(self) -> datetime:
        """Timestamp used for stuck detection."""
        return self.summary_updated_at or self.updated_at or self.created_at


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class StatusStore(ABC):
    """Read/modify/write access to the summary state of documents."""

    @abstractmethod
    async def load(self, document_id: uuid.UUID) -> DocumentRecord | None:
        """Return the record, or None if the document does not exist."""

    @abstractmethod
    async def save(self, record: DocumentRecord) -> None:
        """
        Persist summary_status, summary, summary_error, retry_count and
        summary_updated_at. Saving a deleted document is a no-op.
        """

    @abstractmethod
    async def increment_retry(self, document_id: uuid.UUID) -> None:
        """Atomically add one to retry_count."""

    @abstractmethod
    async def try_acquire_lease(
        self,
        document_id: uuid.UUID,
        token:       str,
        ttl_seconds: int,
    ) -> bool:
        """Claim the per-document run lease. Returns False if another run holds it."""

    @abstractmethod
    async def renew_lease(
        self,
        document_id: uuid.UUID,
        token:       str,
        ttl_seconds: int,
    ) -> bool:
        """
        Extend the lease owned by `token` to now + ttl. Returns False if
        another token claimed the lease or the document is gone.
        """

    @abstractmethod
    async def release_lease(self, document_id: uuid.UUID, token: str) -> None:
        """Drop the lease if it is still owned by `token`."""

    @abstractmethod
    async def lease_active(self, document_id: uuid.UUID) -> bool:
        """True while an unexpired lease exists for the document."""

    @abstractmethod
    async def find_stuck(self, older_than: datetime, limit: int = 50) -> list[DocumentRecord]:
        """Pending documents whose last transition is before `older_than`."""
