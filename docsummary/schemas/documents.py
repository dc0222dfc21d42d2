"""
Document Summary — Pydantic Response Schemas

Covers the summary endpoints under /api/v1/documents/{id}/summary:
  - Summary status (polled by clients while status is pending)
  - Trigger acknowledgement (202 Accepted)
  - All structured error bodies (404, 409, 422, 500)

Design decisions:
  - summary_status is the pipeline state, separate from HTTP status.
  - All timestamps are ISO-8601 UTC strings.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Summary pipeline state machine
# ---------------------------------------------------------------------------

class SummaryStatus(str, Enum):
    """
    Maps to documents.summary_status column.
    Transitions: none → pending → completed | failed;  failed → pending
    """
    NONE       = "none"         # no summary requested yet
    PENDING    = "pending"      # queued or running
    COMPLETED  = "completed"    # summary available
    FAILED     = "failed"       # see summary_error


# ---------------------------------------------------------------------------
# Status response: GET /documents/{id}/summary
# ---------------------------------------------------------------------------

class SummaryStatusResponse(BaseModel):
    """Polled by clients every few seconds while summary_status is pending."""
    document_id:        UUID
    summary_status:     SummaryStatus
    summary:            str             = Field("", description="Generated summary, or the failure message")
    summary_error:      str | None      = None
    retry_count:        int             = 0
    summary_updated_at: datetime | None = None
    retriggered:        bool            = Field(
        False,
        description="True if this read dispatched a fresh run (absent, failed or stuck summary)",
    )


# ---------------------------------------------------------------------------
# Trigger acknowledgement: POST /documents/{id}/summary[/regenerate]
# ---------------------------------------------------------------------------

class SummaryTriggerResponse(BaseModel):
    """HTTP 202: the run is dispatched; poll the status endpoint for the outcome."""
    document_id:    UUID
    summary_status: SummaryStatus = SummaryStatus.PENDING
    message:        str           = "Summary generation started"


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code:    str              = Field(..., description="Stable machine-readable code")
    message:       str              = Field(..., description="Human-readable summary")
    details:       list[ErrorDetail] = Field(default_factory=list)
    request_id:    str | None       = Field(None, description="Trace ID for log correlation")


class SummaryErrors:
    """Factories for every documented error case."""

    @staticmethod
    def document_not_found(document_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{document_id}' was not found.",
            details=[],
        )

    @staticmethod
    def run_in_flight(document_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="SUMMARY_IN_PROGRESS",
            message="A summary run is already in progress for this document.",
            details=[
                ErrorDetail(
                    field=None,
                    message=(
                        f"Document '{document_id}' is being summarized. "
                        "Poll GET /documents/{id}/summary until it finishes, then retry."
                    ),
                    code="SUMMARY_IN_PROGRESS",
                )
            ],
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred. Our team has been notified.",
            details=[],
            request_id=request_id,
        )
