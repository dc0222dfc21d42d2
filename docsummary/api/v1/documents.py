"""
Document Summary API Router

  GET  /api/v1/documents/{id}/summary              current summary state
  POST /api/v1/documents/{id}/summary              trigger processing (upload hook)
  POST /api/v1/documents/{id}/summary/regenerate   explicit regeneration

Request lifecycle (GET):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. Load document               404 if absent            │
  │ 2. Absent / failed-with-budget / stuck summary?         │
  │      claim run lease, reset to pending, dispatch run    │
  │ 3. Return current state (retriggered=true if step 2 ran) │
  └─────────────────────────────────────────────────────────┘

Runs are always fire-and-forget: every POST returns 202 before any
extraction or summarization work happens. Clients poll GET until
summary_status leaves 'pending'.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from docsummary.api.dependencies import Triggers
from docsummary.schemas.documents import (
    ErrorResponse,
    SummaryErrors,
    SummaryStatusResponse,
    SummaryTriggerResponse,
)
from docsummary.services.triggers import TriggerOutcome

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Document Summaries"],
)


# ---------------------------------------------------------------------------
# GET /documents/{document_id}/summary
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}/summary",
    response_model=SummaryStatusResponse,
    summary="Read the document summary",
    description=(
        "Returns the stored summary state. Absent, retriable-failed and stuck "
        "summaries are re-dispatched before the response is returned."
    ),
    responses={
        200: {"model": SummaryStatusResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_document_summary(
    document_id: UUID,
    triggers:    Triggers,
) -> SummaryStatusResponse:
    record, retriggered = await triggers.read_status(document_id)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=SummaryErrors.document_not_found(document_id).model_dump(),
        )

    return SummaryStatusResponse(
        document_id=record.id,
        summary_status=record.summary_status,
        summary=record.summary,
        summary_error=record.summary_error,
        retry_count=record.retry_count,
        summary_updated_at=record.summary_updated_at,
        retriggered=retriggered,
    )


# ---------------------------------------------------------------------------
# POST /documents/{document_id}/summary: upload / generic trigger
# ---------------------------------------------------------------------------

@router.post(
    "/{document_id}/summary",
    response_model=SummaryTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger summary processing",
    description=(
        "Dispatches a pipeline run and returns immediately. The run itself "
        "skips documents that exhausted their retry or already have a run in flight."
    ),
    responses={
        202: {"model": SummaryTriggerResponse},
        404: {"model": ErrorResponse},
    },
)
async def trigger_document_summary(
    document_id: UUID,
    triggers:    Triggers,
) -> SummaryTriggerResponse:
    outcome = await triggers.trigger_processing(document_id)

    if outcome == TriggerOutcome.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=SummaryErrors.document_not_found(document_id).model_dump(),
        )

    return SummaryTriggerResponse(document_id=document_id)


# ---------------------------------------------------------------------------
# POST /documents/{document_id}/summary/regenerate
# ---------------------------------------------------------------------------

@router.post(
    "/{document_id}/summary/regenerate",
    response_model=SummaryTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Regenerate the document summary",
    description=(
        "Clears the stored summary, resets the retry budget and dispatches a "
        "fresh run. Rejected with 409 while a run is in flight."
    ),
    responses={
        202: {"model": SummaryTriggerResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "A run is already in flight"},
    },
)
async def regenerate_document_summary(
    document_id: UUID,
    triggers:    Triggers,
) -> SummaryTriggerResponse:
    outcome = await triggers.regenerate(document_id)

    if outcome == TriggerOutcome.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=SummaryErrors.document_not_found(document_id).model_dump(),
        )
    if outcome == TriggerOutcome.IN_FLIGHT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SummaryErrors.run_in_flight(document_id).model_dump(),
        )

    logger.info("Summary regeneration accepted | doc=%s", document_id)
    return SummaryTriggerResponse(
        document_id=document_id,
        message="Summary regeneration started",
    )
