"""
Celery Tasks — Summary Pipeline

Task: process_document
  Runs SummaryPipeline.run() for one document. Retry policy lives in
  the pipeline (retry_count on the document), so the task itself never
  calls task.retry().

Task: requeue_stuck_documents
  Beat task — re-dispatches documents stuck in 'pending' longer than
  STUCK_TIMEOUT_SECONDS. Covers workers that died mid-run and broker
  outages during the original trigger.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from docsummary.workers.celery_app import PROCESS_TASK, SWEEP_TASK, celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


async def _dispose_engine() -> None:
    """asyncpg connections are bound to the loop that opened them."""
    from docsummary.core.config import settings

    if settings.status_store_backend.lower() == "sql":
        from docsummary.db.session import engine
        await engine.dispose()


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(name=PROCESS_TASK)
def process_document(*, document_id: str, lease_token: str | None = None) -> dict[str, Any]:
    """Acquire → extract → summarize → persist for one document."""
    return run_async(_process_document_async(uuid.UUID(document_id), lease_token))


async def _process_document_async(
    document_id: uuid.UUID,
    lease_token: str | None,
) -> dict[str, Any]:
    from docsummary.core.config import settings
    from docsummary.services.factory import build_pipeline
    from docsummary.store.factory import get_status_store

    pipeline = build_pipeline(settings, get_status_store(settings))
    try:
        outcome = await pipeline.run(document_id, lease_token)
    finally:
        await _dispose_engine()

    return {"status": outcome.value, "document_id": str(document_id)}


# ---------------------------------------------------------------------------
# Stuck-job sweep: runs every 60 seconds via Celery Beat
# ---------------------------------------------------------------------------

@celery_app.task(
    name=SWEEP_TASK,
    soft_time_limit=55,
    time_limit=60,
)
def requeue_stuck_documents() -> dict[str, int]:
    """Find documents pending past the staleness window and re-queue them."""
    return run_async(_requeue_stuck_documents_async())


async def _requeue_stuck_documents_async() -> dict[str, int]:
    from docsummary.core.config import settings
    from docsummary.services.factory import build_triggers
    from docsummary.store.factory import get_status_store
    from docsummary.workers.dispatcher import CeleryDispatcher

    triggers = build_triggers(settings, get_status_store(settings), CeleryDispatcher())
    try:
        requeued = await triggers.requeue_stuck(limit=settings.stuck_sweep_batch_size)
    finally:
        await _dispose_engine()

    return {"requeued": requeued}

