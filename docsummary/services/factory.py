"""
Service wiring

Builds the pipeline and trigger service from Settings. Used by the
FastAPI lifespan (one set per API process) and by the Celery worker
(one set per worker process).
"""

from __future__ import annotations

import logging

from docsummary.core.config import Settings
from docsummary.core.errors import SummarizerNotConfiguredError
from docsummary.llm.summarizer import SummarizerClient
from docsummary.processing.extractor import ExtractionRouter
from docsummary.services.pipeline import SummaryPipeline
from docsummary.services.triggers import SummaryTriggers
from docsummary.storage.acquirer import ContentAcquirer
from docsummary.store.base import StatusStore
from docsummary.workers.dispatcher import BackgroundDispatcher, CeleryDispatcher, JobDispatcher

logger = logging.getLogger(__name__)


def build_summarizer(settings: Settings) -> SummarizerClient | None:
    """
    None when AI_API_KEY is missing: the process still serves status
    reads and every run fails with the configuration message.
    """
    try:
        return SummarizerClient(settings)
    except SummarizerNotConfiguredError as exc:
        logger.error("Summarizer disabled: %s", exc)
        return None


def build_pipeline(settings: Settings, store: StatusStore) -> SummaryPipeline:
    return SummaryPipeline(
        store=store,
        acquirer=ContentAcquirer(settings),
        router=ExtractionRouter.from_settings(settings),
        summarizer=build_summarizer(settings),
        lease_seconds=settings.run_lease_seconds,
    )


def build_dispatcher(settings: Settings, pipeline: SummaryPipeline) -> JobDispatcher:
    backend = settings.dispatch_backend.lower()

    if backend == "background":
        return BackgroundDispatcher(pipeline.run, max_concurrency=settings.max_concurrent_jobs)

    if backend == "celery":
        return CeleryDispatcher()

    raise ValueError(
        f"Unknown dispatch backend: '{backend}'. "
        f"Valid options: 'background', 'celery'"
    )


def build_triggers(
    settings:   Settings,
    store:      StatusStore,
    dispatcher: JobDispatcher,
) -> SummaryTriggers:
    return SummaryTriggers(
        store=store,
        dispatcher=dispatcher,
        stuck_timeout_seconds=settings.stuck_timeout_seconds,
        lease_seconds=settings.run_lease_seconds,
    )
