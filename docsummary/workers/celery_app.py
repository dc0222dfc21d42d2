"""
Celery Application Factory

Optional worker path for summary runs (DISPATCH_BACKEND=celery).

Queues:
  summaries.process  — one pipeline run per message
  summaries.sweep    — beat-driven stuck-job sweep

Messages carry only the document id and the lease token; the worker
loads the record from the status store.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from docsummary.core.config import Settings, settings

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 60

PROCESS_TASK = "docsummary.workers.tasks.process_document"
SWEEP_TASK   = "docsummary.workers.tasks.requeue_stuck_documents"

SUMMARY_EXCHANGE = Exchange("summaries", type="direct", durable=True)

TASK_QUEUES = (
    Queue("summaries.process", SUMMARY_EXCHANGE, routing_key="summaries.process", durable=True),
    Queue("summaries.sweep",   SUMMARY_EXCHANGE, routing_key="summaries.sweep",   durable=True),
)


def run_time_limit(config: Settings) -> int:
    """Hard limit for one run: every bounded stage back to back, plus slack."""
    stages = (
        config.fetch_timeout_seconds
        + config.ocr_timeout_seconds
        + config.summary_timeout_seconds
    )
    return int(stages) + 30


def create_celery_app(config: Settings = settings) -> Celery:
    app = Celery("docsummary")
    hard_limit = run_time_limit(config)

    app.conf.update(
        broker_url=config.celery_broker_url,
        result_backend=config.celery_result_backend,

        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],

        task_queues=TASK_QUEUES,
        task_routes={
            PROCESS_TASK: {"queue": "summaries.process"},
            SWEEP_TASK:   {"queue": "summaries.sweep"},
        },
        task_default_queue="summaries.process",

        # A lost worker leaves the message on the broker; the run lease
        # keeps a redelivered message from running twice.
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        task_soft_time_limit=hard_limit - 10,
        task_time_limit=hard_limit,

        timezone="UTC",
        enable_utc=True,

        beat_schedule={
            "requeue-stuck-summaries": {
                "task":     SWEEP_TASK,
                "schedule": SWEEP_INTERVAL_SECONDS,
                "options":  {"queue": "summaries.sweep"},
            },
        },
    )

    app.autodiscover_tasks(["docsummary.workers"])
    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Task lifecycle logging
# ---------------------------------------------------------------------------

def _doc(kwargs) -> str:
    return (kwargs or {}).get("document_id", "-")


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info("Task start | task_id=%s task=%s doc=%s", task_id, task.name, _doc(kwargs))


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s doc=%s",
        task_id, task.name, state, _doc(kwargs),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s doc=%s error=%s",
        task_id, _doc(kwargs), exception,
        exc_info=True,
    )
