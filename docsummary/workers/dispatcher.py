"""
Job Dispatchers — fire-and-forget pipeline runs

  BackgroundDispatcher   asyncio tasks inside the API process, gated by a
                         semaphore (MAX_CONCURRENT_JOBS). Default.
  CeleryDispatcher       publishes process_document to the broker; runs
                         happen in the Celery worker.

Callers never get a handle to the run. Outcomes are visible only through
the persisted summary status.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

RunCallable = Callable[[uuid.UUID, "str | None"], Awaitable[Any]]


class JobDispatcher(ABC):

    @abstractmethod
    async def dispatch(self, document_id: uuid.UUID, lease_token: str | None = None) -> None:
        """Schedule a pipeline run and return immediately."""

    async def shutdown(self) -> None:
        """Release dispatcher resources. No-op by default."""


# ---------------------------------------------------------------------------
# In-process dispatcher
# ---------------------------------------------------------------------------

class BackgroundDispatcher(JobDispatcher):
    """
    Bounded in-process scheduler.

    Tasks are created immediately and wait on the semaphore; at most
    max_concurrency runs execute at once. Strong references are kept in
    self._tasks until each task finishes.
    """

    def __init__(self, run: RunCallable, max_concurrency: int = 4) -> None:
        self._run       = run
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._tasks:    set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def dispatch(self, document_id: uuid.UUID, lease_token: str | None = None) -> None:
        task = asyncio.create_task(
            self._guarded(document_id, lease_token),
            name=f"summary-{document_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("Dispatched | doc=%s in_flight=%d", document_id, len(self._tasks))

    async def _guarded(self, document_id: uuid.UUID, lease_token: str | None) -> Any:
        async with self._semaphore:
            return await self._run(document_id, lease_token)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Summary task cancelled | task=%s", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Summary task crashed | task=%s error=%s",
                task.get_name(), exc, exc_info=exc,
            )

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight task (or until `timeout`)."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    async def shutdown(self, timeout: float = 30.0) -> None:
        await self.drain(timeout=timeout)
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            logger.warning("Cancelled %d unfinished summary tasks on shutdown", len(self._tasks))
            await asyncio.gather(*self._tasks, return_exceptions=True)


# ---------------------------------------------------------------------------
# Celery dispatcher
# ---------------------------------------------------------------------------

class CeleryDispatcher(JobDispatcher):
    """
    Sends process_document to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def dispatch(self, document_id: uuid.UUID, lease_token: str | None = None) -> None:
        from docsummary.workers.tasks import process_document

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: process_document.apply_async(
                kwargs={
                    "document_id": str(document_id),
                    "lease_token": lease_token,
                },
            ),
        )
        logger.info("Summary task published | doc=%s", document_id)
