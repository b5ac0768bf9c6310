"""Background document processing.

Upload handlers only enqueue; a fixed pool of asyncio worker tasks drains
the queue and reports each job through a completion or failure callback.
A document is held at most once, from enqueue until its job finishes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from docrag.ingestion.schemas import ProcessingSummary

logger = logging.getLogger(__name__)

ProcessFn = Callable[[str, str], Awaitable[ProcessingSummary]]
CompleteCallback = Callable[[ProcessingSummary], None]
ErrorCallback = Callable[[str, BaseException], None]


@dataclass(frozen=True)
class ProcessingJob:
    document_id: str
    owner_id: str


def _log_complete(summary: ProcessingSummary) -> None:
    logger.info("Document %s processed: %d chunks.", summary.document_id, summary.chunks)


def _log_error(document_id: str, exc: BaseException) -> None:
    logger.error("Document %s failed: %s", document_id, exc)


class ProcessingQueue:
    """asyncio.Queue with *workers* consumer tasks."""

    def __init__(
        self,
        process: ProcessFn,
        *,
        workers: int = 2,
        on_complete: CompleteCallback = _log_complete,
        on_error: ErrorCallback = _log_error,
    ) -> None:
        self._process = process
        self._worker_count = max(1, workers)
        self._on_complete = on_complete
        self._on_error = on_error
        self._queue: asyncio.Queue[ProcessingJob] = asyncio.Queue()
        self._workers: list[asyncio.Task] = []
        self._pending: set[str] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"docrag-worker-{i}")
            for i in range(self._worker_count)
        ]
        logger.info("Started %d processing workers.", self._worker_count)

    async def stop(self) -> None:
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    def enqueue(self, document_id: str, owner_id: str) -> bool:
        """Schedule processing and return immediately.

        Returns False, without queueing, when the document is already queued
        or being processed.
        """
        if document_id in self._pending:
            logger.info("Document %s already queued; skipping.", document_id)
            return False
        self._pending.add(document_id)
        self._queue.put_nowait(ProcessingJob(document_id, owner_id))
        logger.info("Queued document %s (pending=%d).", document_id, self._queue.qsize())
        return True

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def _worker(self, worker_id: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                summary = await self._process(job.document_id, job.owner_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._notify(self._on_error, job.document_id, exc)
            else:
                self._notify(self._on_complete, summary)
            finally:
                self._pending.discard(job.document_id)
                self._queue.task_done()

    @staticmethod
    def _notify(callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Processing callback raised.")
