"""In-process job queue using asyncio for local development.

A fixed pool of worker tasks pulls job ids from an asyncio queue. The job id
is the idempotency key: an id that is already queued or running is not
queued again. No external dependencies (Redis, Celery) needed.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Set

from genstudio.jobs.dispatcher import JobDispatcher

logger = logging.getLogger(__name__)


class InProcessQueue(JobDispatcher):
    """Local async job queue with ``concurrency`` worker slots."""

    def __init__(self, worker_fn: Callable[[str], Awaitable[Any]], concurrency: int = 2):
        """
        worker_fn: async callable(job_id) that runs a job to a terminal state.
        """
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._pending: Set[str] = set()
        self._worker_fn = worker_fn
        self._concurrency = max(1, concurrency)
        self._tasks: List[asyncio.Task] = []
        self._running = False

    async def submit(self, job_id: str) -> None:
        if job_id in self._pending:
            logger.info(f"[{job_id}] Already queued, ignoring duplicate dispatch")
            return
        self._pending.add(job_id)
        await self._queue.put(job_id)

    async def start(self) -> None:
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(slot)) for slot in range(self._concurrency)
        ]

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker_loop(self, slot: int) -> None:
        """Process jobs one at a time from the queue."""
        while self._running:
            try:
                job_id = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

            try:
                await self._worker_fn(job_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"[{job_id}] Worker slot {slot} crashed while processing")
            finally:
                self._pending.discard(job_id)
                self._queue.task_done()
