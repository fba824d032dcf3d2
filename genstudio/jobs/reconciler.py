"""Resolves jobs stuck in ``processing``.

A job still processing more than ``stale_after`` after creation is
assumed lost (its worker died or was never triggered) and is failed with a
``timeout`` reason. The failure is merged into the job's diagnostics so
whatever the worker recorded before it vanished is kept.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from genstudio.concurrency import run_blocking
from genstudio.errors import JobNotFoundError
from genstudio.jobs.models import DiagnosticLog, JobRecord, utcnow
from genstudio.jobs.store import JobStore

logger = logging.getLogger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=5)


class JobReconciler:
    def __init__(
        self,
        store: JobStore,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        interval_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._stale_after = stale_after
        self._interval_seconds = interval_seconds
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    def list_stale(self, user_id: Optional[str] = None) -> List[JobRecord]:
        """Processing jobs older than the staleness threshold, newest first."""
        return self._store.list_processing_older_than(self._clock() - self._stale_after, user_id)

    def fix_all(self, user_id: Optional[str] = None) -> List[str]:
        """Fail every stale job. Returns the ids that this sweep transitioned."""
        fixed = []
        for job in self.list_stale(user_id):
            try:
                if self._mark_failed(job, manual=False):
                    fixed.append(job.id)
            except Exception:
                logger.exception(f"[{job.id}] Failed to clean up stuck generation")
        if fixed:
            logger.info(f"Cleaned up {len(fixed)} stuck generation(s)")
        return fixed

    def fix_one(self, job_id: str, user_id: Optional[str] = None) -> JobRecord:
        """Fail a single processing job, stale or not. Terminal jobs are left as they are."""
        job = self._store.require(job_id)
        if user_id is not None and job.user_id != user_id:
            raise JobNotFoundError(job_id)
        if not job.is_terminal():
            stale = job.created_at < self._clock() - self._stale_after
            self._mark_failed(job, manual=not stale)
        return self._store.require(job_id)

    def _mark_failed(self, job: JobRecord, manual: bool) -> bool:
        now = self._clock()
        if manual:
            reason, error = "manual", "Generation manually stopped"
        else:
            reason, error = "timeout", "Generation timeout - automatically stopped"
        patch = DiagnosticLog.failure(
            reason,
            error,
            timeout_detected_at=now.isoformat(),
            age_seconds=int(job.age(now).total_seconds()),
            last_step_before_timeout=job.diagnostics.last_step,
        )
        transitioned = self._store.fail(job.id, patch)
        if transitioned:
            logger.warning(f"[{job.id}] Marked failed ({reason}) after {job.age(now)} in processing")
        return transitioned

    async def start(self) -> None:
        if self._interval_seconds <= 0:
            return
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            try:
                await run_blocking(self.fix_all)
            except Exception:
                logger.exception("Stale job sweep failed")
