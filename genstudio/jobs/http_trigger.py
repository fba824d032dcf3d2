"""Out-of-band dispatch via an HTTP call to the processing endpoint.

For hosts where the process serving the create request may not outlive it:
the job is handed to a second, independent invocation of the service. The
trigger call itself is retried with a linear backoff; once retries are
exhausted the job is failed so it never stays ``processing`` because the
trigger was lost.

Delivery is at-least-once. A retried trigger can reach the worker twice,
which the worker's claim step turns into a no-op.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Set

import httpx

from genstudio.concurrency import run_blocking
from genstudio.errors import DispatchError, JobNotFoundError
from genstudio.jobs.dispatcher import JobDispatcher
from genstudio.jobs.models import DiagnosticLog
from genstudio.jobs.store import JobStore

logger = logging.getLogger(__name__)

DISPATCH_TOKEN_HEADER = "X-Dispatch-Token"


class HttpTriggerDispatcher(JobDispatcher):
    def __init__(
        self,
        store: JobStore,
        http_client: httpx.AsyncClient,
        process_url: str,
        max_attempts: int = 3,
        backoff_seconds: float = 2.0,
        timeout_seconds: Optional[float] = 600.0,
        secret: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._http = http_client
        self._process_url = process_url
        self._max_attempts = max(1, max_attempts)
        self._backoff_seconds = backoff_seconds
        self._timeout_seconds = timeout_seconds
        self._secret = secret
        self._sleep = sleep
        self._inflight: Set[asyncio.Task] = set()

    async def submit(self, job_id: str) -> None:
        task = asyncio.create_task(self.trigger(job_id))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        for task in list(self._inflight):
            task.cancel()
        await asyncio.gather(*self._inflight, return_exceptions=True)

    async def trigger(self, job_id: str) -> bool:
        """Deliver the trigger for one job. Returns False once retries are exhausted."""
        headers: Dict[str, str] = {}
        if self._secret:
            headers[DISPATCH_TOKEN_HEADER] = self._secret

        last_error = ""
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._http.post(
                    self._process_url,
                    json={"job_id": job_id},
                    headers=headers,
                    timeout=self._timeout_seconds,
                )
                if response.is_success:
                    logger.info(f"[{job_id}] Background processing triggered (attempt {attempt})")
                    return True
                last_error = f"HTTP {response.status_code}"
            except httpx.HTTPError as exc:
                last_error = str(exc) or type(exc).__name__

            logger.warning(
                f"[{job_id}] Background processing trigger attempt "
                f"{attempt}/{self._max_attempts} failed: {last_error}"
            )
            if attempt < self._max_attempts:
                await self._sleep(self._backoff_seconds * attempt)

        error = DispatchError(
            f"Failed to start background processing after {self._max_attempts} attempts",
            job_id=job_id,
        )
        logger.error(f"[{job_id}] {error} (last error: {last_error})")
        try:
            await run_blocking(
                self._store.fail,
                job_id,
                DiagnosticLog.failure(
                    error.reason,
                    str(error),
                    dispatch_attempts=self._max_attempts,
                    dispatch_last_error=last_error,
                ),
            )
        except JobNotFoundError:
            logger.error(f"[{job_id}] Job disappeared before it could be marked failed")
        return False
