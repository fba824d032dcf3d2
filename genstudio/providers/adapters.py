"""The two adapter variants every registered model is built from.

``SyncAdapter`` wraps a single provider call and fans it out N times
concurrently with best-effort semantics. ``LongRunningAdapter`` wraps a
submit/poll/extract triple and blocks for the whole poll loop.

Neither variant raises: every failure is returned as a failed
``GenerationResult``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Union

from genstudio.errors import ProviderError, TimedOut
from genstudio.providers.base import (
    GenerationRequest,
    GenerationResult,
    OperationStatus,
    OutputDescriptor,
    ProgressCallback,
)

logger = logging.getLogger(__name__)

SingleCall = Callable[[GenerationRequest], Awaitable[OutputDescriptor]]
SubmitFn = Callable[[GenerationRequest, ProgressCallback], Awaitable[str]]
PollFn = Callable[[str], Awaitable[OperationStatus]]
ExtractFn = Callable[[OperationStatus, GenerationRequest], List[OutputDescriptor]]
SleepFn = Callable[[float], Awaitable[None]]


async def _noop_progress(step, data):
    pass


@dataclass(frozen=True)
class SyncAdapter:
    call: SingleCall

    async def generate(
        self,
        request: GenerationRequest,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        progress_cb = progress_cb or _noop_progress
        count = request.num_outputs
        try:
            await progress_cb("provider_calls_started", {"count": count})
            results = await asyncio.gather(
                *(self.call(request) for _ in range(count)),
                return_exceptions=True,
            )
        except Exception as exc:
            return GenerationResult.failure(exc)

        outputs: List[OutputDescriptor] = []
        errors: List[str] = []
        for index, result in enumerate(results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Provider call {index + 1}/{count} failed: {result}")
                errors.append(str(result) or type(result).__name__)
            else:
                outputs.append(result)

        await progress_cb(
            "provider_calls_settled",
            {"succeeded": len(outputs), "failed": len(errors)},
        )
        if not outputs:
            return GenerationResult.failure(
                ProviderError(f"All {count} generation call(s) failed: {errors[0]}")
            )
        return GenerationResult.success(outputs, partial_errors=errors)


@dataclass(frozen=True)
class LongRunningAdapter:
    submit: SubmitFn
    poll: PollFn
    extract: ExtractFn
    poll_interval: float = 10.0
    max_attempts: int = 30
    sleep: SleepFn = asyncio.sleep

    async def generate(
        self,
        request: GenerationRequest,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        progress_cb = progress_cb or _noop_progress
        try:
            handle = await self.submit(request, progress_cb)
            await progress_cb("operation_submitted", {"operation": handle})

            for attempt in range(1, self.max_attempts + 1):
                await self.sleep(self.poll_interval)
                status = await self.poll(handle)
                await progress_cb(
                    "operation_polled",
                    {"operation": handle, "attempt": attempt, "done": status.done},
                )
                if status.done:
                    outputs = self.extract(status, request)
                    if not outputs:
                        raise ProviderError(f"Operation {handle} completed without a result")
                    return GenerationResult.success(outputs)

            raise TimedOut(
                f"Operation {handle} did not complete after "
                f"{self.max_attempts} polls ({self.max_attempts * self.poll_interval:.0f}s)"
            )
        except Exception as exc:
            return GenerationResult.failure(exc)


Adapter = Union[SyncAdapter, LongRunningAdapter]
