import asyncio
import time

import pytest

from genstudio.errors import ProviderError
from genstudio.jobs.models import JobRecord, JobStatus
from genstudio.jobs.store import InMemoryJobStore
from genstudio.jobs.worker import ProcessingWorker
from genstudio.providers.adapters import LongRunningAdapter, SyncAdapter
from genstudio.providers.base import OperationStatus, OutputDescriptor

from conftest import LONG_VIDEO_SPEC, PNG_DATA_URL, SYNC_IMAGE_SPEC, no_sleep


def image_adapter(fail=False):
    calls = []

    async def call(request):
        calls.append(request)
        if fail:
            raise ProviderError("Image generation failed (500): internal")
        return OutputDescriptor(content_ref=PNG_DATA_URL, width=1024, height=1024)

    return SyncAdapter(call=call), calls


def never_done_video_adapter(max_attempts=3):
    async def submit(request, progress_cb):
        return "operations/never"

    async def poll(handle):
        return OperationStatus(done=False)

    return LongRunningAdapter(
        submit=submit,
        poll=poll,
        extract=lambda status, request: [],
        poll_interval=10.0,
        max_attempts=max_attempts,
        sleep=no_sleep,
    )


def steps_of(job):
    return [entry.step for entry in job.diagnostics.debug_logs]


@pytest.mark.asyncio
async def test_sync_job_completes_with_durable_outputs(worker, registry, store, make_job):
    adapter, calls = image_adapter()
    registry.register(SYNC_IMAGE_SPEC, adapter)
    job = make_job(parameters={"num_outputs": 2})

    result = await worker.process(job.id)

    outputs = store.list_outputs(job.id)
    assert result.status == JobStatus.COMPLETED
    assert len(calls) == 2
    assert len(outputs) == 2
    assert all(o.durable for o in outputs)
    assert sorted(o.url for o in outputs) == [
        f"http://testserver/files/generated-images/user-1/{job.id}/0.png",
        f"http://testserver/files/generated-images/user-1/{job.id}/1.png",
    ]
    assert steps_of(result)[:3] == ["claimed", "generate_started", "provider_calls_started"]
    assert result.diagnostics.last_step == "completed"


@pytest.mark.asyncio
async def test_sync_job_fails_when_every_call_fails(worker, registry, store, make_job):
    adapter, _ = image_adapter(fail=True)
    registry.register(SYNC_IMAGE_SPEC, adapter)
    job = make_job(parameters={"num_outputs": 2})

    result = await worker.process(job.id)

    assert result.status == JobStatus.FAILED
    assert store.list_outputs(job.id) == []
    assert result.diagnostics.reason == "ProviderError"
    assert "All 2 generation call(s) failed" in result.diagnostics.error


@pytest.mark.asyncio
async def test_long_running_job_times_out(worker, registry, make_job):
    registry.register(LONG_VIDEO_SPEC, never_done_video_adapter())
    job = make_job(model_id="long-video")

    result = await worker.process(job.id)

    assert result.status == JobStatus.FAILED
    assert result.diagnostics.reason == "TimedOut"
    assert steps_of(result).count("operation_polled") == 3


@pytest.mark.asyncio
async def test_unreachable_output_keeps_original_url(worker, registry, store, make_job):
    async def call(request):
        return OutputDescriptor(content_ref="https://replicate.delivery/gone.png")

    registry.register(SYNC_IMAGE_SPEC, SyncAdapter(call=call))
    job = make_job()

    result = await worker.process(job.id)

    outputs = store.list_outputs(job.id)
    assert result.status == JobStatus.COMPLETED
    assert len(outputs) == 1
    assert outputs[0].url == "https://replicate.delivery/gone.png"
    assert outputs[0].durable is False
    assert "storage_fallback" in steps_of(result)
    assert result.diagnostics.details["storage_fallback_0"] == "https://replicate.delivery/gone.png"


@pytest.mark.asyncio
async def test_processing_twice_changes_nothing(worker, registry, store, make_job):
    adapter, calls = image_adapter()
    registry.register(SYNC_IMAGE_SPEC, adapter)
    job = make_job(parameters={"num_outputs": 2})

    first = await worker.process(job.id)
    second = await worker.process(job.id)

    assert first.status == second.status == JobStatus.COMPLETED
    assert len(store.list_outputs(job.id)) == 2
    assert len(calls) == 2
    assert len(second.diagnostics.debug_logs) == len(first.diagnostics.debug_logs)


@pytest.mark.asyncio
async def test_claimed_job_is_skipped(worker, registry, store, make_job):
    adapter, calls = image_adapter()
    registry.register(SYNC_IMAGE_SPEC, adapter)
    job = make_job()
    store.claim(job.id, "other-worker")

    result = await worker.process(job.id)

    assert result.status == JobStatus.PROCESSING
    assert result.claimed_by == "other-worker"
    assert calls == []


@pytest.mark.asyncio
async def test_unregistered_model_fails_job(worker, make_job):
    job = make_job(model_id="retired-model")

    result = await worker.process(job.id)

    assert result.status == JobStatus.FAILED
    assert result.diagnostics.reason == "UnknownModelError"
    assert result.diagnostics.error == "Model not found: retired-model"


@pytest.mark.asyncio
async def test_inline_reference_image_is_persisted(worker, registry, store, make_job):
    adapter, calls = image_adapter()
    registry.register(SYNC_IMAGE_SPEC, adapter)
    job = make_job(reference_image=PNG_DATA_URL)

    result = await worker.process(job.id)

    expected = f"http://testserver/files/generated-images/user-1/{job.id}/reference.png"
    assert result.reference_image_url == expected
    assert calls[0].reference_image_url == expected
    assert calls[0].reference_image == PNG_DATA_URL
    assert result.diagnostics.details["reference_image_mime_type"] == "image/png"


@pytest.mark.asyncio
async def test_bad_inline_output_fails_the_job(worker, registry, store, make_job):
    async def call(request):
        return OutputDescriptor(content_ref="data:image/png,missing-marker")

    registry.register(SYNC_IMAGE_SPEC, SyncAdapter(call=call))
    job = make_job()

    result = await worker.process(job.id)

    assert result.status == JobStatus.FAILED
    assert result.diagnostics.reason == "StorageError"
    assert store.list_outputs(job.id) == []


@pytest.mark.asyncio
async def test_unexpected_exception_is_recorded(worker, registry, make_job):
    class ExplodingAdapter:
        async def generate(self, request, progress_cb=None):
            raise RuntimeError("adapter bug")

    registry.register(SYNC_IMAGE_SPEC, ExplodingAdapter())
    job = make_job()

    result = await worker.process(job.id)

    assert result.status == JobStatus.FAILED
    assert result.diagnostics.reason == "UnexpectedError"
    assert result.diagnostics.error == "adapter bug"


class SlowJobStore(InMemoryJobStore):
    """Store whose diagnostic writes block like a remote round trip."""

    def merge_diagnostics(self, job_id, patch):
        time.sleep(0.1)
        super().merge_diagnostics(job_id, patch)


@pytest.mark.asyncio
async def test_store_writes_do_not_stall_the_event_loop(registry, materializer):
    store = SlowJobStore()
    worker = ProcessingWorker(store, registry, materializer, worker_id="worker-test")
    adapter, _ = image_adapter()
    registry.register(SYNC_IMAGE_SPEC, adapter)
    job = store.create(JobRecord(user_id="user-1", session_id="session-1", model_id="sync-image", prompt="a red bicycle"))
    done = asyncio.Event()
    ticks = 0

    async def ticker():
        nonlocal ticks
        while not done.is_set():
            ticks += 1
            await asyncio.sleep(0.005)

    async def run():
        try:
            return await worker.process(job.id)
        finally:
            done.set()

    result, _ = await asyncio.gather(run(), ticker())

    assert result.status == JobStatus.COMPLETED
    assert ticks >= 20
