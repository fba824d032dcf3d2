import base64
from typing import Callable, Dict

import httpx
import pytest

from genstudio.config import Settings
from genstudio.jobs.models import ContentKind, JobRecord, RequestParameters
from genstudio.jobs.store import InMemoryJobStore
from genstudio.jobs.worker import ProcessingWorker
from genstudio.providers.base import ModelSpec
from genstudio.providers.registry import ModelRegistry
from genstudio.storage.data_urls import to_data_url
from genstudio.storage.materializer import OutputMaterializer
from genstudio.storage.object_store import LocalObjectStorage

PNG_BYTES = b"\x89PNG\r\n\x1a\nnot-really-a-png"
PNG_DATA_URL = to_data_url("image/png", base64.b64encode(PNG_BYTES).decode())

SYNC_IMAGE_SPEC = ModelSpec(
    model_id="sync-image",
    name="Sync Image",
    provider="Test",
    kind=ContentKind.IMAGE,
    max_outputs=4,
)

LONG_VIDEO_SPEC = ModelSpec(
    model_id="long-video",
    name="Long Video",
    provider="Test",
    kind=ContentKind.VIDEO,
    max_outputs=1,
)


async def no_sleep(seconds):
    pass


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        local_storage_dir=str(tmp_path / "objects"),
        public_base_url="http://testserver",
        reconcile_interval_seconds=0,
        worker_concurrency=1,
    )


@pytest.fixture
def routes() -> Dict[str, Callable[[httpx.Request], httpx.Response]]:
    """url -> handler map served by the mock transport; unknown urls get a 404."""
    return {}


@pytest.fixture
def requests_seen():
    return []


@pytest.fixture
def http_client(routes, requests_seen):
    def handler(request: httpx.Request) -> httpx.Response:
        requests_seen.append(request)
        responder = routes.get(str(request.url))
        if responder is None:
            return httpx.Response(404, text="not found")
        return responder(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def storage(settings):
    return LocalObjectStorage(settings.local_storage_dir, settings.public_base_url)


@pytest.fixture
def materializer(storage, http_client):
    return OutputMaterializer(storage, http_client)


@pytest.fixture
def registry():
    return ModelRegistry()


@pytest.fixture
def worker(store, registry, materializer):
    return ProcessingWorker(store, registry, materializer, worker_id="worker-test")


@pytest.fixture
def make_job(store):
    def _make_job(model_id="sync-image", user_id="user-1", **kwargs) -> JobRecord:
        parameters = kwargs.pop("parameters", {})
        job = JobRecord(
            user_id=user_id,
            session_id=kwargs.pop("session_id", "session-1"),
            model_id=model_id,
            prompt=kwargs.pop("prompt", "a red bicycle"),
            parameters=RequestParameters(**parameters),
            **kwargs,
        )
        return store.create(job)

    return _make_job
