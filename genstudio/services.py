"""Wires the pipeline collaborators together once at startup."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import httpx

from genstudio.config import Settings
from genstudio.db.supabase_client import create_service_client
from genstudio.jobs.dispatcher import JobDispatcher
from genstudio.jobs.http_trigger import HttpTriggerDispatcher
from genstudio.jobs.in_process_queue import InProcessQueue
from genstudio.jobs.reconciler import JobReconciler
from genstudio.jobs.service import GenerationRequestHandler
from genstudio.jobs.store import InMemoryJobStore, JobStore, SupabaseJobStore
from genstudio.jobs.worker import ProcessingWorker
from genstudio.providers.registry import ModelRegistry, build_default_registry
from genstudio.storage.materializer import OutputMaterializer
from genstudio.storage.object_store import (
    LocalObjectStorage,
    ObjectStorage,
    SupabaseObjectStorage,
)

logger = logging.getLogger(__name__)

PROCESS_PATH = "/api/v1/generate/process"


@dataclass
class Services:
    settings: Settings
    http_client: httpx.AsyncClient
    store: JobStore
    storage: ObjectStorage
    registry: ModelRegistry
    materializer: OutputMaterializer
    worker: ProcessingWorker
    dispatcher: JobDispatcher
    reconciler: JobReconciler
    handler: GenerationRequestHandler

    async def start(self) -> None:
        await self.dispatcher.start()
        await self.reconciler.start()

    async def stop(self) -> None:
        await self.reconciler.stop()
        await self.dispatcher.stop()
        await self.http_client.aclose()


def build_services(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    store: Optional[JobStore] = None,
    storage: Optional[ObjectStorage] = None,
    registry: Optional[ModelRegistry] = None,
) -> Services:
    """Build every collaborator from settings; explicit arguments win."""
    http_client = http_client or httpx.AsyncClient()

    supabase = None
    if settings.job_store_backend == "supabase" or settings.storage_backend == "supabase":
        supabase = create_service_client(settings)

    if store is None:
        store = SupabaseJobStore(supabase) if settings.job_store_backend == "supabase" else InMemoryJobStore()
    if storage is None:
        if settings.storage_backend == "supabase":
            storage = SupabaseObjectStorage(supabase)
        else:
            storage = LocalObjectStorage(settings.local_storage_dir, settings.public_base_url)
    if registry is None:
        registry = build_default_registry(settings, http_client)

    materializer = OutputMaterializer(
        storage,
        http_client,
        image_bucket=settings.image_bucket,
        video_bucket=settings.video_bucket,
        download_timeout=settings.provider_timeout_seconds,
    )
    worker = ProcessingWorker(store, registry, materializer)

    if settings.dispatch_mode == "http":
        dispatcher: JobDispatcher = HttpTriggerDispatcher(
            store,
            http_client,
            process_url=settings.public_base_url.rstrip("/") + PROCESS_PATH,
            max_attempts=settings.dispatch_max_attempts,
            backoff_seconds=settings.dispatch_backoff_seconds,
            timeout_seconds=settings.dispatch_timeout_seconds,
            secret=settings.dispatch_secret,
        )
    else:
        dispatcher = InProcessQueue(worker.process, concurrency=settings.worker_concurrency)

    reconciler = JobReconciler(
        store,
        stale_after=timedelta(seconds=settings.stale_after_seconds),
        interval_seconds=settings.reconcile_interval_seconds,
    )
    handler = GenerationRequestHandler(store, registry, dispatcher)

    logger.info(
        f"Services ready: store={type(store).__name__} storage={type(storage).__name__} "
        f"dispatch={type(dispatcher).__name__} models={len(registry.list_models())}"
    )
    return Services(
        settings=settings,
        http_client=http_client,
        store=store,
        storage=storage,
        registry=registry,
        materializer=materializer,
        worker=worker,
        dispatcher=dispatcher,
        reconciler=reconciler,
        handler=handler,
    )
