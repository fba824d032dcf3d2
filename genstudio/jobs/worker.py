"""Processing worker: runs one job from ``processing`` to a terminal state.

Sequence: load -> claim -> resolve adapter -> persist inline reference image
-> generate -> materialize every output -> complete. Any failure along the
way, expected or not, is recorded on the job and turns it ``failed``.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from genstudio.concurrency import run_blocking
from genstudio.errors import GenerationPipelineError, JobNotFoundError, UnknownModelError
from genstudio.jobs.models import DiagnosticLog, JobRecord, OutputRecord
from genstudio.jobs.store import JobStore
from genstudio.providers.base import GenerationRequest
from genstudio.providers.registry import ModelRegistry
from genstudio.storage.data_urls import is_data_url
from genstudio.storage.materializer import OutputMaterializer

logger = logging.getLogger(__name__)


class ProcessingWorker:
    def __init__(
        self,
        store: JobStore,
        registry: ModelRegistry,
        materializer: OutputMaterializer,
        worker_id: Optional[str] = None,
    ):
        self._store = store
        self._registry = registry
        self._materializer = materializer
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

    async def process(self, job_id: str) -> JobRecord:
        """Process a job and return its record as it stands afterwards.

        Terminal jobs and jobs claimed by another worker are returned
        untouched.
        """
        job = await run_blocking(self._store.get, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.is_terminal():
            logger.info(f"[{job_id}] Already {job.status.value}, nothing to do")
            return job
        if not await run_blocking(self._store.claim, job_id, self.worker_id):
            logger.info(f"[{job_id}] Claimed by another worker, skipping")
            return await run_blocking(self._store.require, job_id)

        try:
            await self._run(job)
        except Exception as exc:
            reason = exc.reason if isinstance(exc, GenerationPipelineError) else "UnexpectedError"
            logger.error(f"[{job_id}] Generation failed ({reason}): {exc}", exc_info=True)
            await self._fail(job_id, reason, str(exc) or type(exc).__name__)

        return await run_blocking(self._store.require, job_id)

    async def _run(self, job: JobRecord) -> None:
        await self._step(job.id, "claimed", worker_id=self.worker_id)

        registered = self._registry.get(job.model_id)
        if registered is None:
            error = UnknownModelError(job.model_id)
            logger.error(f"[{job.id}] {error}")
            await self._fail(job.id, error.reason, str(error))
            return
        kind = registered.spec.kind

        reference_image_url = job.reference_image_url
        if is_data_url(job.reference_image):
            reference_image_url = await self._persist_reference(job) or reference_image_url

        request = GenerationRequest(
            prompt=job.prompt,
            negative_prompt=job.negative_prompt,
            reference_image=job.reference_image,
            reference_image_url=reference_image_url,
            parameters=job.parameters,
        )

        logger.info(f"[{job.id}] Starting generation with model {job.model_id}")
        await self._step(job.id, "generate_started", model_id=job.model_id, num_outputs=request.num_outputs)

        async def on_progress(step: str, data: Dict[str, Any]) -> None:
            await self._step(job.id, step, **data)

        result = await registered.adapter.generate(request, progress_cb=on_progress)
        if not result.ok:
            logger.error(f"[{job.id}] Generation failed ({result.reason}): {result.error}")
            await self._fail(job.id, result.reason, result.error, partial_errors=result.partial_errors)
            return

        await self._step(
            job.id,
            "generate_finished",
            outputs=len(result.outputs),
            partial_errors=result.partial_errors,
        )

        records: List[OutputRecord] = []
        for index, descriptor in enumerate(result.outputs):
            materialized = await self._materializer.materialize(
                descriptor, kind, job.user_id, job.id, index
            )
            if materialized.durable:
                await self._step(job.id, "output_materialized", index=index, url=materialized.url)
            else:
                await run_blocking(
                    self._store.merge_diagnostics,
                    job.id,
                    DiagnosticLog.step(
                        "storage_fallback",
                        index=index,
                        url=materialized.url,
                        error=materialized.fallback_reason,
                    ).merge(DiagnosticLog(details={f"storage_fallback_{index}": materialized.url})),
                )
            records.append(materialized.to_record(job.id))

        completed = await run_blocking(
            self._store.complete, job.id, records, DiagnosticLog.step("completed", output_count=len(records))
        )
        if completed:
            logger.info(f"[{job.id}] Generation completed with {len(records)} output(s)")
        else:
            logger.warning(f"[{job.id}] Job was finalized elsewhere before completion, outputs discarded")

    async def _persist_reference(self, job: JobRecord) -> Optional[str]:
        try:
            reference = await self._materializer.persist_reference(
                job.reference_image, job.user_id, job.id
            )
        except Exception as exc:
            logger.warning(f"[{job.id}] Failed to persist reference image: {exc}")
            await self._step(job.id, "reference_persist_failed", error=str(exc))
            return None

        await run_blocking(self._store.set_reference_image_url, job.id, reference.url)
        await run_blocking(
            self._store.merge_diagnostics,
            job.id,
            DiagnosticLog.step("reference_persisted", url=reference.url).merge(
                DiagnosticLog(
                    details={
                        "reference_image_url": reference.url,
                        "reference_image_path": reference.path,
                        "reference_image_mime_type": reference.mime_type,
                        "reference_image_checksum": reference.checksum,
                    }
                )
            ),
        )
        return reference.url

    async def _step(self, job_id: str, step: str, **data: Any) -> None:
        await run_blocking(self._store.merge_diagnostics, job_id, DiagnosticLog.step(step, **data))

    async def _fail(self, job_id: str, reason: str, error: str, **details: Any) -> None:
        failed = await run_blocking(self._store.fail, job_id, DiagnosticLog.failure(reason, error, **details))
        if not failed:
            logger.warning(f"[{job_id}] Job was already finalized, failure not recorded")
