"""Generation request handler: validate, create the job, dispatch, return."""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from genstudio.concurrency import run_blocking
from genstudio.errors import DispatchError, UnknownModelError, ValidationError
from genstudio.jobs.dispatcher import JobDispatcher
from genstudio.jobs.models import DiagnosticLog, JobRecord, RequestParameters
from genstudio.jobs.store import JobStore
from genstudio.providers.registry import ModelRegistry

logger = logging.getLogger(__name__)


class GenerationSubmission(BaseModel):
    """Body of a create-generation request."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = None
    model_id: Optional[str] = None
    prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    reference_image: Optional[str] = None
    parameters: RequestParameters = Field(default_factory=RequestParameters)

    @model_validator(mode="before")
    @classmethod
    def _lift_reference_image(cls, data: Any) -> Any:
        """The web client sends the reference image inside ``parameters``."""
        if not isinstance(data, dict) or not isinstance(data.get("parameters"), dict):
            return data
        parameters = dict(data["parameters"])
        reference = parameters.pop("referenceImage", None)
        reference = parameters.pop("reference_image", None) or reference
        data = {**data, "parameters": parameters}
        if reference and not (data.get("referenceImage") or data.get("reference_image")):
            data["referenceImage"] = reference
        return data


class GenerationRequestHandler:
    def __init__(self, store: JobStore, registry: ModelRegistry, dispatcher: JobDispatcher):
        self._store = store
        self._registry = registry
        self._dispatcher = dispatcher

    async def create_and_dispatch(self, user_id: str, submission: GenerationSubmission) -> JobRecord:
        """Create a processing job and hand it off. Does not wait for generation.

        Raises ValidationError / UnknownModelError before any job exists, and
        DispatchError (after failing the job) if the hand-off itself fails.
        """
        self._validate(submission)

        job = JobRecord(
            user_id=user_id,
            session_id=submission.session_id,
            model_id=submission.model_id,
            prompt=submission.prompt.strip(),
            negative_prompt=submission.negative_prompt or None,
            reference_image=submission.reference_image or None,
            parameters=submission.parameters,
            diagnostics=DiagnosticLog.step("created"),
        )
        await run_blocking(self._store.create, job)
        logger.info(f"[{job.id}] Generation created, starting async processing")

        try:
            await self._dispatcher.submit(job.id)
        except Exception as exc:
            error = DispatchError(f"Failed to start background processing: {exc}", job_id=job.id)
            logger.error(f"[{job.id}] {error}")
            await run_blocking(self._store.fail, job.id, DiagnosticLog.failure(error.reason, str(error)))
            raise error from exc
        return job

    def _validate(self, submission: GenerationSubmission) -> None:
        missing = [
            name
            for name, value in (
                ("sessionId", submission.session_id),
                ("modelId", submission.model_id),
                ("prompt", submission.prompt),
            )
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        registered = self._registry.get(submission.model_id)
        if registered is None:
            raise UnknownModelError(submission.model_id)

        max_outputs = registered.spec.max_outputs
        if submission.parameters.num_outputs > max_outputs:
            raise ValidationError(
                f"{registered.spec.name} supports at most {max_outputs} output(s) per request"
            )
