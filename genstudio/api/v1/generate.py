"""Create-and-dispatch and processing-trigger endpoints."""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from genstudio.api.deps import get_services
from genstudio.auth.supabase_auth import get_current_user_id
from genstudio.concurrency import run_blocking
from genstudio.errors import DispatchError, JobNotFoundError, UnknownModelError, ValidationError
from genstudio.jobs.service import GenerationSubmission
from genstudio.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateResponse(BaseModel):
    id: str
    status: str
    message: str


class ProcessRequest(BaseModel):
    job_id: str = Field(validation_alias=AliasChoices("job_id", "jobId", "generationId"))


@router.post("/generate", response_model=GenerateResponse)
async def create_generation(
    submission: GenerationSubmission,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Create a generation job and start it in the background.

    Returns immediately with status ``processing``; poll
    GET /api/v1/generations/{id} for the outcome.
    """
    try:
        job = await services.handler.create_and_dispatch(user_id, submission)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except UnknownModelError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except DispatchError as exc:
        return JSONResponse(
            status_code=500,
            content={"id": exc.job_id, "status": "failed", "error": str(exc)},
        )

    return GenerateResponse(
        id=job.id,
        status=job.status.value,
        message="Generation started. Poll for updates.",
    )


@router.post("/generate/process")
async def process_generation(
    body: ProcessRequest,
    x_dispatch_token: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """Internal trigger target: run a job to completion and report its final status."""
    secret = services.settings.dispatch_secret
    if secret and not hmac.compare_digest(x_dispatch_token or "", secret):
        logger.warning(f"[{body.job_id}] Rejected processing trigger with invalid dispatch token")
        raise HTTPException(status_code=401, detail="Invalid dispatch token")

    try:
        job = await services.worker.process(body.job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    response = {
        "id": job.id,
        "status": job.status.value,
        "output_count": len(await run_blocking(services.store.list_outputs, job.id)),
    }
    if job.diagnostics.error and job.is_terminal():
        response["error"] = job.diagnostics.error
    return response
