"""Generation diagnostics and stale-job reconciliation endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import AliasChoices, BaseModel, Field

from genstudio.api.deps import get_services
from genstudio.auth.supabase_auth import get_current_user_id
from genstudio.errors import JobNotFoundError
from genstudio.jobs.models import JobRecord, OutputRecord, utcnow
from genstudio.services import Services

router = APIRouter()

PROMPT_PREVIEW_CHARS = 50


class FixStaleRequest(BaseModel):
    action: str
    job_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("job_id", "jobId", "generationId")
    )


@router.get("/generations/stale")
def list_stale_generations(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """List the caller's generations stuck in processing past the threshold."""
    now = utcnow()
    jobs = services.reconciler.list_stale(user_id)
    return {
        "total_stuck": len(jobs),
        "stale_after_seconds": int(services.reconciler.stale_after.total_seconds()),
        "generations": [
            {
                "id": job.id,
                "prompt": _preview(job.prompt),
                "model_id": job.model_id,
                "minutes_stuck": int(job.age(now).total_seconds() // 60),
                "last_step": job.diagnostics.last_step,
                "output_count": len(services.store.list_outputs(job.id)),
            }
            for job in jobs
        ],
    }


@router.post("/generations/stale")
def fix_stale_generations(
    body: FixStaleRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Mark stuck generations as failed: ``fix-all`` or ``fix-one`` with a job id."""
    if body.action == "fix-all":
        fixed = services.reconciler.fix_all(user_id)
        return {
            "message": f"Fixed {len(fixed)} stuck generation(s)",
            "count": len(fixed),
            "job_ids": fixed,
        }

    if body.action == "fix-one" and body.job_id:
        try:
            job = services.reconciler.fix_one(body.job_id, user_id)
        except JobNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc))
        return {
            "message": "Generation marked as failed",
            "id": job.id,
            "status": job.status.value,
            "reason": job.diagnostics.reason,
        }

    raise HTTPException(
        status_code=400,
        detail='Invalid action. Use "fix-all" or "fix-one" with job_id',
    )


@router.get("/generations/{job_id}")
def get_generation(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Status, outputs, age and the full diagnostic log of one generation."""
    job = services.store.get(job_id)
    if job is None or job.user_id != user_id:
        raise HTTPException(status_code=404, detail="Generation not found")
    return diagnostic_view(job, services.store.list_outputs(job_id))


def diagnostic_view(job: JobRecord, outputs: List[OutputRecord]) -> dict:
    """Request parameters and diagnostics merged into one read-only view."""
    diagnostics = job.diagnostics
    return {
        "id": job.id,
        "status": job.status.value,
        "model_id": job.model_id,
        "session_id": job.session_id,
        "prompt": job.prompt,
        "negative_prompt": job.negative_prompt,
        "parameters": job.parameters.model_dump(mode="json"),
        "reference_image_url": job.reference_image_url,
        "created_at": job.created_at.isoformat(),
        "age_ms": int(job.age().total_seconds() * 1000),
        "claimed_by": job.claimed_by,
        "output_count": len(outputs),
        "outputs": [
            {
                "id": o.id,
                "url": o.url,
                "kind": o.kind.value,
                "width": o.width,
                "height": o.height,
                "duration": o.duration,
                "durable": o.durable,
            }
            for o in outputs
        ],
        "last_step": diagnostics.last_step,
        "last_heartbeat_at": (
            diagnostics.last_heartbeat_at.isoformat() if diagnostics.last_heartbeat_at else None
        ),
        "error": diagnostics.error,
        "reason": diagnostics.reason,
        "details": diagnostics.details,
        "debug_logs": [entry.model_dump(mode="json") for entry in diagnostics.debug_logs],
    }


def _preview(prompt: str) -> str:
    if len(prompt) <= PROMPT_PREVIEW_CHARS:
        return prompt
    return prompt[:PROMPT_PREVIEW_CHARS] + "..."
