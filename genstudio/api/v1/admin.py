"""Administrative sweep of stuck generations across all users."""

from fastapi import APIRouter, Depends

from genstudio.api.deps import get_services
from genstudio.auth.supabase_auth import get_current_user_id
from genstudio.services import Services

router = APIRouter()


@router.post("/admin/reconcile")
def reconcile_stuck_generations(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Fail every generation stuck in processing past the threshold.

    Can be called manually or from a cron job.
    """
    cleaned = services.reconciler.fix_all()
    if not cleaned:
        return {"message": "No stuck generations found", "cleaned": 0, "job_ids": []}
    return {
        "message": f"Cleaned up {len(cleaned)} stuck generation(s)",
        "cleaned": len(cleaned),
        "job_ids": cleaned,
    }
