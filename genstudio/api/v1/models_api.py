"""Models API: list registered generation models."""

from typing import Optional

from fastapi import APIRouter, Depends

from genstudio.api.deps import get_services
from genstudio.jobs.models import ContentKind
from genstudio.services import Services

router = APIRouter()


@router.get("/models")
async def list_models(
    kind: Optional[ContentKind] = None,
    services: Services = Depends(get_services),
):
    """List all registered models with optional filtering by content kind."""
    specs = services.registry.list_models(kind=kind)
    return {
        "models": [
            {
                "model_id": s.model_id,
                "name": s.name,
                "provider": s.provider,
                "kind": s.kind.value,
                "description": s.description,
                "supported_aspect_ratios": s.supported_aspect_ratios,
                "default_aspect_ratio": s.default_aspect_ratio,
                "max_outputs": s.max_outputs,
            }
            for s in specs
        ],
        "count": len(specs),
    }
