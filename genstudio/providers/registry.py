"""Model registry mapping model ids to provider adapters."""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import httpx

from genstudio.config import Settings
from genstudio.jobs.models import ContentKind
from genstudio.providers.adapters import Adapter
from genstudio.providers.base import ModelSpec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredModel:
    spec: ModelSpec
    adapter: Adapter


class ModelRegistry:
    """Holds every generation model the service can run.

    Built once at startup and passed to the request handler and worker;
    the adapter variant is fixed per model when it is registered.
    """

    def __init__(self):
        self._models: Dict[str, RegisteredModel] = {}

    def register(self, spec: ModelSpec, adapter: Adapter) -> None:
        if spec.model_id in self._models:
            logger.warning(f"Replacing registered model: {spec.model_id}")
        self._models[spec.model_id] = RegisteredModel(spec=spec, adapter=adapter)
        logger.info(f"Registered model: {spec.model_id} ({spec.name}, {type(adapter).__name__})")

    def get(self, model_id: str) -> Optional[RegisteredModel]:
        return self._models.get(model_id)

    def list_models(self, kind: Optional[ContentKind] = None) -> List[ModelSpec]:
        """List registered models, optionally filtered by content kind."""
        specs = [m.spec for m in self._models.values()]
        if kind:
            specs = [s for s in specs if s.kind == kind]
        return specs


def build_default_registry(settings: Settings, http_client: httpx.AsyncClient) -> ModelRegistry:
    """Register the built-in provider models."""
    from genstudio.providers import gemini, replicate, vertex

    registry = ModelRegistry()

    if not settings.gemini_api_key:
        logger.warning("GEMINI_API_KEY is not set. Gemini models will fail at generation time.")
    registry.register(gemini.NANO_BANANA_SPEC, gemini.build_image_adapter(settings, http_client))
    registry.register(gemini.VEO_3_1_SPEC, gemini.build_video_adapter(settings, http_client))

    if not settings.google_vertex_access_token or not settings.google_project_id:
        logger.warning("Google Vertex AI credentials not configured")
    registry.register(vertex.IMAGEN_3_SPEC, vertex.build_image_adapter(settings, http_client))

    if not settings.replicate_api_key:
        logger.warning("REPLICATE_API_KEY is not set. Replicate models will not work.")
    registry.register(replicate.SEEDREAM_4_SPEC, replicate.build_image_adapter(settings, http_client))

    return registry
