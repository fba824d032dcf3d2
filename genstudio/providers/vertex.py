"""Google Vertex AI Imagen 3 model."""

import httpx

from genstudio.config import Settings
from genstudio.errors import ProviderError
from genstudio.jobs.models import ContentKind
from genstudio.providers.adapters import SyncAdapter
from genstudio.providers.base import GenerationRequest, ModelSpec, OutputDescriptor
from genstudio.providers.gemini import raise_for_provider_error
from genstudio.storage.data_urls import to_data_url

IMAGE_MODEL = "imagen-3.0-generate-001"

# Imagen 3 output sizes per supported aspect ratio
IMAGEN_DIMENSIONS = {
    "1:1": (1024, 1024),
    "16:9": (1408, 768),
    "9:16": (768, 1408),
    "4:3": (1280, 896),
    "3:4": (896, 1280),
}

IMAGEN_3_SPEC = ModelSpec(
    model_id="google-imagen-3",
    name="Imagen 3",
    provider="Google",
    kind=ContentKind.IMAGE,
    description="Google's most advanced image generation model with photorealistic quality",
    supported_aspect_ratios=list(IMAGEN_DIMENSIONS),
    default_aspect_ratio="1:1",
    max_outputs=4,
)


def build_image_adapter(settings: Settings, client: httpx.AsyncClient) -> SyncAdapter:
    async def predict_single_image(request: GenerationRequest) -> OutputDescriptor:
        if not settings.google_vertex_access_token or not settings.google_project_id:
            raise ProviderError("Google Vertex AI credentials not configured")

        location = settings.google_location
        endpoint = (
            f"https://{location}-aiplatform.googleapis.com/v1/projects/{settings.google_project_id}"
            f"/locations/{location}/publishers/google/models/{IMAGE_MODEL}:predict"
        )
        aspect_ratio = request.aspect_ratio if request.aspect_ratio in IMAGEN_DIMENSIONS else "1:1"
        parameters: dict = {"sampleCount": 1, "aspectRatio": aspect_ratio}
        if request.negative_prompt:
            parameters["negativePrompt"] = request.negative_prompt
        if request.parameters.seed is not None:
            parameters["seed"] = request.parameters.seed

        response = await client.post(
            endpoint,
            headers={"Authorization": f"Bearer {settings.google_vertex_access_token}"},
            json={"instances": [{"prompt": request.prompt}], "parameters": parameters},
            timeout=settings.provider_timeout_seconds,
        )
        raise_for_provider_error(response, "Image generation failed")

        predictions = response.json().get("predictions") or []
        if not predictions or not predictions[0].get("bytesBase64Encoded"):
            # Imagen drops predictions blocked by its safety filter
            raise ProviderError("No image returned (prompt may have been filtered)")

        prediction = predictions[0]
        width, height = IMAGEN_DIMENSIONS[aspect_ratio]
        return OutputDescriptor(
            content_ref=to_data_url(
                prediction.get("mimeType", "image/png"), prediction["bytesBase64Encoded"]
            ),
            width=width,
            height=height,
        )

    return SyncAdapter(call=predict_single_image)
