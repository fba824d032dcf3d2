"""Replicate-hosted Seedream 4 image model."""

import logging
from typing import Dict, List

import httpx

from genstudio.config import Settings
from genstudio.errors import ProviderError
from genstudio.jobs.models import ContentKind
from genstudio.providers.adapters import LongRunningAdapter
from genstudio.providers.base import (
    GenerationRequest,
    ModelSpec,
    OperationStatus,
    OutputDescriptor,
    ProgressCallback,
)

logger = logging.getLogger(__name__)

BASE_URL = "https://api.replicate.com/v1"
MODEL_PATH = "bytedance/seedream-4"
OUTPUT_SIZE = "2K"
OUTPUT_DIMENSION = 2048

SEEDREAM_4_SPEC = ModelSpec(
    model_id="replicate-seedream-4",
    name="Seedream 4",
    provider="ByteDance (Replicate)",
    kind=ContentKind.IMAGE,
    description="Unified text-to-image generation and precise single-sentence editing at up to 4K resolution",
    supported_aspect_ratios=["1:1", "16:9", "9:16", "4:3", "3:4"],
    default_aspect_ratio="1:1",
    max_outputs=4,
)


def _headers(settings: Settings) -> Dict[str, str]:
    if not settings.replicate_api_key:
        raise ProviderError("REPLICATE_API_KEY is not configured")
    return {"Authorization": f"Token {settings.replicate_api_key}"}


def build_image_adapter(settings: Settings, client: httpx.AsyncClient) -> LongRunningAdapter:
    async def submit(request: GenerationRequest, progress_cb: ProgressCallback) -> str:
        headers = _headers(settings)

        versions = await client.get(
            f"{BASE_URL}/models/{MODEL_PATH}/versions",
            headers=headers,
            timeout=settings.provider_timeout_seconds,
        )
        if versions.is_error:
            raise ProviderError(f"Failed to fetch model versions: {versions.status_code}")
        results = versions.json().get("results") or []
        if not results or not results[0].get("id"):
            raise ProviderError("Could not find latest version for Seedream 4")
        version = results[0]["id"]

        num_outputs = request.num_outputs
        model_input: dict = {
            "prompt": request.prompt,
            "aspect_ratio": request.aspect_ratio or SEEDREAM_4_SPEC.default_aspect_ratio,
            "size": OUTPUT_SIZE,
            "sequential_image_generation": "auto" if num_outputs > 1 else "disabled",
            "max_images": num_outputs,
        }
        # Replicate accepts both hosted URLs and data URLs here
        reference = request.reference_image_url or request.reference_image
        if reference:
            model_input["image_input"] = [reference]

        response = await client.post(
            f"{BASE_URL}/predictions",
            headers=headers,
            json={"version": version, "input": model_input},
            timeout=settings.provider_timeout_seconds,
        )
        if response.is_error:
            raise ProviderError(f"Replicate API error ({response.status_code}): {response.text}")

        prediction_id = response.json().get("id")
        if not prediction_id:
            raise ProviderError("Replicate returned no prediction id")
        logger.info(f"Replicate prediction started: {prediction_id} (version {version})")
        return prediction_id

    async def poll(prediction_id: str) -> OperationStatus:
        response = await client.get(
            f"{BASE_URL}/predictions/{prediction_id}",
            headers=_headers(settings),
            timeout=settings.provider_timeout_seconds,
        )
        if response.is_error:
            raise ProviderError(f"Failed to check prediction status: {response.status_code}")
        data = response.json()
        status = data.get("status")
        if status in ("failed", "canceled"):
            raise ProviderError(f"Generation failed: {data.get('error') or status}")
        return OperationStatus(done=status == "succeeded", response=data)

    def extract(status: OperationStatus, request: GenerationRequest) -> List[OutputDescriptor]:
        output = status.response.get("output") or []
        urls = [output] if isinstance(output, str) else list(output)
        return [
            OutputDescriptor(content_ref=url, width=OUTPUT_DIMENSION, height=OUTPUT_DIMENSION)
            for url in urls
            if url
        ]

    return LongRunningAdapter(
        submit=submit,
        poll=poll,
        extract=extract,
        poll_interval=settings.replicate_poll_interval_seconds,
        max_attempts=settings.replicate_max_poll_attempts,
    )
