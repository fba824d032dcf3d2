"""Google Gemini API models: Nano Banana images and Veo 3.1 video.

Nano Banana is synchronous and returns inline base64 images. Veo runs as a
long-running operation: submit with ``predictLongRunning``, poll the
operation, then download the resulting file URI with the API key.
"""

import hashlib
import json
import logging
from typing import Dict, List

import httpx

from genstudio.config import Settings
from genstudio.errors import ProviderError
from genstudio.jobs.models import ContentKind
from genstudio.providers.adapters import LongRunningAdapter, SyncAdapter
from genstudio.providers.base import (
    GenerationRequest,
    ModelSpec,
    OperationStatus,
    OutputDescriptor,
    ProgressCallback,
)
from genstudio.providers.dimensions import IMAGE_DIMENSIONS, image_dimensions, video_dimensions
from genstudio.storage.data_urls import DataUrl, parse_data_url, to_data_url

logger = logging.getLogger(__name__)

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
UPLOAD_URL = "https://generativelanguage.googleapis.com/upload/v1beta/files"
IMAGE_MODEL = "gemini-2.5-flash-image"
VIDEO_MODEL = "veo-3.1-generate-preview"

DEFAULT_VIDEO_DURATION = 8
DEFAULT_VIDEO_RESOLUTION = 720

NANO_BANANA_SPEC = ModelSpec(
    model_id="gemini-nano-banana",
    name="Nano Banana",
    provider="Google",
    kind=ContentKind.IMAGE,
    description="Gemini 2.5 Flash Image - Highly effective and precise image generation",
    supported_aspect_ratios=list(IMAGE_DIMENSIONS),
    default_aspect_ratio="1:1",
    max_outputs=4,
    extra={"editing": True},
)

VEO_3_1_SPEC = ModelSpec(
    model_id="gemini-veo-3.1",
    name="Veo 3.1",
    provider="Google",
    kind=ContentKind.VIDEO,
    description="State-of-the-art video generation with native audio support",
    supported_aspect_ratios=["16:9", "9:16"],
    default_aspect_ratio="16:9",
    max_outputs=1,
    extra={"resolutions": [720, 1080], "durations": [4, 6, 8]},
)


def raise_for_provider_error(response: httpx.Response, message: str) -> None:
    """Raise ProviderError with the provider's own error message, if any."""
    if not response.is_error:
        return
    try:
        detail = response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        detail = response.text or response.reason_phrase
    raise ProviderError(f"{message} ({response.status_code}): {detail}")


def _api_headers(settings: Settings) -> Dict[str, str]:
    if not settings.gemini_api_key:
        raise ProviderError("GEMINI_API_KEY is not configured")
    return {"x-goog-api-key": settings.gemini_api_key}


# ---------------------------------------------------------------------------
# Nano Banana (synchronous)
# ---------------------------------------------------------------------------

def build_image_adapter(settings: Settings, client: httpx.AsyncClient) -> SyncAdapter:
    endpoint = f"{BASE_URL}/models/{IMAGE_MODEL}:generateContent"

    async def generate_single_image(request: GenerationRequest) -> OutputDescriptor:
        headers = _api_headers(settings)

        parts: List[dict] = [{"text": request.prompt}]
        if request.reference_image:
            reference = parse_data_url(request.reference_image)
            if reference is None:
                raise ProviderError("Invalid reference image format. Please upload the image again.")
            parts.append({"inlineData": {"mimeType": reference.mime_type, "data": reference.data}})

        payload: dict = {
            "contents": [{"parts": parts}],
            "generationConfig": {"responseModalities": ["image"], "temperature": 1.0},
        }
        if request.aspect_ratio:
            payload["generationConfig"]["imageConfig"] = {"aspectRatio": request.aspect_ratio}

        response = await client.post(
            endpoint, headers=headers, json=payload, timeout=settings.provider_timeout_seconds
        )
        raise_for_provider_error(response, "Image generation failed")

        data = response.json()
        candidates = data.get("candidates") or [{}]
        response_parts = (candidates[0].get("content") or {}).get("parts") or []
        inline = next(
            (
                p["inlineData"]
                for p in response_parts
                if (p.get("inlineData") or {}).get("mimeType", "").startswith("image/")
            ),
            None,
        )
        if not inline or not inline.get("data"):
            raise ProviderError("No image data in response")

        width, height = image_dimensions(request.aspect_ratio)
        return OutputDescriptor(
            content_ref=to_data_url(inline["mimeType"], inline["data"]),
            width=width,
            height=height,
        )

    return SyncAdapter(call=generate_single_image)


# ---------------------------------------------------------------------------
# Veo 3.1 (long-running)
# ---------------------------------------------------------------------------

async def upload_reference_file(
    settings: Settings, client: httpx.AsyncClient, reference: DataUrl
) -> str:
    """Upload a reference image to the Files API and return its file URI.

    Tries a JSON body first; if the endpoint rejects that form, retries as
    a multipart upload.
    """
    headers = _api_headers(settings)
    display_name = f"reference-{hashlib.sha256(reference.data.encode()).hexdigest()[:12]}"

    response = await client.post(
        UPLOAD_URL,
        headers=headers,
        json={
            "file": {"displayName": display_name, "mimeType": reference.mime_type},
            "data": reference.data,
        },
        timeout=settings.provider_timeout_seconds,
    )
    if response.is_client_error:
        logger.info(
            f"JSON reference upload rejected ({response.status_code}), retrying as multipart"
        )
        response = await client.post(
            UPLOAD_URL,
            headers={**headers, "X-Goog-Upload-Protocol": "multipart"},
            files={
                "metadata": (
                    None,
                    json.dumps({"file": {"displayName": display_name}}),
                    "application/json",
                ),
                "file": (display_name, reference.decode(), reference.mime_type),
            },
            timeout=settings.provider_timeout_seconds,
        )
    raise_for_provider_error(response, "Reference image upload failed")

    file_uri = (response.json().get("file") or {}).get("uri")
    if not file_uri:
        raise ProviderError("Reference image upload returned no file URI")
    return file_uri


def build_video_adapter(settings: Settings, client: httpx.AsyncClient) -> LongRunningAdapter:
    endpoint = f"{BASE_URL}/models/{VIDEO_MODEL}:predictLongRunning"

    async def submit(request: GenerationRequest, progress_cb: ProgressCallback) -> str:
        headers = _api_headers(settings)
        instance: dict = {"prompt": request.prompt}

        if request.reference_image:
            reference = parse_data_url(request.reference_image)
            try:
                if reference is None:
                    raise ProviderError("Reference image is not a base64 data URL")
                file_uri = await upload_reference_file(settings, client, reference)
            except Exception as exc:
                # Run as text-to-video rather than failing the whole job
                logger.warning(f"Veo reference upload failed, continuing without it: {exc}")
                await progress_cb("reference_upload_failed", {"error": str(exc)})
            else:
                instance["image"] = {"fileUri": file_uri, "mimeType": reference.mime_type}
                await progress_cb("reference_uploaded", {"file_uri": file_uri})

        params = request.parameters
        parameters: dict = {
            "aspectRatio": params.aspect_ratio or VEO_3_1_SPEC.default_aspect_ratio,
            "durationSeconds": int(params.duration or DEFAULT_VIDEO_DURATION),
            "resolution": f"{params.resolution or DEFAULT_VIDEO_RESOLUTION}p",
        }
        if request.negative_prompt:
            parameters["negativePrompt"] = request.negative_prompt

        response = await client.post(
            endpoint,
            headers=headers,
            json={"instances": [instance], "parameters": parameters},
            timeout=settings.provider_timeout_seconds,
        )
        raise_for_provider_error(response, "Video generation failed")

        operation_name = response.json().get("name")
        if not operation_name:
            raise ProviderError("Video generation returned no operation name")
        return operation_name

    async def poll(operation_name: str) -> OperationStatus:
        response = await client.get(
            f"{BASE_URL}/{operation_name}",
            headers=_api_headers(settings),
            timeout=settings.provider_timeout_seconds,
        )
        raise_for_provider_error(response, "Failed to check operation status")
        data = response.json()
        if data.get("error"):
            raise ProviderError(
                f"Video generation failed: {data['error'].get('message', 'unknown error')}"
            )
        return OperationStatus(done=bool(data.get("done")), response=data.get("response") or {})

    def extract(status: OperationStatus, request: GenerationRequest) -> List[OutputDescriptor]:
        payload = status.response
        video_response = payload.get("generateVideoResponse") or {}
        samples = video_response.get("generatedSamples") or payload.get("generatedVideos") or []
        params = request.parameters
        width, height = video_dimensions(params.aspect_ratio, params.resolution)
        duration = float(params.duration or DEFAULT_VIDEO_DURATION)

        outputs = []
        for sample in samples:
            uri = (sample.get("video") or {}).get("uri")
            if uri:
                outputs.append(
                    OutputDescriptor(
                        content_ref=uri,
                        width=width,
                        height=height,
                        duration=duration,
                        # File downloads from the Gemini API need the key
                        fetch_headers={"x-goog-api-key": settings.gemini_api_key},
                    )
                )
        return outputs

    return LongRunningAdapter(
        submit=submit,
        poll=poll,
        extract=extract,
        poll_interval=settings.veo_poll_interval_seconds,
        max_attempts=settings.veo_max_poll_attempts,
    )
