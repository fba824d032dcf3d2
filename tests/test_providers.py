import base64
import json

import httpx
import pytest

from genstudio.jobs.models import RequestParameters
from genstudio.providers import gemini, replicate
from genstudio.providers.base import GenerationRequest
from genstudio.providers.dimensions import image_dimensions, video_dimensions
from genstudio.providers.registry import build_default_registry

from conftest import PNG_DATA_URL

OPERATION = "models/veo-3.1-generate-preview/operations/op-123"
PREDICT_URL = f"{gemini.BASE_URL}/models/{gemini.VIDEO_MODEL}:predictLongRunning"
OPERATION_URL = f"{gemini.BASE_URL}/{OPERATION}"
VIDEO_URI = "https://generativelanguage.googleapis.com/v1beta/files/abc:download?alt=media"


@pytest.fixture
def provider_settings(settings):
    return settings.model_copy(
        update={
            "gemini_api_key": "test-key",
            "replicate_api_key": "r8-test",
            "veo_poll_interval_seconds": 0,
            "replicate_poll_interval_seconds": 0,
        }
    )


def operation_done(request):
    return httpx.Response(
        200,
        json={
            "name": OPERATION,
            "done": True,
            "response": {"generateVideoResponse": {"generatedSamples": [{"video": {"uri": VIDEO_URI}}]}},
        },
    )


def test_dimension_tables():
    assert image_dimensions("16:9") == (1344, 768)
    assert image_dimensions(None) == (1024, 1024)
    assert image_dimensions("7:3") == (1024, 1024)
    assert video_dimensions("9:16", 1080) == (1080, 1920)
    assert video_dimensions(None, None) == (1280, 720)


def test_default_registry_lists_builtin_models(provider_settings, http_client):
    registry = build_default_registry(provider_settings, http_client)

    assert {s.model_id for s in registry.list_models()} == {
        "gemini-nano-banana",
        "gemini-veo-3.1",
        "google-imagen-3",
        "replicate-seedream-4",
    }
    assert [s.model_id for s in registry.list_models(kind="video")] == ["gemini-veo-3.1"]


@pytest.mark.asyncio
async def test_nano_banana_returns_inline_image(provider_settings, http_client, routes, requests_seen):
    payload = base64.b64encode(b"img").decode()
    routes[f"{gemini.BASE_URL}/models/{gemini.IMAGE_MODEL}:generateContent"] = lambda request: httpx.Response(
        200,
        json={"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": payload}}]}}]},
    )
    adapter = gemini.build_image_adapter(provider_settings, http_client)

    result = await adapter.generate(
        GenerationRequest(prompt="a fox", parameters=RequestParameters(aspect_ratio="3:2"))
    )

    assert result.ok
    assert result.outputs[0].content_ref == f"data:image/png;base64,{payload}"
    assert (result.outputs[0].width, result.outputs[0].height) == (1248, 832)
    body = json.loads(requests_seen[0].content)
    assert body["generationConfig"]["imageConfig"] == {"aspectRatio": "3:2"}
    assert requests_seen[0].headers["x-goog-api-key"] == "test-key"


@pytest.mark.asyncio
async def test_nano_banana_surfaces_provider_error_message(provider_settings, http_client, routes):
    routes[f"{gemini.BASE_URL}/models/{gemini.IMAGE_MODEL}:generateContent"] = lambda request: httpx.Response(
        429, json={"error": {"message": "Resource exhausted"}}
    )
    adapter = gemini.build_image_adapter(provider_settings, http_client)

    result = await adapter.generate(GenerationRequest(prompt="a fox"))

    assert not result.ok
    assert "(429): Resource exhausted" in result.error


@pytest.mark.asyncio
async def test_veo_reference_upload_falls_back_to_multipart(provider_settings, http_client, routes, requests_seen):
    uploads = []

    def upload(request):
        uploads.append(request)
        if len(uploads) == 1:
            return httpx.Response(400, json={"error": {"message": "Unsupported body"}})
        return httpx.Response(200, json={"file": {"uri": "https://files/ref-1"}})

    routes[gemini.UPLOAD_URL] = upload
    routes[PREDICT_URL] = lambda request: httpx.Response(200, json={"name": OPERATION})
    routes[OPERATION_URL] = operation_done
    adapter = gemini.build_video_adapter(provider_settings, http_client)
    steps = []

    async def record(step, data):
        steps.append(step)

    result = await adapter.generate(
        GenerationRequest(prompt="a fox running", reference_image=PNG_DATA_URL),
        progress_cb=record,
    )

    assert result.ok
    assert uploads[1].headers["X-Goog-Upload-Protocol"] == "multipart"
    predict = next(r for r in requests_seen if str(r.url) == PREDICT_URL)
    instance = json.loads(predict.content)["instances"][0]
    assert instance["image"] == {"fileUri": "https://files/ref-1", "mimeType": "image/png"}
    assert "reference_uploaded" in steps


@pytest.mark.asyncio
async def test_veo_continues_without_reference_when_upload_fails(provider_settings, http_client, routes, requests_seen):
    routes[gemini.UPLOAD_URL] = lambda request: httpx.Response(403, json={"error": {"message": "denied"}})
    routes[PREDICT_URL] = lambda request: httpx.Response(200, json={"name": OPERATION})
    routes[OPERATION_URL] = operation_done
    adapter = gemini.build_video_adapter(provider_settings, http_client)
    steps = []

    async def record(step, data):
        steps.append(step)

    result = await adapter.generate(
        GenerationRequest(
            prompt="a fox running",
            negative_prompt="blurry",
            reference_image=PNG_DATA_URL,
            parameters=RequestParameters(aspect_ratio="9:16", duration=6),
        ),
        progress_cb=record,
    )

    assert result.ok
    output = result.outputs[0]
    assert output.content_ref == VIDEO_URI
    assert (output.width, output.height, output.duration) == (720, 1280, 6.0)
    assert output.fetch_headers == {"x-goog-api-key": "test-key"}
    predict = next(r for r in requests_seen if str(r.url) == PREDICT_URL)
    body = json.loads(predict.content)
    assert "image" not in body["instances"][0]
    assert body["parameters"] == {
        "aspectRatio": "9:16",
        "durationSeconds": 6,
        "resolution": "720p",
        "negativePrompt": "blurry",
    }
    assert "reference_upload_failed" in steps


@pytest.mark.asyncio
async def test_veo_operation_error_fails_generation(provider_settings, http_client, routes):
    routes[PREDICT_URL] = lambda request: httpx.Response(200, json={"name": OPERATION})
    routes[OPERATION_URL] = lambda request: httpx.Response(
        200, json={"name": OPERATION, "done": True, "error": {"message": "safety filter"}}
    )
    adapter = gemini.build_video_adapter(provider_settings, http_client)

    result = await adapter.generate(GenerationRequest(prompt="a fox running"))

    assert result.reason == "ProviderError"
    assert result.error == "Video generation failed: safety filter"


@pytest.mark.asyncio
async def test_missing_api_key_fails_generation(settings, http_client):
    adapter = gemini.build_image_adapter(settings, http_client)

    result = await adapter.generate(GenerationRequest(prompt="a fox"))

    assert "GEMINI_API_KEY is not configured" in result.error


@pytest.mark.asyncio
async def test_seedream_prediction_lifecycle(provider_settings, http_client, routes, requests_seen):
    routes[f"{replicate.BASE_URL}/models/{replicate.MODEL_PATH}/versions"] = lambda request: httpx.Response(
        200, json={"results": [{"id": "v42"}]}
    )
    routes[f"{replicate.BASE_URL}/predictions"] = lambda request: httpx.Response(201, json={"id": "pred-1"})
    polls = iter(
        [
            {"status": "processing"},
            {"status": "succeeded", "output": ["https://replicate.delivery/a.jpg", "https://replicate.delivery/b.jpg"]},
        ]
    )
    routes[f"{replicate.BASE_URL}/predictions/pred-1"] = lambda request: httpx.Response(200, json=next(polls))
    adapter = replicate.build_image_adapter(provider_settings, http_client)

    result = await adapter.generate(
        GenerationRequest(prompt="a fox", parameters=RequestParameters(num_outputs=2))
    )

    assert [o.content_ref for o in result.outputs] == [
        "https://replicate.delivery/a.jpg",
        "https://replicate.delivery/b.jpg",
    ]
    create = next(r for r in requests_seen if str(r.url).endswith("/predictions"))
    body = json.loads(create.content)
    assert body["version"] == "v42"
    assert body["input"]["max_images"] == 2
    assert body["input"]["sequential_image_generation"] == "auto"


@pytest.mark.asyncio
async def test_seedream_failed_prediction(provider_settings, http_client, routes):
    routes[f"{replicate.BASE_URL}/models/{replicate.MODEL_PATH}/versions"] = lambda request: httpx.Response(
        200, json={"results": [{"id": "v42"}]}
    )
    routes[f"{replicate.BASE_URL}/predictions"] = lambda request: httpx.Response(201, json={"id": "pred-2"})
    routes[f"{replicate.BASE_URL}/predictions/pred-2"] = lambda request: httpx.Response(
        200, json={"status": "failed", "error": "NSFW content detected"}
    )
    adapter = replicate.build_image_adapter(provider_settings, http_client)

    result = await adapter.generate(GenerationRequest(prompt="a fox"))

    assert result.error == "Generation failed: NSFW content detected"
