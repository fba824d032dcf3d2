import httpx
import pytest

from genstudio.errors import StorageError
from genstudio.jobs.models import ContentKind
from genstudio.providers.base import OutputDescriptor
from genstudio.storage.materializer import (
    SourceKind,
    classify_source,
    cloud_object_to_https,
    output_extension,
)

from conftest import PNG_BYTES, PNG_DATA_URL


@pytest.mark.parametrize(
    "ref,kind",
    [
        (PNG_DATA_URL, SourceKind.INLINE),
        ("https://replicate.delivery/out.webp", SourceKind.EXTERNAL),
        ("http://example.com/a.jpg", SourceKind.EXTERNAL),
        ("gs://bucket/videos/sample.mp4", SourceKind.CLOUD_OBJECT),
    ],
)
def test_classify_source(ref, kind):
    assert classify_source(ref) == kind


def test_classify_source_rejects_unknown_scheme():
    with pytest.raises(StorageError):
        classify_source("ftp://example.com/a.png")


def test_cloud_object_to_https():
    assert cloud_object_to_https("gs://bucket/a/b.mp4") == "https://storage.googleapis.com/bucket/a/b.mp4"


def test_output_extension():
    assert output_extension(ContentKind.VIDEO, "https://x/files/abc:download") == "mp4"
    assert output_extension(ContentKind.IMAGE, "image/png") == "png"
    assert output_extension(ContentKind.IMAGE, "https://x/out.webp?sig=1") == "webp"
    assert output_extension(ContentKind.IMAGE, "image/jpeg") == "jpg"


@pytest.mark.asyncio
async def test_inline_payload_is_stored_under_user_and_job(materializer, storage):
    result = await materializer.materialize(
        OutputDescriptor(content_ref=PNG_DATA_URL, width=1024, height=1024),
        ContentKind.IMAGE,
        "user-1",
        "job-1",
        0,
    )

    assert result.durable
    assert result.url == "http://testserver/files/generated-images/user-1/job-1/0.png"
    with open(storage.get_object_path("generated-images", "user-1/job-1/0.png"), "rb") as f:
        assert f.read() == PNG_BYTES


@pytest.mark.asyncio
async def test_invalid_inline_payload_raises(materializer):
    with pytest.raises(StorageError):
        await materializer.materialize(
            OutputDescriptor(content_ref="data:image/png,no-base64-marker"),
            ContentKind.IMAGE,
            "user-1",
            "job-1",
            0,
        )


@pytest.mark.asyncio
async def test_external_url_is_copied(materializer, routes, storage):
    routes["https://replicate.delivery/out.webp"] = lambda request: httpx.Response(
        200, content=b"webp-bytes", headers={"content-type": "image/webp"}
    )

    result = await materializer.materialize(
        OutputDescriptor(content_ref="https://replicate.delivery/out.webp"),
        ContentKind.IMAGE,
        "user-1",
        "job-1",
        2,
    )

    assert result.durable
    assert result.url.endswith("/generated-images/user-1/job-1/2.webp")
    assert storage.file_exists("generated-images", "user-1/job-1/2.webp")


@pytest.mark.asyncio
async def test_external_url_404_falls_back_to_original(materializer, caplog):
    result = await materializer.materialize(
        OutputDescriptor(content_ref="https://replicate.delivery/missing.png"),
        ContentKind.IMAGE,
        "user-1",
        "job-1",
        0,
    )

    assert not result.durable
    assert result.url == "https://replicate.delivery/missing.png"
    assert "HTTP 404" in result.fallback_reason
    assert "using original URL" in caplog.text


@pytest.mark.asyncio
async def test_cloud_object_is_fetched_over_https_with_headers(materializer, routes, requests_seen):
    routes["https://storage.googleapis.com/veo-out/sample.mp4"] = lambda request: httpx.Response(
        200, content=b"mp4-bytes"
    )

    result = await materializer.materialize(
        OutputDescriptor(content_ref="gs://veo-out/sample.mp4", fetch_headers={"x-goog-api-key": "k"}),
        ContentKind.VIDEO,
        "user-1",
        "job-9",
        0,
    )

    assert result.durable
    assert result.url == "http://testserver/files/generated-videos/user-1/job-9/0.mp4"
    assert requests_seen[0].headers["x-goog-api-key"] == "k"


@pytest.mark.asyncio
async def test_persist_reference_stores_next_to_outputs(materializer, storage):
    reference = await materializer.persist_reference(PNG_DATA_URL, "user-1", "job-1")

    assert reference.path == "user-1/job-1/reference.png"
    assert reference.mime_type == "image/png"
    assert len(reference.checksum) == 64
    assert storage.file_exists("generated-images", "user-1/job-1/reference.png")
