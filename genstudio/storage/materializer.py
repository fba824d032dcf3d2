"""Copies provider outputs into durable object storage.

Three kinds of content reference are accepted: inline ``data:`` URLs,
external http(s) URLs and ``gs://`` cloud-object URIs. All of them end up
at ``{user_id}/{job_id}/{index}.{ext}`` in the bucket for the content kind.

An inline payload that cannot be stored is fatal for that output. A remote
source that cannot be copied is not: the output keeps pointing at the
remote URL and is flagged as non-durable.
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from genstudio.concurrency import run_blocking
from genstudio.errors import StorageError
from genstudio.jobs.models import ContentKind, OutputRecord
from genstudio.providers.base import OutputDescriptor
from genstudio.storage.data_urls import parse_data_url
from genstudio.storage.object_store import ObjectStorage, guess_content_type

logger = logging.getLogger(__name__)

GCS_PUBLIC_BASE = "https://storage.googleapis.com"


class SourceKind(str, Enum):
    INLINE = "inline"
    EXTERNAL = "external"
    CLOUD_OBJECT = "cloud_object"


def classify_source(content_ref: str) -> SourceKind:
    if content_ref.startswith("data:"):
        return SourceKind.INLINE
    if content_ref.startswith(("http://", "https://")):
        return SourceKind.EXTERNAL
    if content_ref.startswith("gs://"):
        return SourceKind.CLOUD_OBJECT
    raise StorageError(f"Unsupported content reference: {content_ref[:40]}")


def cloud_object_to_https(uri: str) -> str:
    """gs://bucket/path/to/file -> https://storage.googleapis.com/bucket/path/to/file"""
    return f"{GCS_PUBLIC_BASE}/{uri[len('gs://'):]}"


def output_extension(kind: ContentKind, hint: str) -> str:
    """File extension from the content kind and a mime type or URL hint."""
    if kind == ContentKind.VIDEO:
        # Veo download URIs carry no extension
        return "mp4"
    hint = hint.lower().split("?", 1)[0]
    if "png" in hint:
        return "png"
    if "webp" in hint:
        return "webp"
    return "jpg"


@dataclass
class MaterializedOutput:
    url: str
    kind: ContentKind
    source: SourceKind
    durable: bool = True
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    fallback_reason: Optional[str] = None

    def to_record(self, job_id: str) -> OutputRecord:
        return OutputRecord(
            job_id=job_id,
            url=self.url,
            kind=self.kind,
            width=self.width,
            height=self.height,
            duration=self.duration,
            durable=self.durable,
        )


@dataclass
class PersistedReference:
    url: str
    path: str
    mime_type: str
    checksum: str


class OutputMaterializer:
    def __init__(
        self,
        storage: ObjectStorage,
        http_client: httpx.AsyncClient,
        image_bucket: str = "generated-images",
        video_bucket: str = "generated-videos",
        download_timeout: float = 120.0,
    ):
        self._storage = storage
        self._http = http_client
        self._image_bucket = image_bucket
        self._video_bucket = video_bucket
        self._download_timeout = download_timeout

    def bucket_for(self, kind: ContentKind) -> str:
        return self._video_bucket if kind == ContentKind.VIDEO else self._image_bucket

    @staticmethod
    def storage_path(user_id: str, job_id: str, index: int, extension: str) -> str:
        return f"{user_id}/{job_id}/{index}.{extension}"

    async def materialize(
        self,
        descriptor: OutputDescriptor,
        kind: ContentKind,
        user_id: str,
        job_id: str,
        index: int,
    ) -> MaterializedOutput:
        source = classify_source(descriptor.content_ref)
        bucket = self.bucket_for(kind)
        result = MaterializedOutput(
            url=descriptor.content_ref,
            kind=kind,
            source=source,
            width=descriptor.width,
            height=descriptor.height,
            duration=descriptor.duration,
        )

        if source == SourceKind.INLINE:
            result.url = await self._store_inline(descriptor.content_ref, kind, bucket, user_id, job_id, index)
            logger.info(f"[{job_id}] Stored inline {kind.value} {index} at {result.url}")
            return result

        fetch_url = descriptor.content_ref
        if source == SourceKind.CLOUD_OBJECT:
            fetch_url = cloud_object_to_https(fetch_url)
        path = self.storage_path(user_id, job_id, index, output_extension(kind, fetch_url))

        try:
            result.url = await self._copy_remote(fetch_url, bucket, path, descriptor.fetch_headers)
        except Exception as exc:
            logger.warning(
                f"[{job_id}] Failed to copy {kind.value} {index} into storage, "
                f"using original URL {fetch_url}: {exc}"
            )
            result.url = fetch_url
            result.durable = False
            result.fallback_reason = str(exc) or type(exc).__name__
            return result

        logger.info(f"[{job_id}] Copied {source.value} {kind.value} {index} to {result.url}")
        return result

    async def persist_reference(
        self, data_url: str, user_id: str, job_id: str
    ) -> PersistedReference:
        """Store an inline reference image next to the job's outputs."""
        parsed = parse_data_url(data_url)
        if parsed is None:
            raise StorageError("Invalid reference image format. Expected data URL.")
        extension = "png" if "png" in parsed.mime_type else "jpg"
        path = f"{user_id}/{job_id}/reference.{extension}"
        try:
            payload = parsed.decode()
        except ValueError as exc:
            raise StorageError(str(exc)) from exc
        url = await run_blocking(self._storage.upload, self._image_bucket, path, payload, parsed.mime_type)
        return PersistedReference(
            url=url,
            path=path,
            mime_type=parsed.mime_type,
            checksum=hashlib.sha256(parsed.data.encode()).hexdigest(),
        )

    async def _store_inline(
        self,
        data_url: str,
        kind: ContentKind,
        bucket: str,
        user_id: str,
        job_id: str,
        index: int,
    ) -> str:
        parsed = parse_data_url(data_url)
        if parsed is None:
            raise StorageError("Invalid base64 data URL format")
        try:
            payload = parsed.decode()
        except ValueError as exc:
            raise StorageError(str(exc)) from exc
        path = self.storage_path(user_id, job_id, index, output_extension(kind, parsed.mime_type))
        return await run_blocking(self._storage.upload, bucket, path, payload, parsed.mime_type)

    async def _copy_remote(self, url: str, bucket: str, path: str, headers: dict) -> str:
        response = await self._http.get(
            url, headers=headers or None, timeout=self._download_timeout, follow_redirects=True
        )
        if response.is_error:
            raise StorageError(f"Failed to fetch {url}: HTTP {response.status_code}")

        extension = path.rsplit(".", 1)[-1]
        content_type = response.headers.get("content-type") or guess_content_type(extension)
        return await run_blocking(self._storage.upload, bucket, path, response.content, content_type)
