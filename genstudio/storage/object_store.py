"""Durable object storage for generated outputs.

``LocalObjectStorage`` keeps objects on disk and serves them through the
``/files`` route; ``SupabaseObjectStorage`` writes to Supabase Storage
buckets and returns their public URLs.
"""

import os
from abc import ABC, abstractmethod
from typing import Optional

from genstudio.errors import StorageError


class ObjectStorage(ABC):
    """Upload bytes to ``bucket/path`` and return a public URL."""

    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        ...


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage for local development."""

    def __init__(self, base_dir: str, public_base_url: str):
        self._base_dir = os.path.abspath(base_dir)
        os.makedirs(self._base_dir, exist_ok=True)
        self._public_base_url = public_base_url.rstrip("/")

    def get_object_path(self, bucket: str, path: str) -> str:
        """Full filesystem path for an object; rejects paths escaping the root."""
        full = os.path.abspath(os.path.join(self._base_dir, bucket, path))
        if not full.startswith(self._base_dir + os.sep):
            raise StorageError(f"Invalid object path: {bucket}/{path}")
        return full

    def file_exists(self, bucket: str, path: str) -> bool:
        try:
            return os.path.isfile(self.get_object_path(bucket, path))
        except StorageError:
            return False

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        full = self.get_object_path(bucket, path)
        try:
            os.makedirs(os.path.dirname(full), exist_ok=True)
            with open(full, "wb") as dst:
                dst.write(data)
        except OSError as exc:
            raise StorageError(f"Storage upload failed: {exc}") from exc
        return f"{self._public_base_url}/files/{bucket}/{path}"


class SupabaseObjectStorage(ObjectStorage):
    def __init__(self, client):
        self._client = client

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        try:
            storage = self._client.storage.from_(bucket)
            storage.upload(
                path,
                data,
                {"content-type": content_type, "upsert": "true"},
            )
            return storage.get_public_url(path)
        except Exception as exc:
            raise StorageError(f"Storage upload failed: {exc}") from exc


def guess_content_type(extension: str, fallback: Optional[str] = None) -> str:
    return {
        "png": "image/png",
        "jpg": "image/jpeg",
        "webp": "image/webp",
        "mp4": "video/mp4",
    }.get(extension, fallback or "application/octet-stream")
