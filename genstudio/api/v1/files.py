"""Serves objects written by local object storage."""

import mimetypes

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from genstudio.api.deps import get_services
from genstudio.services import Services
from genstudio.storage.object_store import LocalObjectStorage

router = APIRouter()


@router.get("/files/{bucket}/{path:path}")
def get_stored_file(bucket: str, path: str, services: Services = Depends(get_services)):
    """Download a generated output (or reference image) from local storage."""
    storage = services.storage
    if not isinstance(storage, LocalObjectStorage) or not storage.file_exists(bucket, path):
        raise HTTPException(status_code=404, detail="File not found")

    full_path = storage.get_object_path(bucket, path)
    media_type = mimetypes.guess_type(full_path)[0] or "application/octet-stream"
    return FileResponse(full_path, media_type=media_type)
