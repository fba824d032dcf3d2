"""Application configuration via environment variables."""

import os
import tempfile
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_service_role_key: str = ""
    supabase_anon_key: str = ""

    # Persistence
    job_store_backend: str = "memory"  # "memory" or "supabase"
    storage_backend: str = "local"  # "local" or "supabase"
    local_storage_dir: str = os.path.join(tempfile.gettempdir(), "genstudio_objects")
    public_base_url: str = "http://localhost:8001"
    image_bucket: str = "generated-images"
    video_bucket: str = "generated-videos"

    # Dispatch
    dispatch_mode: str = "local"  # "local" or "http"
    dispatch_max_attempts: int = 3
    dispatch_backoff_seconds: float = 2.0
    dispatch_timeout_seconds: float = 600.0
    dispatch_secret: Optional[str] = None
    worker_concurrency: int = 2

    # Reconciliation
    stale_after_seconds: int = 300
    reconcile_interval_seconds: int = 60

    # Providers
    gemini_api_key: str = ""
    replicate_api_key: str = ""
    google_vertex_access_token: str = ""
    google_project_id: str = ""
    google_location: str = "us-central1"
    veo_poll_interval_seconds: float = 10.0
    veo_max_poll_attempts: int = 30
    replicate_poll_interval_seconds: float = 5.0
    replicate_max_poll_attempts: int = 120
    provider_timeout_seconds: float = 120.0

    # Service
    port: int = 8001
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
