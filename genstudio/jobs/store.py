"""Job record persistence: abstract interface plus in-memory and Supabase stores."""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from genstudio.errors import JobNotFoundError
from genstudio.jobs.models import (
    DiagnosticLog,
    JobRecord,
    JobStatus,
    OutputRecord,
    utcnow,
)


class JobStore(ABC):
    """Create/read/update-by-id access to job and output records.

    Status transitions are conditional on the record still being
    ``processing``: ``complete`` and ``fail`` return False and change
    nothing when another writer already finalized the job.
    """

    @abstractmethod
    def create(self, job: JobRecord) -> JobRecord:
        ...

    @abstractmethod
    def get(self, job_id: str) -> Optional[JobRecord]:
        ...

    @abstractmethod
    def claim(self, job_id: str, worker_id: str) -> bool:
        """Atomically mark an unclaimed processing job as owned by worker_id."""
        ...

    @abstractmethod
    def merge_diagnostics(self, job_id: str, patch: DiagnosticLog) -> None:
        ...

    @abstractmethod
    def set_reference_image_url(self, job_id: str, url: str) -> None:
        ...

    @abstractmethod
    def complete(
        self, job_id: str, outputs: List[OutputRecord], patch: DiagnosticLog
    ) -> bool:
        """Persist outputs and transition to completed in one step."""
        ...

    @abstractmethod
    def fail(self, job_id: str, patch: DiagnosticLog) -> bool:
        ...

    @abstractmethod
    def list_processing_older_than(
        self, cutoff: datetime, user_id: Optional[str] = None
    ) -> List[JobRecord]:
        ...

    @abstractmethod
    def list_outputs(self, job_id: str) -> List[OutputRecord]:
        ...

    def require(self, job_id: str) -> JobRecord:
        job = self.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job


class InMemoryJobStore(JobStore):
    """Thread-safe store for local development and tests."""

    def __init__(self):
        self._lock = threading.RLock()
        self._jobs: Dict[str, JobRecord] = {}
        self._outputs: Dict[str, List[OutputRecord]] = {}

    def create(self, job: JobRecord) -> JobRecord:
        with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            return job

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    def claim(self, job_id: str, worker_id: str) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PROCESSING or job.claimed_by:
                return False
            job.claimed_by = worker_id
            job.claimed_at = utcnow()
            return True

    def merge_diagnostics(self, job_id: str, patch: DiagnosticLog) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            job.diagnostics = job.diagnostics.merge(patch)

    def set_reference_image_url(self, job_id: str, url: str) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            job.reference_image_url = url

    def complete(
        self, job_id: str, outputs: List[OutputRecord], patch: DiagnosticLog
    ) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.PROCESSING:
                return False
            self._outputs[job_id] = [o.model_copy() for o in outputs]
            job.status = JobStatus.COMPLETED
            job.diagnostics = job.diagnostics.merge(patch)
            return True

    def fail(self, job_id: str, patch: DiagnosticLog) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.PROCESSING:
                return False
            job.status = JobStatus.FAILED
            job.diagnostics = job.diagnostics.merge(patch)
            return True

    def list_processing_older_than(
        self, cutoff: datetime, user_id: Optional[str] = None
    ) -> List[JobRecord]:
        with self._lock:
            jobs = [
                j.model_copy(deep=True)
                for j in self._jobs.values()
                if j.status == JobStatus.PROCESSING
                and j.created_at < cutoff
                and (user_id is None or j.user_id == user_id)
            ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def list_outputs(self, job_id: str) -> List[OutputRecord]:
        with self._lock:
            return [o.model_copy() for o in self._outputs.get(job_id, [])]


class SupabaseJobStore(JobStore):
    """Store backed by the ``generations`` and ``outputs`` tables.

    Conditional updates filter on ``status = processing`` so Postgres
    decides the winner; an empty returned row set means the condition
    did not hold. Completion and diagnostic merges go through the
    ``complete_generation`` and ``merge_generation_diagnostics`` functions
    (see migrations/).
    """

    JOBS_TABLE = "generations"
    OUTPUTS_TABLE = "outputs"

    def __init__(self, client):
        self._client = client

    def create(self, job: JobRecord) -> JobRecord:
        self._client.table(self.JOBS_TABLE).insert(_job_to_row(job)).execute()
        return job

    def get(self, job_id: str) -> Optional[JobRecord]:
        response = (
            self._client.table(self.JOBS_TABLE)
            .select("*")
            .eq("id", job_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_job(response.data[0])

    def claim(self, job_id: str, worker_id: str) -> bool:
        response = (
            self._client.table(self.JOBS_TABLE)
            .update({"claimed_by": worker_id, "claimed_at": utcnow().isoformat()})
            .eq("id", job_id)
            .eq("status", JobStatus.PROCESSING.value)
            .is_("claimed_by", "null")
            .execute()
        )
        return bool(response.data)

    def merge_diagnostics(self, job_id: str, patch: DiagnosticLog) -> None:
        self._client.rpc(
            "merge_generation_diagnostics",
            {"generation_id": job_id, "patch": patch.model_dump(mode="json")},
        ).execute()

    def set_reference_image_url(self, job_id: str, url: str) -> None:
        (
            self._client.table(self.JOBS_TABLE)
            .update({"reference_image_url": url})
            .eq("id", job_id)
            .execute()
        )

    def complete(
        self, job_id: str, outputs: List[OutputRecord], patch: DiagnosticLog
    ) -> bool:
        # Single transaction in Postgres: outputs are only inserted when the
        # job moves to completed.
        response = self._client.rpc(
            "complete_generation",
            {
                "generation_id": job_id,
                "output_rows": [_output_to_row(o) for o in outputs],
                "patch": patch.model_dump(mode="json"),
            },
        ).execute()
        return bool(response.data)

    def fail(self, job_id: str, patch: DiagnosticLog) -> bool:
        if not self._transition(job_id, JobStatus.FAILED):
            return False
        self.merge_diagnostics(job_id, patch)
        return True

    def list_processing_older_than(
        self, cutoff: datetime, user_id: Optional[str] = None
    ) -> List[JobRecord]:
        query = (
            self._client.table(self.JOBS_TABLE)
            .select("*")
            .eq("status", JobStatus.PROCESSING.value)
            .lt("created_at", cutoff.isoformat())
        )
        if user_id is not None:
            query = query.eq("user_id", user_id)
        response = query.order("created_at", desc=True).execute()
        return [_row_to_job(row) for row in response.data or []]

    def list_outputs(self, job_id: str) -> List[OutputRecord]:
        response = (
            self._client.table(self.OUTPUTS_TABLE)
            .select("*")
            .eq("generation_id", job_id)
            .order("created_at")
            .execute()
        )
        return [_row_to_output(row) for row in response.data or []]

    def _transition(self, job_id: str, status: JobStatus) -> bool:
        response = (
            self._client.table(self.JOBS_TABLE)
            .update({"status": status.value})
            .eq("id", job_id)
            .eq("status", JobStatus.PROCESSING.value)
            .execute()
        )
        return bool(response.data)


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def _job_to_row(job: JobRecord) -> Dict[str, Any]:
    return {
        "id": job.id,
        "user_id": job.user_id,
        "session_id": job.session_id,
        "model_id": job.model_id,
        "prompt": job.prompt,
        "negative_prompt": job.negative_prompt,
        "reference_image": job.reference_image,
        "reference_image_url": job.reference_image_url,
        "parameters": job.parameters.model_dump(mode="json"),
        "status": job.status.value,
        "diagnostics": job.diagnostics.model_dump(mode="json"),
        "created_at": job.created_at.isoformat(),
        "claimed_by": job.claimed_by,
        "claimed_at": job.claimed_at.isoformat() if job.claimed_at else None,
    }


def _row_to_job(row: Dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        user_id=row["user_id"],
        session_id=row["session_id"],
        model_id=row["model_id"],
        prompt=row["prompt"],
        negative_prompt=row.get("negative_prompt"),
        reference_image=row.get("reference_image"),
        reference_image_url=row.get("reference_image_url"),
        parameters=row.get("parameters") or {},
        status=row["status"],
        diagnostics=row.get("diagnostics") or {},
        created_at=row["created_at"],
        claimed_by=row.get("claimed_by"),
        claimed_at=row.get("claimed_at"),
    )


def _output_to_row(output: OutputRecord) -> Dict[str, Any]:
    return {
        "id": output.id,
        "generation_id": output.job_id,
        "file_url": output.url,
        "file_type": output.kind.value,
        "width": output.width,
        "height": output.height,
        "duration": output.duration,
        "is_durable": output.durable,
        "created_at": output.created_at.isoformat(),
    }


def _row_to_output(row: Dict[str, Any]) -> OutputRecord:
    return OutputRecord(
        id=row["id"],
        job_id=row["generation_id"],
        url=row["file_url"],
        kind=row["file_type"],
        width=row.get("width"),
        height=row.get("height"),
        duration=row.get("duration"),
        durable=row.get("is_durable", True),
        is_starred=row.get("is_starred", False),
        is_approved=row.get("is_approved", False),
        is_bookmarked=row.get("is_bookmarked", False),
        created_at=row["created_at"],
    )
