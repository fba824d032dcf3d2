"""Job and output record data models for generation processing."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class ContentKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class RequestParameters(BaseModel):
    """User-supplied generation parameters. Never modified after creation.

    Accepts both snake_case and the camelCase keys sent by the web client;
    unknown keys are kept and stored with the job.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    aspect_ratio: Optional[str] = None
    resolution: Optional[int] = None
    num_outputs: int = Field(default=1, ge=1, le=8)
    duration: Optional[float] = None
    seed: Optional[int] = None


class DiagnosticEntry(BaseModel):
    at: datetime = Field(default_factory=utcnow)
    step: str
    data: Dict[str, Any] = Field(default_factory=dict)


class DiagnosticLog(BaseModel):
    """Append-only diagnostic side-channel for a job.

    Writers never replace a log; they build a patch and merge it. Scalar
    fields take the newest non-empty value, ``debug_logs`` is concatenated
    and ``details`` is merged key by key.
    """

    last_step: Optional[str] = None
    last_heartbeat_at: Optional[datetime] = None
    error: Optional[str] = None
    reason: Optional[str] = None
    debug_logs: List[DiagnosticEntry] = Field(default_factory=list)
    details: Dict[str, Any] = Field(default_factory=dict)

    def merge(self, patch: "DiagnosticLog") -> "DiagnosticLog":
        return DiagnosticLog(
            last_step=patch.last_step or self.last_step,
            last_heartbeat_at=patch.last_heartbeat_at or self.last_heartbeat_at,
            error=patch.error or self.error,
            reason=patch.reason or self.reason,
            debug_logs=[*self.debug_logs, *patch.debug_logs],
            details={**self.details, **patch.details},
        )

    @classmethod
    def step(cls, step: str, **data: Any) -> "DiagnosticLog":
        """Patch recording a processing step and a heartbeat."""
        now = utcnow()
        return cls(
            last_step=step,
            last_heartbeat_at=now,
            debug_logs=[DiagnosticEntry(at=now, step=step, data=data)],
        )

    @classmethod
    def failure(cls, reason: str, error: str, **details: Any) -> "DiagnosticLog":
        now = utcnow()
        return cls(
            last_step="failed",
            last_heartbeat_at=now,
            error=error,
            reason=reason,
            debug_logs=[
                DiagnosticEntry(at=now, step="failed", data={"reason": reason, "error": error})
            ],
            details=details,
        )


class JobRecord(BaseModel):
    """Tracks the lifecycle of one generation request."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    session_id: str
    model_id: str
    prompt: str
    negative_prompt: Optional[str] = None
    reference_image: Optional[str] = None
    reference_image_url: Optional[str] = None
    parameters: RequestParameters = Field(default_factory=RequestParameters)
    status: JobStatus = JobStatus.PROCESSING
    diagnostics: DiagnosticLog = Field(default_factory=DiagnosticLog)
    created_at: datetime = Field(default_factory=utcnow)
    claimed_by: Optional[str] = None
    claimed_at: Optional[datetime] = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def age(self, now: Optional[datetime] = None) -> timedelta:
        return (now or utcnow()) - self.created_at


class OutputRecord(BaseModel):
    """One materialized artifact of a completed job."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_id: str
    url: str
    kind: ContentKind
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    durable: bool = True
    is_starred: bool = False
    is_approved: bool = False
    is_bookmarked: bool = False
    created_at: datetime = Field(default_factory=utcnow)
