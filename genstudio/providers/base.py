"""Provider adapter interface and data types for the model registry."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from genstudio.errors import GenerationPipelineError
from genstudio.jobs.models import ContentKind, RequestParameters


@dataclass
class ModelSpec:
    """Metadata describing a registered generation model."""
    model_id: str
    name: str
    provider: str
    kind: ContentKind
    description: str = ""
    supported_aspect_ratios: List[str] = field(default_factory=lambda: ["1:1"])
    default_aspect_ratio: str = "1:1"
    max_outputs: int = 4
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationRequest:
    prompt: str
    negative_prompt: Optional[str] = None
    # Inline data URL as submitted by the client
    reference_image: Optional[str] = None
    # Durable copy of the reference image, when one was persisted
    reference_image_url: Optional[str] = None
    parameters: RequestParameters = field(default_factory=RequestParameters)

    @property
    def num_outputs(self) -> int:
        return self.parameters.num_outputs

    @property
    def aspect_ratio(self) -> Optional[str]:
        return self.parameters.aspect_ratio


@dataclass
class OutputDescriptor:
    """One provider output before materialization.

    ``content_ref`` is a ``data:`` URL, an http(s) URL or a ``gs://`` URI.
    ``fetch_headers`` are sent when the materializer downloads it.
    """
    content_ref: str
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    fetch_headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class OperationStatus:
    """Status of a provider long-running operation."""
    done: bool
    response: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Outcome of ``Adapter.generate``: outputs, or a typed failure."""
    outputs: List[OutputDescriptor] = field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[str] = None
    # Per-output failures that did not sink a best-effort batch
    partial_errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls, outputs: List[OutputDescriptor], partial_errors: Optional[List[str]] = None
    ) -> "GenerationResult":
        return cls(outputs=list(outputs), partial_errors=list(partial_errors or []))

    @classmethod
    def failure(cls, exc: Exception) -> "GenerationResult":
        if isinstance(exc, GenerationPipelineError):
            reason = exc.reason
        else:
            reason = "ProviderError"
        return cls(error=str(exc) or type(exc).__name__, reason=reason)


# Type alias for progress callbacks: async fn(step, data)
ProgressCallback = Callable[[str, Dict[str, Any]], Awaitable[None]]
