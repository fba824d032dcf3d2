"""Error taxonomy for the generation pipeline.

Adapter and materializer errors never reach API callers directly: the
processing worker records them on the job and transitions it to failed.
Only request validation and dispatch problems surface synchronously.
"""

from typing import Optional


class GenerationPipelineError(Exception):
    """base exception for generation pipeline errors"""

    reason = "GenerationError"


class ValidationError(GenerationPipelineError):
    """raised when a generation request is malformed or incomplete"""

    reason = "ValidationError"


class UnknownModelError(GenerationPipelineError):
    """raised when a model id has no registered adapter"""

    reason = "UnknownModelError"

    def __init__(self, model_id: str):
        super().__init__(f"Model not found: {model_id}")
        self.model_id = model_id


class ProviderError(GenerationPipelineError):
    """raised when a provider call fails"""

    reason = "ProviderError"


class TimedOut(ProviderError):
    """raised when a long-running operation exceeds its polling ceiling"""

    reason = "TimedOut"


class DispatchError(GenerationPipelineError):
    """raised when the out-of-band trigger cannot be delivered"""

    reason = "DispatchError"

    def __init__(self, message: str, job_id: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id


class StorageError(GenerationPipelineError):
    """raised when content cannot be materialized into object storage"""

    reason = "StorageError"


class JobNotFoundError(GenerationPipelineError):
    """raised when a job id does not exist in the store"""

    reason = "JobNotFound"

    def __init__(self, job_id: str):
        super().__init__(f"Generation not found: {job_id}")
        self.job_id = job_id
