"""Job dispatcher interface (in-process queue or out-of-band HTTP trigger)."""

from abc import ABC, abstractmethod


class JobDispatcher(ABC):
    """Hands a created job to its processing worker without waiting for it."""

    @abstractmethod
    async def submit(self, job_id: str) -> None:
        """Schedule processing for a job. Returns as soon as it is scheduled."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Start the dispatcher (e.g., start worker loop)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the dispatcher gracefully."""
        ...
