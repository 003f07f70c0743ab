"""Protocol interface for the video job API."""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ...application.dtos import GenerateRequestDTO
    from ..entities import JobHandle, JobSnapshot


class JobApiProtocol(Protocol):
    """Submit generation requests and read job state.

    Implementations translate transport and HTTP failures into
    ``SubmissionRejectedError``, ``BackendUnreachableError`` and
    ``JobNotFoundError``. They never retry.
    """

    async def submit_generation(self, dto: "GenerateRequestDTO") -> "JobHandle":
        """POST one generation request and return the job handle."""
        ...

    async def get_job_status(self, job_id: str) -> "JobSnapshot":
        """GET the current state of a job."""
        ...
