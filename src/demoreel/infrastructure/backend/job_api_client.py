from __future__ import annotations

from typing import Optional, Type
from types import TracebackType
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ...application.dtos import (
    GenerateRequestDTO,
    GenerateResponseDTO,
    JobStatusResponseDTO,
)
from ...domain.entities import JobHandle, JobSnapshot
from ...domain.errors import (
    BackendUnreachableError,
    JobNotFoundError,
    SubmissionRejectedError,
)
from ..http.http_client import AsyncHttpClient
from ..timing import log_timing


def _error_reason(response: httpx.Response) -> str:
    """Pull a human-readable reason out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "detail", "reason"):
            value = body.get(key)
            if value:
                return str(value)
    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


class JobApiClient:
    """Asynchronous client for the video job HTTP API.

    Never retries: one call per invocation. HTTP and transport failures are
    translated into the job error taxonomy.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(base_url, timeout=timeout, transport=transport)

    @log_timing("api_submit_generation")
    async def submit_generation(self, dto: GenerateRequestDTO) -> JobHandle:
        """Submit one generation request.

        A 4xx answer means the backend refused the request (bad repository
        reference, invalid or consumed payment proof). Anything else that is
        not a usable 2xx answer means the backend could not be reached.
        """
        try:
            resp = await self._http.post("/generate", json=dto.to_payload())
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if 400 <= status_code < 500:
                raise SubmissionRejectedError(
                    _error_reason(e.response), status_code=status_code
                ) from e
            raise BackendUnreachableError(
                f"Job API answered HTTP {status_code}: {_error_reason(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendUnreachableError(f"Job API unreachable: {e}") from e

        try:
            return GenerateResponseDTO.model_validate(resp.json()).to_handle()
        except (ValueError, ValidationError) as e:
            raise BackendUnreachableError(
                "Job API accepted the request but returned no job id"
            ) from e

    @log_timing("api_get_job_status")
    async def get_job_status(self, job_id: str) -> JobSnapshot:
        path = f"/status/{quote(job_id, safe='')}"
        try:
            resp = await self._http.get(path)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise JobNotFoundError(job_id) from e
            raise BackendUnreachableError(
                f"Status query answered HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise BackendUnreachableError(f"Status query failed: {e}") from e

        try:
            return JobStatusResponseDTO.model_validate(resp.json()).to_snapshot()
        except (ValueError, ValidationError) as e:
            raise BackendUnreachableError(
                f"Status query for job {job_id} returned an unusable payload"
            ) from e

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "JobApiClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
