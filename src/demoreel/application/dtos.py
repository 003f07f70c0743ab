"""Data Transfer Objects for the job API wire format.

The backend speaks camelCase JSON; fields are declared snake_case with
aliases and dumped with ``by_alias=True``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..domain.entities import (
    FreeSample,
    GenerationRequest,
    JobHandle,
    JobResult,
    JobSnapshot,
    JobState,
    PaidGeneration,
)


class GenerateRequestDTO(BaseModel):
    """Body of ``POST /generate``.

    Free requests carry ``isFree``; paid requests carry ``paymentSignature``
    and ``walletAddress``. Unset fields are left out of the body entirely.
    """

    model_config = ConfigDict(populate_by_name=True)

    github_url: str = Field(..., alias="githubUrl")
    payment_signature: Optional[str] = Field(default=None, alias="paymentSignature")
    wallet_address: Optional[str] = Field(default=None, alias="walletAddress")
    is_free: Optional[bool] = Field(default=None, alias="isFree")

    @classmethod
    def from_request(cls, request: GenerationRequest) -> "GenerateRequestDTO":
        if isinstance(request, PaidGeneration):
            return cls(
                github_url=request.github_url,
                payment_signature=request.payment_signature,
                wallet_address=request.payer_address,
            )
        if isinstance(request, FreeSample):
            return cls(github_url=request.github_url, is_free=True)
        raise TypeError(f"Unsupported generation request: {type(request).__name__}")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class GenerateResponseDTO(BaseModel):
    """Response of ``POST /generate``; only ``jobId`` is guaranteed."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId", min_length=1)
    success: Optional[bool] = None
    status: Optional[str] = None
    estimated_time: Optional[Union[int, float, str]] = Field(
        default=None, alias="estimatedTime"
    )
    status_url: Optional[str] = Field(default=None, alias="statusUrl")

    def to_handle(self) -> JobHandle:
        return JobHandle(
            job_id=self.job_id,
            status=self.status,
            estimated_time=self.estimated_time,
            status_url=self.status_url,
        )


class JobDataDTO(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    download_url: str = Field(..., alias="downloadUrl")
    duration: Optional[float] = None
    size: Optional[int] = None


class JobStatusResponseDTO(BaseModel):
    """Response of ``GET /status/{jobId}``."""

    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(..., alias="jobId")
    status: JobState
    progress: float = 0
    data: Optional[JobDataDTO] = None
    error: Optional[str] = None

    def to_snapshot(self) -> JobSnapshot:
        result = None
        # data is only meaningful once the job has completed
        if self.status is JobState.COMPLETED and self.data is not None:
            result = JobResult(
                download_url=self.data.download_url,
                duration=self.data.duration,
                size=self.data.size,
            )
        return JobSnapshot(
            job_id=self.job_id,
            state=self.status,
            progress=self.progress,
            result=result,
            error=self.error,
        )
