"""Domain entities: wallet session, payment, generation requests and jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union
from urllib.parse import urlparse
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class WalletSession(BaseModel):
    """The connected wallet for one user session.

    ``address`` is absent until a connect succeeds.
    """

    model_config = ConfigDict(frozen=True)

    address: Optional[str] = None

    @property
    def is_connected(self) -> bool:
        return self.address is not None

    @property
    def short_address(self) -> str:
        if self.address is None:
            return ""
        if len(self.address) <= 8:
            return self.address
        return f"{self.address[:4]}...{self.address[-4:]}"


class PaymentRequest(BaseModel):
    """An unsigned fixed-price transfer bound to one block reference.

    ``fetched_at`` is a monotonic clock reading taken right after the block
    reference arrived. A request is single-use: build a new one per attempt.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    payer_address: str
    recipient_address: str
    amount_lamports: int = Field(..., gt=0)
    blockhash: str
    last_valid_block_height: int
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at

    def is_expired(self, max_age_seconds: float, now: float) -> bool:
        return self.age(now) > max_age_seconds


class PaymentResult(BaseModel):
    """Evidence of a confirmed payment, passed on to job submission."""

    model_config = ConfigDict(frozen=True)

    signature: str
    payer_address: str
    amount_lamports: int
    confirmed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("confirmed_at")
    def serialize_confirmed_at(self, value: datetime) -> str:
        return value.isoformat()


def validate_repository_url(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("Repository URL cannot be empty")
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("Repository URL must start with http:// or https://")
    if not parsed.netloc:
        raise ValueError("Repository URL must include a host")
    return value


class FreeSample(BaseModel):
    """Free-tier generation request; carries no payment proof."""

    model_config = ConfigDict(frozen=True)

    github_url: str

    @field_validator("github_url")
    @classmethod
    def validate_github_url(cls, v: str) -> str:
        return validate_repository_url(v)


class PaidGeneration(BaseModel):
    """Generation request backed by a confirmed payment."""

    model_config = ConfigDict(frozen=True)

    github_url: str
    payment_signature: str = Field(..., min_length=1)
    payer_address: str = Field(..., min_length=1)

    @field_validator("github_url")
    @classmethod
    def validate_github_url(cls, v: str) -> str:
        return validate_repository_url(v)


GenerationRequest = Union[FreeSample, PaidGeneration]


class JobState(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


class JobHandle(BaseModel):
    """Opaque backend job identifier plus whatever the submit call returned."""

    job_id: str = Field(..., min_length=1)
    status: Optional[str] = None
    estimated_time: Optional[Union[int, float, str]] = None
    status_url: Optional[str] = None


class JobResult(BaseModel):
    """The finished artifact of a completed job."""

    download_url: str
    duration: Optional[float] = None
    size: Optional[int] = None


class JobSnapshot(BaseModel):
    """Last observed state of a job. The backend holds the authoritative copy.

    ``progress`` is kept as reported, even outside 0-100.
    """

    job_id: str
    state: JobState
    progress: float = 0
    result: Optional[JobResult] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal


class BlockReference(BaseModel):
    """A recent blockhash and the last block height at which it is accepted."""

    blockhash: str
    last_valid_block_height: int


class SignatureStatus(BaseModel):
    """Network view of a broadcast transaction."""

    slot: Optional[int] = None
    confirmation_status: Optional[str] = None
    err: Optional[object] = None

    @property
    def failed(self) -> bool:
        return self.err is not None
