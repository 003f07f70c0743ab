from __future__ import annotations

import os
from typing import Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator

from ..crypto.transfer import validate_address

DEFAULT_BACKEND_URL = "http://localhost:3004"
DEFAULT_NETWORK_ENDPOINT = "https://api.mainnet-beta.solana.com"
DEFAULT_RECIPIENT_ADDRESS = "3q1MWFNmKp6i8hnnXEKAR21BELTk5PVxweT2Jxs98gWC"
DEFAULT_PRICE_LAMPORTS = 10_000_000  # 0.01 SOL
DEFAULT_STATE_DIR = "~/.demoreel"


def _validate_http_url(name: str, v: str) -> str:
    if not v:
        raise ValueError(f"{name} cannot be empty")
    parsed = urlparse(v)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"{name} must start with http:// or https://")
    if not parsed.netloc:
        raise ValueError(f"{name} must include a host")
    return v.rstrip("/")


class Settings(BaseModel):
    """Deployment-time configuration for the payment and job pipeline.

    Price and recipient are fixed here and never taken from user input.
    """

    backend_url: str = DEFAULT_BACKEND_URL
    network_endpoint: str = DEFAULT_NETWORK_ENDPOINT
    recipient_address: str = DEFAULT_RECIPIENT_ADDRESS
    price_lamports: int = Field(default=DEFAULT_PRICE_LAMPORTS, gt=0)
    commitment: Literal["confirmed", "finalized"] = "confirmed"

    poll_interval_seconds: float = Field(default=5.0, gt=0)
    poll_deadline_seconds: float = Field(default=900.0, gt=0)
    confirmation_timeout_seconds: float = Field(default=60.0, gt=0)
    confirmation_poll_interval_seconds: float = Field(default=1.0, gt=0)
    blockhash_max_age_seconds: float = Field(default=60.0, gt=0)
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    wallet_keypair_path: Optional[str] = None
    state_dir: str = DEFAULT_STATE_DIR

    @field_validator("backend_url")
    @classmethod
    def validate_backend_url(cls, v: str) -> str:
        return _validate_http_url("Backend URL", v)

    @field_validator("network_endpoint")
    @classmethod
    def validate_network_endpoint(cls, v: str) -> str:
        return _validate_http_url("Network endpoint", v)

    @field_validator("recipient_address")
    @classmethod
    def validate_recipient_address(cls, v: str) -> str:
        return validate_address(v)


def get_settings() -> Settings:
    """Return typed settings instance sourced from env vars."""
    return Settings(
        backend_url=os.environ.get("BACKEND_URL", DEFAULT_BACKEND_URL),
        network_endpoint=os.environ.get("NETWORK_ENDPOINT", DEFAULT_NETWORK_ENDPOINT),
        recipient_address=os.environ.get(
            "PAYMENT_RECIPIENT", DEFAULT_RECIPIENT_ADDRESS
        ),
        price_lamports=int(
            os.environ.get("PRICE_LAMPORTS", str(DEFAULT_PRICE_LAMPORTS))
        ),
        commitment=os.environ.get("NETWORK_COMMITMENT", "confirmed"),  # type: ignore[arg-type]
        poll_interval_seconds=float(os.environ.get("POLL_INTERVAL_SECONDS", "5.0")),
        poll_deadline_seconds=float(os.environ.get("POLL_DEADLINE_SECONDS", "900.0")),
        confirmation_timeout_seconds=float(
            os.environ.get("CONFIRMATION_TIMEOUT_SECONDS", "60.0")
        ),
        confirmation_poll_interval_seconds=float(
            os.environ.get("CONFIRMATION_POLL_INTERVAL_SECONDS", "1.0")
        ),
        blockhash_max_age_seconds=float(
            os.environ.get("BLOCKHASH_MAX_AGE_SECONDS", "60.0")
        ),
        http_timeout_seconds=float(os.environ.get("HTTP_TIMEOUT_SECONDS", "10.0")),
        wallet_keypair_path=os.environ.get("WALLET_KEYPAIR_PATH") or None,
        state_dir=os.environ.get("DEMOREEL_STATE_DIR", DEFAULT_STATE_DIR),
    )
