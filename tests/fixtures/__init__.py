"""Test doubles for the wallet, payment network and job API."""

from .fake_clock import FakeClock
from .fake_job_api import FakeJobApi, snapshot
from .fake_payment_network import (
    FakePaymentNetwork,
    confirmed_status,
    failed_status,
    processed_status,
)
from .fake_wallet import FakeWallet
from .pipeline import (
    PRICE_LAMPORTS,
    build_pipeline,
    make_payment_request,
    make_submitter,
)

__all__ = [
    "FakeClock",
    "FakeJobApi",
    "FakePaymentNetwork",
    "FakeWallet",
    "PRICE_LAMPORTS",
    "build_pipeline",
    "confirmed_status",
    "failed_status",
    "make_payment_request",
    "make_submitter",
    "processed_status",
    "snapshot",
]
