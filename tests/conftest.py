"""Shared pytest fixtures for the payment and job pipeline tests."""

from __future__ import annotations

import pytest
from solders.keypair import Keypair

from demoreel.application.status_projector import StatusProjector
from demoreel.application.use_cases.generation_pipeline import GenerationPipeline
from tests.fixtures import (
    FakeClock,
    FakeJobApi,
    FakePaymentNetwork,
    FakeWallet,
    build_pipeline,
)


@pytest.fixture
def payer_keypair() -> Keypair:
    """Generate the payer's keypair."""
    return Keypair()


@pytest.fixture
def recipient_address() -> str:
    """A fresh recipient address for the fixed-price transfer."""
    return str(Keypair().pubkey())


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_wallet(payer_keypair: Keypair) -> FakeWallet:
    return FakeWallet(payer_keypair)


@pytest.fixture
def fake_network() -> FakePaymentNetwork:
    return FakePaymentNetwork()


@pytest.fixture
def fake_job_api() -> FakeJobApi:
    return FakeJobApi()


@pytest.fixture
def projector() -> StatusProjector:
    return StatusProjector()


@pytest.fixture
def pipeline(
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
    fake_job_api: FakeJobApi,
    fake_clock: FakeClock,
    projector: StatusProjector,
    recipient_address: str,
) -> GenerationPipeline:
    """Pipeline wired to the in-memory doubles."""
    return build_pipeline(
        fake_wallet,
        fake_network,
        fake_job_api,
        fake_clock,
        projector,
        recipient_address=recipient_address,
    )
