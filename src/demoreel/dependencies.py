"""Composition root: wires settings, adapters and use cases together."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from .application.status_projector import StatusProjector
from .application.use_cases.generation_pipeline import GenerationPipeline
from .application.use_cases.job_status_poller import JobStatusPoller
from .application.use_cases.job_submission import JobSubmissionClient
from .application.use_cases.payment_constructor import PaymentConstructor
from .application.use_cases.payment_submitter import PaymentSubmitter
from .domain.errors import ConfirmationTimeoutError
from .domain.shared import WalletProtocol
from .envs.client_env import Settings
from .infrastructure.backend.job_api_client import JobApiClient
from .infrastructure.solana.rpc_client import SolanaRpcClient


@asynccontextmanager
async def open_pipeline(
    settings: Settings,
    wallet: WalletProtocol,
    projector: StatusProjector,
    *,
    unresolved: Optional[ConfirmationTimeoutError] = None,
    network_transport: Optional[httpx.AsyncBaseTransport] = None,
    backend_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[GenerationPipeline]:
    """Yield a pipeline whose HTTP clients are closed on exit."""
    async with SolanaRpcClient(
        settings.network_endpoint,
        commitment=settings.commitment,
        timeout=settings.http_timeout_seconds,
        transport=network_transport,
    ) as network, JobApiClient(
        settings.backend_url,
        timeout=settings.http_timeout_seconds,
        transport=backend_transport,
    ) as job_api:
        yield GenerationPipeline(
            wallet=wallet,
            constructor=PaymentConstructor(network),
            submitter=PaymentSubmitter(
                wallet,
                network,
                confirmation_timeout=settings.confirmation_timeout_seconds,
                poll_interval=settings.confirmation_poll_interval_seconds,
                max_request_age=settings.blockhash_max_age_seconds,
                commitment=settings.commitment,
            ),
            submission_client=JobSubmissionClient(job_api),
            poller=JobStatusPoller(job_api),
            projector=projector,
            recipient_address=settings.recipient_address,
            price_lamports=settings.price_lamports,
            poll_interval=settings.poll_interval_seconds,
            poll_deadline=settings.poll_deadline_seconds,
            unresolved=unresolved,
        )


@asynccontextmanager
async def open_job_api(settings: Settings) -> AsyncIterator[JobApiClient]:
    async with JobApiClient(
        settings.backend_url, timeout=settings.http_timeout_seconds
    ) as job_api:
        yield job_api
