"""One user action end to end: pay (or not), submit the job, track it."""

from __future__ import annotations

import logging
from typing import Optional

from ...domain.entities import (
    FreeSample,
    JobHandle,
    JobSnapshot,
    PaidGeneration,
    PaymentResult,
    WalletSession,
    validate_repository_url,
)
from ...domain.errors import (
    ConfirmationTimeoutError,
    DemoReelError,
    WalletNotConnectedError,
)
from ...domain.shared import WalletProtocol
from ..status_projector import StatusProjector
from .job_status_poller import JobStatusPoller
from .job_submission import JobSubmissionClient
from .payment_constructor import PaymentConstructor
from .payment_submitter import PaymentSubmitter

logger = logging.getLogger(__name__)


class GenerationPipeline:
    """Sequential connect -> pay -> submit pipeline plus job tracking.

    Submits are gated by the projector's busy flag: a call made while another
    submit is in flight returns ``None`` without doing anything. Tracking a
    job does not hold the flag.

    A paid attempt that ends with ``ConfirmationTimeoutError``, or is
    cancelled once its transaction may have been sent, is kept as an
    unresolved payment. The next paid submit checks it again before any new
    transfer is built, and refuses to charge while its outcome is unknown
    unless ``force_new_payment`` is given.
    """

    def __init__(
        self,
        *,
        wallet: WalletProtocol,
        constructor: PaymentConstructor,
        submitter: PaymentSubmitter,
        submission_client: JobSubmissionClient,
        poller: JobStatusPoller,
        projector: StatusProjector,
        recipient_address: str,
        price_lamports: int,
        poll_interval: float,
        poll_deadline: float,
        unresolved: Optional[ConfirmationTimeoutError] = None,
    ) -> None:
        self._wallet = wallet
        self._constructor = constructor
        self._submitter = submitter
        self._submission_client = submission_client
        self._poller = poller
        self._projector = projector
        self._recipient_address = recipient_address
        self._price_lamports = price_lamports
        self._poll_interval = poll_interval
        self._poll_deadline = poll_deadline
        self._unresolved = unresolved

    @property
    def unresolved_payment(self) -> Optional[ConfirmationTimeoutError]:
        return self._unresolved

    async def connect_wallet(self) -> WalletSession:
        try:
            address = await self._wallet.connect()
        except DemoReelError as e:
            logger.warning("Wallet connection failed: %s", e)
            self._projector.error(e)
            raise
        session = WalletSession(address=address)
        self._projector.wallet_connected(session)
        return session

    async def request_paid_video(
        self,
        session: WalletSession,
        github_url: str,
        *,
        force_new_payment: bool = False,
    ) -> Optional[JobHandle]:
        if not self._projector.try_acquire():
            logger.info("Submit ignored: another request is in progress")
            return None

        payment: Optional[PaymentResult] = None
        try:
            url = validate_repository_url(github_url)
            if session.address is None:
                raise WalletNotConnectedError("Please connect your wallet first")
            payment = await self._obtain_payment(session.address, force_new_payment)
            handle = await self._submission_client.submit(
                PaidGeneration(
                    github_url=url,
                    payment_signature=payment.signature,
                    payer_address=session.address,
                )
            )
        except (DemoReelError, ValueError) as e:
            logger.warning("Paid generation request for %s failed: %s", github_url, e)
            self._projector.error(e, payment)
            raise
        finally:
            self._projector.release()

        self._projector.job_submitted(handle)
        return handle

    async def request_free_sample(self, github_url: str) -> Optional[JobHandle]:
        if not self._projector.try_acquire():
            logger.info("Submit ignored: another request is in progress")
            return None

        try:
            request = FreeSample(github_url=validate_repository_url(github_url))
            self._projector.free_sample_started()
            handle = await self._submission_client.submit(request)
        except (DemoReelError, ValueError) as e:
            logger.warning("Free sample request for %s failed: %s", github_url, e)
            self._projector.error(e)
            raise
        finally:
            self._projector.release()

        self._projector.job_submitted(handle)
        return handle

    async def track(self, handle: JobHandle) -> JobSnapshot:
        """Poll the job until it completes or fails."""
        try:
            return await self._poller.wait_for_terminal(
                handle.job_id,
                self._poll_interval,
                self._poll_deadline,
                on_snapshot=self._projector.job_snapshot,
            )
        except DemoReelError as e:
            logger.warning("Tracking job %s stopped: %s", handle.job_id, e)
            self._projector.error(e)
            raise

    async def _obtain_payment(
        self, payer_address: str, force_new_payment: bool
    ) -> PaymentResult:
        if self._unresolved is not None:
            if force_new_payment:
                logger.warning(
                    "Building a new payment while %s is unresolved",
                    self._unresolved.signature,
                )
                self._unresolved = None
            else:
                recovered = await self._resolve_unknown_payment(payer_address)
                if recovered is not None:
                    self._projector.reusing_payment(recovered)
                    return recovered

        self._projector.payment_started(self._price_lamports)
        request = await self._constructor.build(
            payer_address, self._recipient_address, self._price_lamports
        )
        attempt = self._submitter.start(
            request, listener=self._projector.payment_state
        )
        try:
            return await self._submitter.run(attempt)
        except BaseException as e:
            if isinstance(attempt.error, ConfirmationTimeoutError):
                self._unresolved = attempt.error
                if not isinstance(e, DemoReelError):
                    # cancelled; domain errors are reported by the caller
                    self._projector.error(attempt.error)
            raise

    async def _resolve_unknown_payment(
        self, payer_address: str
    ) -> Optional[PaymentResult]:
        assert self._unresolved is not None
        try:
            recovered = await self._submitter.recheck(self._unresolved)
        except ConfirmationTimeoutError as e:
            self._unresolved = e
            raise
        self._unresolved = None
        if recovered is None:
            return None
        if recovered.payer_address != payer_address:
            # paid from another wallet; it cannot back this session's request
            logger.warning(
                "Confirmed payment %s belongs to %s, not %s",
                recovered.signature,
                recovered.payer_address,
                payer_address,
            )
            return None
        if self._submission_client.has_sent(recovered.signature):
            return None
        return recovered
