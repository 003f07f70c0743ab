"""Projects pipeline progress into one status line and a busy flag."""

from __future__ import annotations

from typing import Callable, List, Optional

from ..crypto.transfer import format_sol
from ..domain.entities import (
    JobHandle,
    JobSnapshot,
    JobState,
    PaymentResult,
    WalletSession,
)
from ..domain.errors import (
    ConfirmationTimeoutError,
    JobError,
    PaymentError,
    SubmissionRejectedError,
    WalletUnavailableError,
)
from .use_cases.payment_submitter import PaymentState

StatusListener = Callable[[str], None]

_PAYMENT_STATE_TEXT = {
    PaymentState.AWAITING_SIGNATURE: "Please approve transaction in your wallet...",
    PaymentState.AWAITING_BROADCAST_ACK: "Sending payment...",
    PaymentState.AWAITING_CONFIRMATION: "Confirming payment...",
    PaymentState.CONFIRMED: "Payment confirmed! Generating video...",
}


class StatusProjector:
    """Owns the user-visible status text and the busy flag.

    The busy flag is the only shared mutable state of the pipeline: while it
    is set, a second submit is refused.
    """

    def __init__(self, listener: Optional[StatusListener] = None) -> None:
        self.status = ""
        self.busy = False
        self.history: List[str] = []
        self._listener = listener

    def try_acquire(self) -> bool:
        if self.busy:
            return False
        self.busy = True
        return True

    def release(self) -> None:
        self.busy = False

    def show(self, text: str) -> None:
        self.status = text
        self.history.append(text)
        if self._listener is not None:
            self._listener(text)

    def wallet_connected(self, session: WalletSession) -> None:
        self.show(f"Wallet connected: {session.short_address}")

    def payment_started(self, amount_lamports: int) -> None:
        self.show(f"Processing payment of {format_sol(amount_lamports)}...")

    def payment_state(self, state: PaymentState) -> None:
        text = _PAYMENT_STATE_TEXT.get(state)
        if text is not None:
            self.show(text)

    def reusing_payment(self, payment: PaymentResult) -> None:
        self.show(
            f"Earlier payment {payment.signature} has confirmed; using it for this video..."
        )

    def free_sample_started(self) -> None:
        self.show("Requesting free sample...")

    def job_submitted(self, handle: JobHandle) -> None:
        text = f"Video generation started! Job ID: {handle.job_id}"
        if handle.estimated_time is not None:
            text += f" (estimated time: {handle.estimated_time})"
        self.show(text)

    def job_snapshot(self, snapshot: JobSnapshot) -> None:
        if snapshot.state is JobState.COMPLETED:
            if snapshot.result is not None:
                self.show(f"Video ready: {snapshot.result.download_url}")
            else:
                self.show(f"Job {snapshot.job_id} completed")
        elif snapshot.state is JobState.FAILED:
            reason = f": {snapshot.error}" if snapshot.error else ""
            self.show(f"Video generation failed{reason}")
        elif snapshot.state is JobState.ACTIVE:
            self.show(f"Generating video... {snapshot.progress:.0f}%")
        else:
            self.show("Waiting in queue...")

    def error(
        self,
        error: Exception,
        payment: Optional[PaymentResult] = None,
    ) -> None:
        """Show an error, saying explicitly whether money may have moved."""
        self.show(describe_error(error, payment))


def describe_error(
    error: Exception,
    payment: Optional[PaymentResult] = None,
) -> str:
    if isinstance(error, WalletUnavailableError):
        return f"Error: {error} ({error.install_url})"
    if isinstance(error, ConfirmationTimeoutError):
        return (
            f"Payment outcome unknown: transaction {error.signature} was sent but "
            "not confirmed in time. Funds may have moved; do not pay again until "
            "it has been checked."
        )
    if isinstance(error, PaymentError):
        return f"Error: {error}. No payment was made."
    if isinstance(error, JobError) and payment is not None:
        detail = (
            f"rejected: {error.reason}"
            if isinstance(error, SubmissionRejectedError)
            else f"failed: {error}"
        )
        return (
            f"Error: payment {payment.signature} was confirmed but the video "
            f"request {detail}"
        )
    return f"Error: {error}"
