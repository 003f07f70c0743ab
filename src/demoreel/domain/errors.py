"""Domain-specific exceptions.

Every failure of a pipeline attempt is one of these. Payment errors state
whether money may have left the payer's wallet, so the user can be told
before they try again.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .entities import JobSnapshot, PaymentRequest


PHANTOM_INSTALL_URL = "https://phantom.app/"


class DemoReelError(Exception):
    """Base class for every error raised by the payment and job pipeline."""


# Wallet


class WalletError(DemoReelError):
    """Raised when the signer capability cannot be used."""


class WalletUnavailableError(WalletError):
    """Raised when no compatible signer is present in the environment."""

    def __init__(self, message: str, install_url: str = PHANTOM_INSTALL_URL) -> None:
        super().__init__(message)
        self.install_url = install_url


class WalletRejectedError(WalletError):
    """Raised when the user declines the connection request."""


class WalletNotConnectedError(WalletError):
    """Raised when a payment is requested before a wallet is connected."""


# Payment


class PaymentError(DemoReelError):
    """Base class for failures of a single payment attempt."""

    funds_may_have_moved: bool = False


class SignatureRejectedError(PaymentError):
    """Raised when the user declines to sign the transfer."""


class NetworkUnavailableError(PaymentError):
    """Raised when a fresh block reference cannot be fetched."""


class PaymentRequestExpiredError(PaymentError):
    """Raised when a payment request's block reference is too old to sign."""


class PaymentRequestReusedError(PaymentError):
    """Raised when the same payment request is submitted a second time."""


class BroadcastFailedError(PaymentError):
    """Raised when the network explicitly refuses the signed transaction."""


class PaymentInterruptedError(PaymentError):
    """Raised for an attempt stopped by cancellation or an unexpected error
    before its transaction was broadcast."""


class ConfirmationTimeoutError(PaymentError):
    """Raised when a broadcast transaction was not seen confirmed in time.

    The transfer may still land. Callers must not build a new payment
    without first checking ``signature`` again.
    """

    funds_may_have_moved = True

    def __init__(
        self,
        message: str,
        *,
        signature: str,
        request: "PaymentRequest",
    ) -> None:
        super().__init__(message)
        self.signature = signature
        self.request = request


class PaymentNetworkError(DemoReelError):
    """Raised by payment network adapters when a call cannot be completed."""


class TransactionRejectedError(PaymentNetworkError):
    """Raised when the payment network answers a call with an explicit error."""

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        self.code = code


# Jobs


class JobError(DemoReelError):
    """Base class for job API failures."""


class SubmissionRejectedError(JobError):
    """Raised when the backend refuses a generation request."""

    def __init__(self, reason: str, status_code: Optional[int] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code


class BackendUnreachableError(JobError):
    """Raised when the job API cannot be reached or answers unusably."""


class JobNotFoundError(JobError):
    """Raised when the backend does not recognize a job id."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} was not found")
        self.job_id = job_id


class PollDeadlineExceededError(JobError):
    """Raised when a job does not reach a terminal state before the deadline."""

    def __init__(self, job_id: str, last_snapshot: Optional["JobSnapshot"]) -> None:
        super().__init__(f"Job {job_id} did not finish before the polling deadline")
        self.job_id = job_id
        self.last_snapshot = last_snapshot


class PaymentSignatureReusedError(JobError):
    """Raised when a payment signature was already sent with another job request."""

    def __init__(self, signature: str) -> None:
        super().__init__(
            f"Payment {signature} was already used for a generation request"
        )
        self.signature = signature
