"""Sign, broadcast and confirm a payment request.

A payment attempt moves strictly forward through

    built -> awaiting_signature -> signed -> awaiting_broadcast_ack
          -> broadcast -> awaiting_confirmation -> confirmed

and may drop into ``failed`` from any non-terminal state. Once ``broadcast``
is reached funds may move, so every later failure is reported as
``ConfirmationTimeoutError`` carrying the signature.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Set
from uuid import UUID

from solders.transaction import Transaction

from ...crypto.transfer import (
    build_transfer_transaction,
    is_signed,
    transaction_signature,
)
from ...domain.entities import PaymentRequest, PaymentResult, SignatureStatus
from ...domain.errors import (
    BroadcastFailedError,
    ConfirmationTimeoutError,
    DemoReelError,
    PaymentError,
    PaymentInterruptedError,
    PaymentNetworkError,
    PaymentRequestExpiredError,
    PaymentRequestReusedError,
    SignatureRejectedError,
    TransactionRejectedError,
)
from ...domain.shared import PaymentNetworkProtocol, WalletProtocol

logger = logging.getLogger(__name__)


class PaymentState(str, Enum):
    BUILT = "built"
    AWAITING_SIGNATURE = "awaiting_signature"
    SIGNED = "signed"
    AWAITING_BROADCAST_ACK = "awaiting_broadcast_ack"
    BROADCAST = "broadcast"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_NEXT_STATE: Dict[PaymentState, PaymentState] = {
    PaymentState.BUILT: PaymentState.AWAITING_SIGNATURE,
    PaymentState.AWAITING_SIGNATURE: PaymentState.SIGNED,
    PaymentState.SIGNED: PaymentState.AWAITING_BROADCAST_ACK,
    PaymentState.AWAITING_BROADCAST_ACK: PaymentState.BROADCAST,
    PaymentState.BROADCAST: PaymentState.AWAITING_CONFIRMATION,
    PaymentState.AWAITING_CONFIRMATION: PaymentState.CONFIRMED,
}

_TERMINAL_STATES = {PaymentState.CONFIRMED, PaymentState.FAILED}

StateListener = Callable[[PaymentState], None]


class InvalidTransitionError(RuntimeError):
    """Raised when a payment attempt is moved anywhere but forward."""


class PaymentAttempt:
    """State of one submission of one payment request."""

    def __init__(
        self,
        request: PaymentRequest,
        listener: Optional[StateListener] = None,
    ) -> None:
        self.request = request
        self.state = PaymentState.BUILT
        self.history: List[PaymentState] = [PaymentState.BUILT]
        self.signature: Optional[str] = None
        self.error: Optional[DemoReelError] = None
        self._listener = listener

    @property
    def is_terminal(self) -> bool:
        return self.state in _TERMINAL_STATES

    @property
    def reached_broadcast(self) -> bool:
        return PaymentState.BROADCAST in self.history

    def advance(self, target: PaymentState) -> None:
        expected = _NEXT_STATE.get(self.state)
        if target is not expected:
            raise InvalidTransitionError(
                f"Cannot move payment attempt from {self.state.value} to {target.value}"
            )
        self._enter(target)

    def fail(self, error: DemoReelError) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(
                f"Payment attempt already ended in {self.state.value}"
            )
        self.error = error
        self._enter(PaymentState.FAILED)

    def _enter(self, state: PaymentState) -> None:
        self.state = state
        self.history.append(state)
        if self._listener is not None:
            self._listener(state)


class PaymentSubmitter:
    """Drives payment attempts through signing, broadcast and confirmation.

    Each ``PaymentRequest`` is accepted once. A failed attempt is never
    retried here; the caller builds a fresh request.
    """

    def __init__(
        self,
        wallet: WalletProtocol,
        network: PaymentNetworkProtocol,
        *,
        confirmation_timeout: float = 60.0,
        poll_interval: float = 1.0,
        max_request_age: float = 60.0,
        commitment: str = "confirmed",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._wallet = wallet
        self._network = network
        self._confirmation_timeout = confirmation_timeout
        self._poll_interval = poll_interval
        self._max_request_age = max_request_age
        self._commitment = commitment
        self._clock = clock
        self._sleep = sleep
        self._seen_requests: Set[UUID] = set()

    def start(
        self,
        request: PaymentRequest,
        listener: Optional[StateListener] = None,
    ) -> PaymentAttempt:
        """Register a request and return its attempt in the ``built`` state."""
        if request.id in self._seen_requests:
            raise PaymentRequestReusedError(
                f"Payment request {request.id} was already submitted; build a new one"
            )
        self._seen_requests.add(request.id)
        return PaymentAttempt(request, listener)

    async def submit(
        self,
        request: PaymentRequest,
        listener: Optional[StateListener] = None,
    ) -> PaymentResult:
        return await self.run(self.start(request, listener))

    async def run(self, attempt: PaymentAttempt) -> PaymentResult:
        """Sign, broadcast and confirm ``attempt``.

        Any failure leaves the attempt in ``failed`` with its error recorded.
        Unexpected exceptions are raised as the recorded ``PaymentError``;
        cancellation propagates unchanged.
        """
        if attempt.state is not PaymentState.BUILT:
            raise InvalidTransitionError("Only a freshly built attempt can be run")
        try:
            signed = await self._sign(attempt)
            signature = await self._broadcast(attempt, signed)
            await self._confirm(attempt, signature)
        except DemoReelError as e:
            attempt.fail(e)
            logger.warning(
                "Payment attempt for request %s failed in %s: %s",
                attempt.request.id,
                attempt.history[-2].value,
                e,
            )
            raise
        except Exception as e:
            error = self._interrupted(attempt, e)
            attempt.fail(error)
            logger.warning(
                "Payment attempt for request %s failed unexpectedly in %s: %r",
                attempt.request.id,
                attempt.history[-2].value,
                e,
            )
            raise error from e
        except BaseException as e:
            # cancelled; record the outcome and let the cancellation through
            attempt.fail(self._interrupted(attempt, e))
            logger.warning(
                "Payment attempt for request %s interrupted in %s: %r",
                attempt.request.id,
                attempt.history[-2].value,
                e,
            )
            raise

        attempt.advance(PaymentState.CONFIRMED)
        logger.info("Payment %s confirmed", signature)
        return PaymentResult(
            signature=signature,
            payer_address=attempt.request.payer_address,
            amount_lamports=attempt.request.amount_lamports,
        )

    async def recheck(
        self, unresolved: ConfirmationTimeoutError
    ) -> Optional[PaymentResult]:
        """Look again at a payment whose outcome was unknown.

        Returns:
            The payment result if it has since confirmed, or ``None`` if the
            transfer can no longer move funds (failed on-chain, or never seen
            and its blockhash has expired).

        Raises:
            ConfirmationTimeoutError: The outcome is still unknown.
        """
        signature = unresolved.signature
        request = unresolved.request
        try:
            status = await self._network.get_signature_status(
                signature, search_history=True
            )
            height = None
            if status is None:
                height = await self._network.get_block_height()
        except PaymentNetworkError as e:
            raise ConfirmationTimeoutError(
                f"Payment {signature} is still unresolved: {e}",
                signature=signature,
                request=request,
            ) from e

        if status is not None:
            if status.failed:
                logger.info("Unresolved payment %s failed on-chain", signature)
                return None
            if self._meets_commitment(status):
                logger.info("Unresolved payment %s has confirmed", signature)
                return PaymentResult(
                    signature=signature,
                    payer_address=request.payer_address,
                    amount_lamports=request.amount_lamports,
                )
        elif height is not None and height > request.last_valid_block_height:
            logger.info(
                "Unresolved payment %s expired at block height %d",
                signature,
                request.last_valid_block_height,
            )
            return None

        raise ConfirmationTimeoutError(
            f"Payment {signature} is still not confirmed",
            signature=signature,
            request=request,
        )

    async def _sign(self, attempt: PaymentAttempt) -> Transaction:
        self._ensure_fresh(attempt.request)
        attempt.advance(PaymentState.AWAITING_SIGNATURE)
        unsigned = build_transfer_transaction(attempt.request)
        signed = await self._wallet.sign_transaction(unsigned)
        if not is_signed(signed):
            raise SignatureRejectedError("Wallet returned an unsigned transaction")
        # the user may have left the signing prompt open past the blockhash lifetime
        self._ensure_fresh(attempt.request)
        attempt.advance(PaymentState.SIGNED)
        return signed

    async def _broadcast(self, attempt: PaymentAttempt, signed: Transaction) -> str:
        signature = transaction_signature(signed)
        attempt.signature = signature
        attempt.advance(PaymentState.AWAITING_BROADCAST_ACK)
        try:
            acknowledged = await self._network.send_raw_transaction(bytes(signed))
        except TransactionRejectedError as e:
            raise BroadcastFailedError(f"Network rejected the transaction: {e}") from e
        except PaymentNetworkError as e:
            # the transaction may have reached the network before the failure
            logger.warning(
                "No broadcast acknowledgement for %s (%s); treating it as sent",
                signature,
                e,
            )
            acknowledged = signature

        if acknowledged != signature:
            logger.warning(
                "Network acknowledged signature %s, expected %s", acknowledged, signature
            )
            attempt.signature = acknowledged
        attempt.advance(PaymentState.BROADCAST)
        logger.info("Payment %s broadcast", acknowledged)
        return acknowledged

    async def _confirm(self, attempt: PaymentAttempt, signature: str) -> None:
        attempt.advance(PaymentState.AWAITING_CONFIRMATION)
        deadline = self._clock() + self._confirmation_timeout
        last_problem = "not confirmed yet"
        while True:
            try:
                status = await self._network.get_signature_status(signature)
            except PaymentNetworkError as e:
                last_problem = str(e)
                logger.warning("Confirmation check for %s failed: %s", signature, e)
            else:
                if status is not None and status.failed:
                    raise ConfirmationTimeoutError(
                        f"Payment {signature} was processed with error {status.err}",
                        signature=signature,
                        request=attempt.request,
                    )
                if status is not None and self._meets_commitment(status):
                    return
                if status is not None:
                    last_problem = f"status {status.confirmation_status}"

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ConfirmationTimeoutError(
                    f"Payment {signature} was sent but not confirmed within "
                    f"{self._confirmation_timeout:g}s ({last_problem})",
                    signature=signature,
                    request=attempt.request,
                )
            await self._sleep(min(self._poll_interval, remaining))

    @staticmethod
    def _interrupted(attempt: PaymentAttempt, cause: BaseException) -> PaymentError:
        # the signature is set just before the send, so the transfer may be out
        if attempt.signature is not None:
            return ConfirmationTimeoutError(
                f"Payment {attempt.signature} was sent but confirmation was "
                f"interrupted ({cause!r})",
                signature=attempt.signature,
                request=attempt.request,
            )
        return PaymentInterruptedError(
            f"Payment attempt stopped before broadcast ({cause!r})"
        )

    def _ensure_fresh(self, request: PaymentRequest) -> None:
        if request.is_expired(self._max_request_age, self._clock()):
            raise PaymentRequestExpiredError(
                f"Payment request {request.id} is older than "
                f"{self._max_request_age:g}s; build a new one"
            )

    def _meets_commitment(self, status: SignatureStatus) -> bool:
        if self._commitment == "finalized":
            return status.confirmation_status == "finalized"
        return status.confirmation_status in {"confirmed", "finalized"}
