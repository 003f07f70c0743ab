"""Tests for the sign -> broadcast -> confirm payment state machine."""

from __future__ import annotations

import asyncio

import pytest
from solders.transaction import Transaction

from demoreel.application.use_cases.payment_submitter import (
    InvalidTransitionError,
    PaymentAttempt,
    PaymentState,
    PaymentSubmitter,
)
from demoreel.domain.entities import PaymentRequest
from demoreel.domain.errors import (
    BroadcastFailedError,
    ConfirmationTimeoutError,
    PaymentInterruptedError,
    PaymentNetworkError,
    PaymentRequestExpiredError,
    PaymentRequestReusedError,
    SignatureRejectedError,
    TransactionRejectedError,
)
from tests.fixtures import (
    FakeClock,
    FakePaymentNetwork,
    FakeWallet,
    confirmed_status,
    failed_status,
    make_payment_request,
    make_submitter,
    processed_status,
)

FORWARD_STATES = [
    PaymentState.AWAITING_SIGNATURE,
    PaymentState.SIGNED,
    PaymentState.AWAITING_BROADCAST_ACK,
    PaymentState.BROADCAST,
    PaymentState.AWAITING_CONFIRMATION,
    PaymentState.CONFIRMED,
]


@pytest.fixture
def submitter(
    fake_wallet: FakeWallet, fake_network: FakePaymentNetwork, fake_clock: FakeClock
) -> PaymentSubmitter:
    return make_submitter(fake_wallet, fake_network, fake_clock)


@pytest.fixture
def payment_request(
    fake_wallet: FakeWallet, recipient_address: str, fake_clock: FakeClock
) -> PaymentRequest:
    return make_payment_request(fake_wallet.address, recipient_address, fake_clock)


class TestPaymentAttempt:
    def test_moves_only_forward(self, payment_request: PaymentRequest) -> None:
        attempt = PaymentAttempt(payment_request)
        with pytest.raises(InvalidTransitionError):
            attempt.advance(PaymentState.SIGNED)

        attempt.advance(PaymentState.AWAITING_SIGNATURE)
        with pytest.raises(InvalidTransitionError):
            attempt.advance(PaymentState.BUILT)

    def test_terminal_states_are_final(self, payment_request: PaymentRequest) -> None:
        attempt = PaymentAttempt(payment_request)
        for state in FORWARD_STATES:
            attempt.advance(state)
        assert attempt.is_terminal
        with pytest.raises(InvalidTransitionError):
            attempt.fail(SignatureRejectedError("late"))

    def test_listener_sees_every_transition(
        self, payment_request: PaymentRequest
    ) -> None:
        seen: list[PaymentState] = []
        attempt = PaymentAttempt(payment_request, seen.append)
        attempt.advance(PaymentState.AWAITING_SIGNATURE)
        attempt.fail(SignatureRejectedError("declined"))
        assert seen == [PaymentState.AWAITING_SIGNATURE, PaymentState.FAILED]
        assert attempt.history == [
            PaymentState.BUILT,
            PaymentState.AWAITING_SIGNATURE,
            PaymentState.FAILED,
        ]


@pytest.mark.asyncio
async def test_successful_payment(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
    fake_clock: FakeClock,
) -> None:
    fake_network.statuses = [None, processed_status(), confirmed_status()]
    seen: list[PaymentState] = []

    result = await submitter.submit(payment_request, listener=seen.append)

    sent = Transaction.from_bytes(fake_network.sent[0])
    assert result.signature == str(sent.signatures[0])
    assert result.payer_address == fake_wallet.address
    assert result.amount_lamports == payment_request.amount_lamports
    assert seen == FORWARD_STATES
    assert fake_clock.sleeps == [1.0, 1.0]


@pytest.mark.asyncio
async def test_declined_signature_sends_nothing(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_wallet.approve_signature = False
    attempt = submitter.start(payment_request)

    with pytest.raises(SignatureRejectedError) as exc_info:
        await submitter.run(attempt)

    assert not exc_info.value.funds_may_have_moved
    assert attempt.state is PaymentState.FAILED
    assert not attempt.reached_broadcast
    assert fake_network.sent == []


@pytest.mark.asyncio
async def test_unsigned_wallet_response_is_rejected(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_wallet.return_unsigned = True
    with pytest.raises(SignatureRejectedError):
        await submitter.submit(payment_request)
    assert fake_network.sent == []


@pytest.mark.asyncio
async def test_stale_request_is_not_signed(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_clock: FakeClock,
) -> None:
    fake_clock.advance(61)
    with pytest.raises(PaymentRequestExpiredError):
        await submitter.submit(payment_request)
    assert fake_wallet.calls == []


@pytest.mark.asyncio
async def test_request_expiring_during_signing_is_not_sent(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
    fake_clock: FakeClock,
) -> None:
    fake_wallet.on_sign = lambda: fake_clock.advance(120)
    with pytest.raises(PaymentRequestExpiredError):
        await submitter.submit(payment_request)
    assert fake_wallet.call_names() == ["sign_transaction"]
    assert fake_network.sent == []


@pytest.mark.asyncio
async def test_request_is_single_use(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.statuses = [confirmed_status()]
    await submitter.submit(payment_request)

    with pytest.raises(PaymentRequestReusedError):
        await submitter.submit(payment_request)
    assert len(fake_network.sent) == 1


@pytest.mark.asyncio
async def test_explicit_broadcast_rejection(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.send_error = TransactionRejectedError("Blockhash not found", -32002)
    attempt = submitter.start(payment_request)

    with pytest.raises(BroadcastFailedError) as exc_info:
        await submitter.run(attempt)

    assert not exc_info.value.funds_may_have_moved
    assert not attempt.reached_broadcast
    assert "get_signature_status" not in fake_network.call_names()


@pytest.mark.asyncio
async def test_lost_broadcast_ack_still_confirms(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.send_error = PaymentNetworkError("read timeout")
    fake_network.statuses = [confirmed_status()]

    result = await submitter.submit(payment_request)

    sent = Transaction.from_bytes(fake_network.sent[0])
    assert result.signature == str(sent.signatures[0])


@pytest.mark.asyncio
async def test_confirmation_timeout_carries_signature(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
    fake_clock: FakeClock,
) -> None:
    attempt = submitter.start(payment_request)

    with pytest.raises(ConfirmationTimeoutError) as exc_info:
        await submitter.run(attempt)

    error = exc_info.value
    assert error.funds_may_have_moved
    assert error.signature == attempt.signature
    assert error.request == payment_request
    assert attempt.reached_broadcast
    assert attempt.state is PaymentState.FAILED
    assert fake_clock.sleeps == [1.0] * 5


@pytest.mark.asyncio
async def test_transient_status_errors_are_retried(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.statuses = [PaymentNetworkError("flaky"), confirmed_status()]
    result = await submitter.submit(payment_request)
    assert result.signature


@pytest.mark.asyncio
async def test_on_chain_failure_after_broadcast_is_unknown_outcome(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.statuses = [failed_status()]
    with pytest.raises(ConfirmationTimeoutError, match="processed with error"):
        await submitter.submit(payment_request)


@pytest.mark.asyncio
async def test_finalized_commitment_waits_past_confirmed(
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
    fake_clock: FakeClock,
    payment_request: PaymentRequest,
) -> None:
    submitter = make_submitter(
        fake_wallet, fake_network, fake_clock, commitment="finalized"
    )
    fake_network.statuses = [confirmed_status(), confirmed_status("finalized")]

    await submitter.submit(payment_request)

    assert fake_clock.sleeps == [1.0]


@pytest.mark.asyncio
async def test_cancelled_confirmation_keeps_signature(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.hold_status = asyncio.Event()
    attempt = submitter.start(payment_request)
    task = asyncio.create_task(submitter.run(attempt))
    await fake_network.status_requested.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    sent = Transaction.from_bytes(fake_network.sent[0])
    assert attempt.state is PaymentState.FAILED
    assert isinstance(attempt.error, ConfirmationTimeoutError)
    assert attempt.error.funds_may_have_moved
    assert attempt.error.signature == str(sent.signatures[0])
    assert attempt.error.request == payment_request


@pytest.mark.asyncio
async def test_cancelled_signing_sends_nothing(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_wallet.hold_signing = asyncio.Event()
    attempt = submitter.start(payment_request)
    task = asyncio.create_task(submitter.run(attempt))
    await fake_wallet.signing_started.wait()

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert attempt.state is PaymentState.FAILED
    assert isinstance(attempt.error, PaymentInterruptedError)
    assert not attempt.error.funds_may_have_moved
    assert fake_network.sent == []


@pytest.mark.asyncio
async def test_unexpected_wallet_error_fails_attempt(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_wallet: FakeWallet,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_wallet.sign_error = RuntimeError("signer crashed")
    attempt = submitter.start(payment_request)

    with pytest.raises(PaymentInterruptedError) as exc_info:
        await submitter.run(attempt)

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert attempt.state is PaymentState.FAILED
    assert attempt.error is exc_info.value
    assert fake_network.sent == []


@pytest.mark.asyncio
async def test_unexpected_error_after_send_is_unknown_outcome(
    submitter: PaymentSubmitter,
    payment_request: PaymentRequest,
    fake_network: FakePaymentNetwork,
) -> None:
    fake_network.statuses = [ValueError("garbled status")]
    attempt = submitter.start(payment_request)

    with pytest.raises(ConfirmationTimeoutError) as exc_info:
        await submitter.run(attempt)

    assert exc_info.value.signature == attempt.signature
    assert attempt.state is PaymentState.FAILED


class TestRecheck:
    @pytest.fixture
    def unresolved(self, payment_request: PaymentRequest) -> ConfirmationTimeoutError:
        return ConfirmationTimeoutError(
            "not confirmed", signature="5sig", request=payment_request
        )

    @pytest.mark.asyncio
    async def test_confirmed_since(
        self,
        submitter: PaymentSubmitter,
        fake_network: FakePaymentNetwork,
        unresolved: ConfirmationTimeoutError,
    ) -> None:
        fake_network.statuses = [confirmed_status()]

        result = await submitter.recheck(unresolved)

        assert result is not None
        assert result.signature == "5sig"
        assert fake_network.calls[0][1]["search_history"] is True

    @pytest.mark.asyncio
    async def test_failed_on_chain(
        self,
        submitter: PaymentSubmitter,
        fake_network: FakePaymentNetwork,
        unresolved: ConfirmationTimeoutError,
    ) -> None:
        fake_network.statuses = [failed_status()]
        assert await submitter.recheck(unresolved) is None

    @pytest.mark.asyncio
    async def test_unseen_and_expired(
        self,
        submitter: PaymentSubmitter,
        fake_network: FakePaymentNetwork,
        unresolved: ConfirmationTimeoutError,
    ) -> None:
        fake_network.block_height = unresolved.request.last_valid_block_height + 1
        assert await submitter.recheck(unresolved) is None

    @pytest.mark.asyncio
    async def test_unseen_but_still_valid(
        self,
        submitter: PaymentSubmitter,
        fake_network: FakePaymentNetwork,
        unresolved: ConfirmationTimeoutError,
    ) -> None:
        fake_network.block_height = unresolved.request.last_valid_block_height
        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            await submitter.recheck(unresolved)
        assert exc_info.value.signature == "5sig"

    @pytest.mark.asyncio
    async def test_network_down(
        self,
        submitter: PaymentSubmitter,
        fake_network: FakePaymentNetwork,
        unresolved: ConfirmationTimeoutError,
    ) -> None:
        fake_network.statuses = [PaymentNetworkError("down")]
        with pytest.raises(ConfirmationTimeoutError):
            await submitter.recheck(unresolved)

    @pytest.mark.asyncio
    async def test_processed_only_is_still_unknown(
        self,
        submitter: PaymentSubmitter,
        fake_network: FakePaymentNetwork,
        unresolved: ConfirmationTimeoutError,
    ) -> None:
        fake_network.statuses = [processed_status()]
        with pytest.raises(ConfirmationTimeoutError):
            await submitter.recheck(unresolved)
