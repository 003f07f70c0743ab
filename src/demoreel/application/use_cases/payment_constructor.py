from __future__ import annotations

import logging
import time
from typing import Callable

from ...crypto.transfer import validate_address
from ...domain.entities import PaymentRequest
from ...domain.errors import NetworkUnavailableError, PaymentNetworkError
from ...domain.shared import PaymentNetworkProtocol

logger = logging.getLogger(__name__)


class PaymentConstructor:
    """Builds fixed-price transfer requests against a fresh block reference."""

    def __init__(
        self,
        network: PaymentNetworkProtocol,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._network = network
        self._clock = clock

    async def build(
        self,
        payer_address: str,
        recipient_address: str,
        amount_lamports: int,
    ) -> PaymentRequest:
        """Build a single-use payment request.

        Arguments are validated first; fetching the block reference is the
        last step so the request is as fresh as possible when it is returned.

        Raises:
            ValueError: An address is malformed or the amount is not positive.
            NetworkUnavailableError: The block reference could not be fetched.
        """
        validate_address(payer_address)
        validate_address(recipient_address)
        if amount_lamports <= 0:
            raise ValueError("Payment amount must be positive")

        try:
            reference = await self._network.get_latest_blockhash()
        except PaymentNetworkError as e:
            raise NetworkUnavailableError(
                f"Could not fetch a recent blockhash: {e}"
            ) from e

        request = PaymentRequest(
            payer_address=payer_address,
            recipient_address=recipient_address,
            amount_lamports=amount_lamports,
            blockhash=reference.blockhash,
            last_valid_block_height=reference.last_valid_block_height,
            fetched_at=self._clock(),
        )
        logger.info(
            "Built payment request %s: %d lamports %s -> %s",
            request.id,
            amount_lamports,
            payer_address,
            recipient_address,
        )
        return request
