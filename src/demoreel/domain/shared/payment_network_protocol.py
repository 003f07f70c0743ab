"""Protocol interface for the payment network (Solana RPC) adapter."""

from __future__ import annotations

from typing import Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ..entities import BlockReference, SignatureStatus


class PaymentNetworkProtocol(Protocol):
    """Calls the payment use cases need from the network.

    Implementations raise ``PaymentNetworkError`` when a call cannot be
    completed and ``TransactionRejectedError`` when the network answers with
    an explicit error.
    """

    async def get_latest_blockhash(self) -> "BlockReference":
        """Fetch a fresh block reference for a new transaction."""
        ...

    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        """Broadcast a signed, serialized transaction.

        Returns:
            The transaction signature acknowledged by the network.
        """
        ...

    async def get_signature_status(
        self, signature: str, *, search_history: bool = False
    ) -> Optional["SignatureStatus"]:
        """Look up a broadcast transaction; ``None`` while the network has not seen it.

        ``search_history`` extends the lookup beyond the recent status cache.
        """
        ...

    async def get_block_height(self) -> int:
        """Return the current block height at the configured commitment."""
        ...
