"""Protocol interface for wallet (signer) implementations.

The pipeline only ever sees this capability, so a browser extension, a
local keypair or a deterministic test double can stand behind it.
"""

from __future__ import annotations

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from solders.transaction import Transaction


class WalletProtocol(Protocol):
    """Connect to a signer and have it sign transfers.

    Implementations must not retry a declined signature: a rejection ends
    the attempt and is raised to the caller immediately.
    """

    async def connect(self) -> str:
        """Connect to the signer.

        Returns:
            The base58 public address of the connected account.

        Raises:
            WalletUnavailableError: No compatible signer is installed.
            WalletRejectedError: The user declined the connection.
        """
        ...

    async def sign_transaction(self, transaction: "Transaction") -> "Transaction":
        """Sign an unsigned transfer.

        Args:
            transaction: Unsigned transaction whose fee payer is the connected address

        Returns:
            A fully signed copy of the transaction.

        Raises:
            SignatureRejectedError: The user declined to sign.
        """
        ...
