"""Local signer backed by a Solana CLI keypair file."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Callable, Optional

from solders.keypair import Keypair
from solders.transaction import Transaction

from ...domain.errors import (
    SignatureRejectedError,
    WalletRejectedError,
    WalletUnavailableError,
)

logger = logging.getLogger(__name__)

ConnectApproval = Callable[[str], bool]
SignApproval = Callable[[Transaction], bool]

NO_WALLET_MESSAGE = (
    "No Solana wallet found. Create a keypair with `solana-keygen new` and set "
    "WALLET_KEYPAIR_PATH, or install a wallet such as Phantom."
)


def _always(_: object) -> bool:
    return True


def load_keypair(path: str) -> Keypair:
    """Load a keypair from a Solana CLI JSON file (a list of 64 byte values)."""
    raw = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    if not isinstance(raw, list) or len(raw) != 64:
        raise ValueError(f"{path} is not a Solana keypair file")
    return Keypair.from_bytes(bytes(raw))


class KeypairWallet:
    """``WalletProtocol`` implementation holding a keypair in memory.

    The approval callbacks play the part of the extension's confirmation
    dialogs: returning False declines the connection or the signature. They
    may block on user input, so they run in a worker thread.
    """

    def __init__(
        self,
        keypair: Optional[Keypair],
        *,
        approve_connect: ConnectApproval = _always,
        approve_signature: SignApproval = _always,
    ) -> None:
        self._keypair = keypair
        self._approve_connect = approve_connect
        self._approve_signature = approve_signature

    @classmethod
    def from_file(
        cls,
        path: Optional[str],
        *,
        approve_connect: ConnectApproval = _always,
        approve_signature: SignApproval = _always,
    ) -> "KeypairWallet":
        """Build a wallet from a keypair file; a missing file leaves it unavailable."""
        keypair: Optional[Keypair] = None
        if path and Path(path).expanduser().is_file():
            try:
                keypair = load_keypair(path)
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable keypair file %s: %s", path, e)
        return cls(
            keypair,
            approve_connect=approve_connect,
            approve_signature=approve_signature,
        )

    async def connect(self) -> str:
        if self._keypair is None:
            raise WalletUnavailableError(NO_WALLET_MESSAGE)
        address = str(self._keypair.pubkey())
        if not await asyncio.to_thread(self._approve_connect, address):
            raise WalletRejectedError("Wallet connection was declined")
        return address

    async def sign_transaction(self, transaction: Transaction) -> Transaction:
        if self._keypair is None:
            raise SignatureRejectedError(NO_WALLET_MESSAGE)
        if not await asyncio.to_thread(self._approve_signature, transaction):
            raise SignatureRejectedError("Transaction signature was declined")
        message = transaction.message
        return Transaction([self._keypair], message, message.recent_blockhash)
