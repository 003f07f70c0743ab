from __future__ import annotations

from solders.hash import Hash
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

from ..domain.entities import PaymentRequest

LAMPORTS_PER_SOL = 1_000_000_000


def load_address(address: str) -> Pubkey:
    """Parse a base58 Solana public key, raising ``ValueError`` if malformed."""
    if not address:
        raise ValueError("Address cannot be empty")
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise ValueError(f"Invalid Solana address {address!r}: {e}") from e


def validate_address(address: str) -> str:
    load_address(address)
    return address


def format_sol(lamports: int) -> str:
    """Render lamports as a SOL amount, e.g. ``0.01 SOL``."""
    sol = lamports / LAMPORTS_PER_SOL
    return f"{sol:.9f}".rstrip("0").rstrip(".") + " SOL"


def build_transfer_transaction(request: PaymentRequest) -> Transaction:
    """Build the unsigned native transfer described by ``request``.

    The payer is also the fee payer; the blockhash is the request's block
    reference, so the transaction expires together with the request.
    """
    payer = load_address(request.payer_address)
    instruction = transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=load_address(request.recipient_address),
            lamports=request.amount_lamports,
        )
    )
    message = Message.new_with_blockhash(
        [instruction], payer, Hash.from_string(request.blockhash)
    )
    return Transaction.new_unsigned(message)


def transaction_signature(transaction: Transaction) -> str:
    """Return the fee payer's signature, which is also the transaction id."""
    return str(transaction.signatures[0])


def is_signed(transaction: Transaction) -> bool:
    return bool(transaction.signatures) and all(
        signature != Signature.default() for signature in transaction.signatures
    )
