from __future__ import annotations

import base64
import itertools
from typing import Any, List, Optional, Type
from types import TracebackType

import httpx
from pydantic import ValidationError
from solders.hash import Hash

from ...domain.entities import BlockReference, SignatureStatus
from ...domain.errors import PaymentNetworkError, TransactionRejectedError
from ..http.http_client import AsyncHttpClient
from ..timing import log_timing


class SolanaRpcClient:
    """Asynchronous JSON-RPC client for the Solana calls the payment flow needs.

    Transport failures and unusable responses raise ``PaymentNetworkError``;
    a JSON-RPC ``error`` member raises ``TransactionRejectedError``.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        commitment: str = "confirmed",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = AsyncHttpClient(endpoint, timeout=timeout, transport=transport)
        self._commitment = commitment
        self._ids = itertools.count(1)

    @property
    def commitment(self) -> str:
        return self._commitment

    async def _call(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        try:
            resp = await self._http.post("", json=payload)
            body = resp.json()
        except httpx.HTTPError as e:
            raise PaymentNetworkError(f"{method} failed: {e}") from e
        except ValueError as e:
            raise PaymentNetworkError(f"{method} returned invalid JSON") from e

        if not isinstance(body, dict):
            raise PaymentNetworkError(f"{method} returned an unexpected payload")
        error = body.get("error")
        if error is not None:
            if isinstance(error, dict):
                raise TransactionRejectedError(
                    str(error.get("message", error)), code=error.get("code")
                )
            raise TransactionRejectedError(str(error))
        if "result" not in body:
            raise PaymentNetworkError(f"{method} response has no result")
        return body["result"]

    @log_timing("rpc_get_latest_blockhash")
    async def get_latest_blockhash(self) -> BlockReference:
        result = await self._call(
            "getLatestBlockhash", [{"commitment": self._commitment}]
        )
        try:
            value = result["value"]
            blockhash = str(Hash.from_string(value["blockhash"]))
            return BlockReference(
                blockhash=blockhash,
                last_valid_block_height=value["lastValidBlockHeight"],
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise PaymentNetworkError(
                "getLatestBlockhash returned no usable blockhash"
            ) from e

    @log_timing("rpc_send_transaction")
    async def send_raw_transaction(self, raw_transaction: bytes) -> str:
        encoded = base64.b64encode(raw_transaction).decode("utf-8")
        result = await self._call(
            "sendTransaction",
            [
                encoded,
                {"encoding": "base64", "preflightCommitment": self._commitment},
            ],
        )
        if not isinstance(result, str) or not result:
            raise PaymentNetworkError("sendTransaction returned no signature")
        return result

    @log_timing("rpc_get_signature_status")
    async def get_signature_status(
        self, signature: str, *, search_history: bool = False
    ) -> Optional[SignatureStatus]:
        result = await self._call(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": search_history}],
        )
        try:
            value = result["value"][0]
        except (KeyError, IndexError, TypeError) as e:
            raise PaymentNetworkError(
                "getSignatureStatuses returned an unexpected payload"
            ) from e
        if value is None:
            return None
        return SignatureStatus(
            slot=value.get("slot"),
            confirmation_status=value.get("confirmationStatus"),
            err=value.get("err"),
        )

    @log_timing("rpc_get_block_height")
    async def get_block_height(self) -> int:
        result = await self._call("getBlockHeight", [{"commitment": self._commitment}])
        if not isinstance(result, int):
            raise PaymentNetworkError("getBlockHeight returned a non-integer height")
        return result

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional[TracebackType],
    ) -> None:
        await self.aclose()
