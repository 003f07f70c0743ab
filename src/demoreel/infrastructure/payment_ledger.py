from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from ..domain.entities import PaymentRequest
from ..domain.errors import ConfirmationTimeoutError

logger = logging.getLogger(__name__)


class UnresolvedPaymentStore:
    """Keeps the last payment with an unknown outcome on disk between runs.

    Only one unresolved payment is tracked: a new paid attempt is refused
    while one is outstanding, so there is never more than one.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @classmethod
    def in_dir(cls, state_dir: str) -> "UnresolvedPaymentStore":
        return cls(Path(state_dir).expanduser() / "unresolved_payment.json")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[ConfirmationTimeoutError]:
        if not self._path.is_file():
            return None
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            request = PaymentRequest.model_validate(raw["request"])
            signature = str(raw["signature"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            raise ValueError(
                f"Unreadable unresolved payment record at {self._path}; "
                "check the payment manually before removing it"
            ) from e
        return ConfirmationTimeoutError(
            str(raw.get("message", f"Payment {signature} is unresolved")),
            signature=signature,
            request=request,
        )

    def save(self, unresolved: Optional[ConfirmationTimeoutError]) -> None:
        if unresolved is None:
            self.clear()
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        record = {
            "signature": unresolved.signature,
            "message": str(unresolved),
            "request": unresolved.request.model_dump(mode="json"),
        }
        self._path.write_text(json.dumps(record, indent=2), encoding="utf-8")
        logger.info("Recorded unresolved payment %s", unresolved.signature)

    def clear(self) -> None:
        if self._path.exists():
            self._path.unlink()
