from __future__ import annotations

import logging
from typing import Set

from ...domain.entities import GenerationRequest, JobHandle, PaidGeneration
from ...domain.errors import PaymentSignatureReusedError
from ...domain.shared import JobApiProtocol
from ..dtos import GenerateRequestDTO

logger = logging.getLogger(__name__)


class JobSubmissionClient:
    """Sends one generation request per call to the job API.

    No local verification of the payment proof happens here; the backend is
    the only authority. A rejected request is never retried, and a payment
    signature is sent at most once, even if that send failed.
    """

    def __init__(self, job_api: JobApiProtocol) -> None:
        self._job_api = job_api
        self._sent_signatures: Set[str] = set()

    def has_sent(self, payment_signature: str) -> bool:
        return payment_signature in self._sent_signatures

    async def submit(self, request: GenerationRequest) -> JobHandle:
        dto = GenerateRequestDTO.from_request(request)
        if isinstance(request, PaidGeneration):
            if request.payment_signature in self._sent_signatures:
                raise PaymentSignatureReusedError(request.payment_signature)
            self._sent_signatures.add(request.payment_signature)
            logger.info(
                "Submitting paid generation for %s (payment %s)",
                request.github_url,
                request.payment_signature,
            )
        else:
            logger.info("Submitting free sample for %s", request.github_url)

        handle = await self._job_api.submit_generation(dto)
        logger.info("Job %s accepted", handle.job_id)
        return handle
