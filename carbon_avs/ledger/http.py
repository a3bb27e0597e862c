"""HTTP ledger backend.

Submits verdicts with ``PUT <ledger_url>/credits/<id>/verification``. PUT
replaces the stored verdict, which keeps resubmission idempotent.
"""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from carbon_avs.utils import LedgerRejected, LedgerUnavailable

logger = logging.getLogger(__name__)


class HttpLedgerSink:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def submit_verification(
        self,
        credit_id: str,
        is_valid: bool,
        quality_score: int,
        sources: Sequence[str],
    ) -> None:
        url = f"{self.base_url}/credits/{credit_id}/verification"
        body = {
            "credit_id": credit_id,
            "is_valid": is_valid,
            "quality_score": quality_score,
            "sources": list(sources),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.put(url, json=body, headers=self._headers())
        except httpx.RequestError as exc:
            raise LedgerUnavailable(f"Ledger unreachable at {url}: {exc}") from exc

        if resp.status_code >= 500 or resp.status_code == 429:
            raise LedgerUnavailable(f"Ledger returned {resp.status_code} for credit {credit_id}")
        if resp.status_code >= 400:
            raise LedgerRejected(
                f"Ledger rejected credit {credit_id} ({resp.status_code}): {resp.text[:200]}"
            )
        logger.debug("Ledger accepted verdict for credit %s (%d)", credit_id, resp.status_code)
