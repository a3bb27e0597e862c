"""In-memory ledger backend for verification results."""

from __future__ import annotations

import copy
from typing import Any, Sequence

from carbon_avs.utils import normalize_credit_id


class InMemoryLedger:
    """Dict-based ledger keyed by credit id.

    A submission overwrites whatever was stored for the credit, so repeated
    identical submissions leave the ledger unchanged. ``writes`` counts every
    accepted call.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        self.writes = 0

    async def submit_verification(
        self,
        credit_id: str,
        is_valid: bool,
        quality_score: int,
        sources: Sequence[str],
    ) -> None:
        self._entries[normalize_credit_id(credit_id)] = {
            "is_valid": bool(is_valid),
            "quality_score": int(quality_score),
            "sources": list(sources),
        }
        self.writes += 1

    def get(self, credit_id: int | str) -> dict[str, Any] | None:
        entry = self._entries.get(normalize_credit_id(credit_id))
        return copy.deepcopy(entry) if entry is not None else None

    def snapshot(self) -> dict[str, dict[str, Any]]:
        return copy.deepcopy(self._entries)

    def count(self) -> int:
        return len(self._entries)
