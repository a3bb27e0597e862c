"""Keyed store for per-credit verification state."""

from __future__ import annotations

import asyncio
from collections.abc import Iterator

from carbon_avs.utils import normalize_credit_id
from carbon_avs.verification.models import CreditVerificationState, VerificationStatus


class VerificationStateStore:
    """Dict-backed state table with one asyncio lock per credit.

    Entries are created lazily in ``unverified`` on first reference.
    Callers must hold ``lock(credit_id)`` while mutating an entry.
    """

    def __init__(self) -> None:
        self._states: dict[str, CreditVerificationState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # -- Access ---------------------------------------------------------------

    def lock(self, credit_id: int | str) -> asyncio.Lock:
        key = normalize_credit_id(credit_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def get(self, credit_id: int | str) -> CreditVerificationState:
        """Return the live state for a credit, creating it if needed."""
        key = normalize_credit_id(credit_id)
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = CreditVerificationState(credit_id=key)
        return state

    def peek(self, credit_id: int | str) -> CreditVerificationState | None:
        """Return the state without creating one."""
        return self._states.get(normalize_credit_id(credit_id))

    # -- Queries --------------------------------------------------------------

    def __iter__(self) -> Iterator[CreditVerificationState]:
        return iter(list(self._states.values()))

    def by_status(self, status: VerificationStatus) -> list[CreditVerificationState]:
        return [s for s in self._states.values() if s.status == status]

    def count(self, status: VerificationStatus | None = None) -> int:
        if status is None:
            return len(self._states)
        return sum(1 for s in self._states.values() if s.status == status)
