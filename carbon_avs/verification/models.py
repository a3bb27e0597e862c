"""Verification requests, verdicts and per-credit state."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Sentinel source tags for verdicts that carry no registry evidence
NO_SUCCESSFUL_SOURCE = "verification_failed"
NOT_FOUND_IN_REGISTRIES = "not_found_in_registries"
AGGREGATION_ERROR = "error"


class VerificationStatus(str, Enum):
    """Lifecycle of a credit's verification.

    unverified -> pending -> verified | rejected
    pending -> publish_failed when the verdict never reached the ledger.
    """
    unverified = "unverified"
    pending = "pending"
    verified = "verified"
    rejected = "rejected"
    publish_failed = "publish_failed"

    @property
    def is_terminal(self) -> bool:
        return self in (VerificationStatus.verified, VerificationStatus.rejected)


@dataclass(frozen=True)
class Verdict:
    """Aggregated trust decision for one credit."""

    is_valid: bool
    quality_score: int
    sources: tuple[str, ...] = ()

    @classmethod
    def sentinel(cls, tag: str) -> "Verdict":
        return cls(is_valid=False, quality_score=0, sources=(tag,))

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "quality_score": self.quality_score,
            "sources": list(self.sources),
        }


@dataclass(frozen=True)
class VerificationRequest:
    credit_id: str
    requester: str
    sequence: int
    requested_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CreditVerificationState:
    """Mutable per-credit record owned by the coordinator."""

    credit_id: str
    status: VerificationStatus = VerificationStatus.unverified
    verdict: Verdict | None = None
    wave_id: int | None = None
    request: VerificationRequest | None = None
    requesters: list[str] = field(default_factory=list)
    wave_count: int = 0
    last_error: str = ""
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)

    def snapshot(self) -> "CreditVerificationState":
        """Detached copy safe to hand to callers."""
        return CreditVerificationState(
            credit_id=self.credit_id,
            status=self.status,
            verdict=self.verdict,
            wave_id=self.wave_id,
            request=self.request,
            requesters=list(self.requesters),
            wave_count=self.wave_count,
            last_error=self.last_error,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "credit_id": self.credit_id,
            "status": self.status.value,
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "wave_id": self.wave_id,
            "requesters": list(self.requesters),
            "wave_count": self.wave_count,
            "last_error": self.last_error,
            "updated_at": self.updated_at.isoformat(),
        }
