"""Verification engine: aggregation, per-credit state, coordination, publication."""

from carbon_avs.verification.aggregator import ResultAggregator
from carbon_avs.verification.coordinator import VerificationCoordinator
from carbon_avs.verification.models import (
    AGGREGATION_ERROR,
    NO_SUCCESSFUL_SOURCE,
    NOT_FOUND_IN_REGISTRIES,
    CreditVerificationState,
    Verdict,
    VerificationRequest,
    VerificationStatus,
)
from carbon_avs.verification.publisher import VerdictPublisher, VerdictSink
from carbon_avs.verification.state import VerificationStateStore

__all__ = [
    "AGGREGATION_ERROR",
    "CreditVerificationState",
    "NOT_FOUND_IN_REGISTRIES",
    "NO_SUCCESSFUL_SOURCE",
    "ResultAggregator",
    "Verdict",
    "VerdictPublisher",
    "VerdictSink",
    "VerificationCoordinator",
    "VerificationRequest",
    "VerificationStateStore",
    "VerificationStatus",
]
