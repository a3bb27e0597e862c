"""
Carbon AVS - cross-registry carbon credit verification

Queries independent carbon registries concurrently, reconciles their
answers into one verdict per credit, and publishes it to a ledger
"""

__version__ = "0.1.0"

from carbon_avs.config import Config, get_config
from carbon_avs.verification import (
    ResultAggregator,
    Verdict,
    VerdictPublisher,
    VerificationCoordinator,
    VerificationStatus,
)

__all__ = [
    "Config",
    "get_config",
    "ResultAggregator",
    "Verdict",
    "VerdictPublisher",
    "VerificationCoordinator",
    "VerificationStatus",
]
