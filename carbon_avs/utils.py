"""
Utility functions for the carbon verification service

Provides logging setup, credit identifier normalisation, and the
exception hierarchy shared by every module
"""

import logging
from pathlib import Path
from typing import Optional


# ═══════════════════════════════════════════════════════════════════
# LOGGING
# ═══════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO", log_file: Optional[str | Path] = None) -> None:
    """Configure logging for the service"""
    level = getattr(logging, log_level.upper())

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """Get logger instance for module"""
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════
# CREDIT IDENTIFIERS
# ═══════════════════════════════════════════════════════════════════

def normalize_credit_id(credit_id: int | str) -> str:
    """Normalize a credit identifier to the string key used everywhere.

    ``7``, ``"7"`` and ``" 7 "`` all name the same credit.
    """
    if isinstance(credit_id, bool):
        raise ValueError("Credit identifier must be an int or a string")
    key = str(credit_id).strip()
    if not key:
        raise ValueError("Credit identifier must not be empty")
    return key


# ═══════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ═══════════════════════════════════════════════════════════════════

class CarbonAVSError(Exception):
    """Base exception for the carbon verification service"""
    pass


class ConfigurationError(CarbonAVSError):
    """Missing or inconsistent configuration"""
    pass


class InvariantViolation(CarbonAVSError):
    """A verification wave found the credit state in an impossible shape"""
    pass


class LedgerError(CarbonAVSError):
    """The downstream ledger did not accept a verdict"""
    pass


class LedgerUnavailable(LedgerError):
    """Transient ledger failure (transport error, 5xx); safe to retry"""
    pass


class LedgerRejected(LedgerError):
    """The ledger refused the verdict outright; retrying will not help"""
    pass


class PublishFailure(CarbonAVSError):
    """A computed verdict could not be delivered after all retries."""

    def __init__(self, credit_id: str, attempts: int, reason: str) -> None:
        super().__init__(
            f"Failed to publish verdict for credit {credit_id} "
            f"after {attempts} attempt(s): {reason}"
        )
        self.credit_id = credit_id
        self.attempts = attempts
        self.reason = reason
