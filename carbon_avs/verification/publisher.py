"""Verdict delivery to the downstream ledger.

The ledger is keyed by credit and treats every submission as an overwrite,
so delivering the same verdict twice is harmless. The publisher also
remembers what it last delivered per credit and skips identical resends.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

from carbon_avs.utils import LedgerRejected, LedgerUnavailable, PublishFailure, normalize_credit_id
from carbon_avs.verification.models import Verdict

logger = logging.getLogger(__name__)


class VerdictSink(Protocol):
    """Anything that accepts ``submitVerification``-shaped calls."""

    async def submit_verification(
        self,
        credit_id: str,
        is_valid: bool,
        quality_score: int,
        sources: Sequence[str],
    ) -> None: ...


class VerdictPublisher:
    """Idempotent, retrying publisher.

    Parameters
    ----------
    sink : VerdictSink
        Downstream ledger.
    max_attempts : int
        Total delivery attempts per verdict (1 = no retry).
    backoff_seconds : float
        Delay before the first retry.
    backoff_factor : float
        Multiplier applied to the delay after every retry.
    """

    def __init__(
        self,
        sink: VerdictSink,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        backoff_factor: float = 2.0,
    ) -> None:
        self.sink = sink
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = backoff_seconds
        self.backoff_factor = backoff_factor
        self._delivered: dict[str, Verdict] = {}

    def last_delivered(self, credit_id: int | str) -> Verdict | None:
        return self._delivered.get(normalize_credit_id(credit_id))

    async def publish(self, credit_id: int | str, verdict: Verdict) -> None:
        """Deliver *verdict* for *credit_id*.

        Raises:
            PublishFailure: the sink rejected the verdict or every retry failed.
        """
        key = normalize_credit_id(credit_id)
        if self._delivered.get(key) == verdict:
            logger.debug("Verdict for credit %s already delivered, skipping", key)
            return

        delay = self.backoff_seconds
        last_exc: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.sink.submit_verification(
                    key, verdict.is_valid, verdict.quality_score, list(verdict.sources)
                )
            except LedgerRejected as exc:
                logger.error("Ledger rejected verdict for credit %s: %s", key, exc)
                raise PublishFailure(key, attempt, str(exc)) from exc
            except LedgerUnavailable as exc:
                last_exc = exc
                if attempt < self.max_attempts:
                    logger.warning(
                        "Publish attempt %d/%d for credit %s failed: %s. Retrying in %.1fs",
                        attempt, self.max_attempts, key, exc, delay,
                    )
                    await asyncio.sleep(delay)
                    delay *= self.backoff_factor
                continue

            self._delivered[key] = verdict
            logger.info(
                "Published verdict for credit %s: valid=%s score=%d sources=%s",
                key, verdict.is_valid, verdict.quality_score, ", ".join(verdict.sources),
            )
            return

        logger.error(
            "Giving up on credit %s after %d publish attempts: %s",
            key, self.max_attempts, last_exc,
        )
        raise PublishFailure(key, self.max_attempts, str(last_exc)) from last_exc
