"""Cross-registry result aggregation.

Reduces the outcomes of one verification wave to a single Verdict:
mean quality of the registries that confirm the credit, minus penalties
for retirement and thin corroboration, checked against a minimum score.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from carbon_avs.registries.models import NotFound, QueryOutcome, Success
from carbon_avs.verification.models import (
    NO_SUCCESSFUL_SOURCE,
    NOT_FOUND_IN_REGISTRIES,
    Verdict,
)

logger = logging.getLogger(__name__)

_MIN_QUALITY_SCORE = 40
_MIN_CORROBORATING_SOURCES = 2
_RETIRED_PENALTY = 20
_LOW_CORROBORATION_PENALTY = 10


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ResultAggregator:
    """Deterministic scoring of registry outcomes.

    The same outcome sequence always yields the same Verdict; nothing here
    reads the clock or keeps state between calls.
    """

    def __init__(
        self,
        min_quality_score: int = _MIN_QUALITY_SCORE,
        min_corroborating_sources: int = _MIN_CORROBORATING_SOURCES,
        retired_penalty: int = _RETIRED_PENALTY,
        low_corroboration_penalty: int = _LOW_CORROBORATION_PENALTY,
    ) -> None:
        self.min_quality_score = min_quality_score
        self.min_corroborating_sources = min_corroborating_sources
        self.retired_penalty = retired_penalty
        self.low_corroboration_penalty = low_corroboration_penalty

    def aggregate(self, outcomes: Sequence[QueryOutcome]) -> Verdict:
        """Combine per-registry outcomes into a Verdict.

        Args:
            outcomes: One outcome per registry, in the order they were queried.

        Returns:
            Verdict with validity, 0-100 score and the contributing sources.
        """
        successes = [o for o in outcomes if isinstance(o, Success)]
        existing = [o.record for o in successes if o.record.exists]

        if not existing:
            answered = successes or any(isinstance(o, NotFound) for o in outcomes)
            tag = NOT_FOUND_IN_REGISTRIES if answered else NO_SUCCESSFUL_SOURCE
            logger.info("No registry confirmed the credit (%s)", tag)
            return Verdict.sentinel(tag)

        avg_quality = sum(r.quality for r in existing) / len(existing)
        score = _round_half_up(avg_quality)

        retired_anywhere = any(r.retired for r in existing)
        if retired_anywhere:
            score = max(0, score - self.retired_penalty)

        if len(existing) < self.min_corroborating_sources:
            score = max(0, score - self.low_corroboration_penalty)

        verdict = Verdict(
            is_valid=not retired_anywhere and score >= self.min_quality_score,
            quality_score=min(score, 100),
            sources=tuple(o.source.value for o in successes),
        )
        logger.info(
            "Aggregated %d outcomes (%d confirming, retired=%s): valid=%s score=%d",
            len(outcomes), len(existing), retired_anywhere,
            verdict.is_valid, verdict.quality_score,
        )
        return verdict
