"""Approximate string matching for caller-spoken service names."""

import logging
from typing import Optional, Sequence

from rapidfuzz import fuzz, process, utils

logger = logging.getLogger(__name__)


class FuzzyMatcher:
    """
    Picks the closest choice for a query, or None when nothing is close enough.

    ``threshold`` uses the 0-1 distance convention where 0 is an exact match,
    so the default 0.4 accepts choices scoring at least 60 on rapidfuzz's
    0-100 similarity scale.
    """

    def __init__(self, threshold: float = 0.4) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0.0 and 1.0, got {threshold}")
        self.threshold = threshold
        self.score_cutoff = (1.0 - threshold) * 100.0

    def __call__(self, query: str, choices: Sequence[str]) -> Optional[str]:
        if not query or not query.strip() or not choices:
            return None
        match = process.extractOne(
            query,
            choices,
            scorer=fuzz.WRatio,
            processor=utils.default_process,
            score_cutoff=self.score_cutoff,
        )
        if match is None:
            logger.debug("No match for %r above %.0f", query, self.score_cutoff)
            return None
        choice, score, _ = match
        logger.debug("Matched %r -> %r (score %.1f)", query, choice, score)
        return choice
