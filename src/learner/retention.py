# ABOUTME: Implements the exponential forgetting curve and spaced-repetition stability update.
# ABOUTME: Also projects retention forward in time for forecasts and what-if simulations.

from __future__ import annotations

import math
from datetime import datetime
from typing import List, Optional

from src.common.config import RetentionParams
from src.common.schemas import MasteryRecord

SECONDS_PER_DAY = 24 * 60 * 60

DEFAULT_RETENTION = RetentionParams()


def _effective_strength(strength: Optional[float], params: RetentionParams) -> float:
    if strength is None or not strength > 0:
        return params.default_strength
    return float(strength)


def elapsed_days(since: datetime, now: datetime) -> float:
    """Days between two timestamps; clock skew into the future counts as zero."""
    return max(0.0, (now - since).total_seconds() / SECONDS_PER_DAY)


def retention(
    last_review: Optional[datetime],
    strength: Optional[float],
    now: datetime,
    params: RetentionParams = DEFAULT_RETENTION,
) -> float:
    """Recall probability R = exp(-t / S), with t in days since the last review."""
    if last_review is None:
        return 1.0
    t = elapsed_days(last_review, now)
    return math.exp(-t / _effective_strength(strength, params))


def next_strength(
    strength: Optional[float],
    correct: bool,
    retention_at_review: float,
    params: RetentionParams = DEFAULT_RETENTION,
) -> float:
    """
    Update stability after a review.

    A correct answer multiplies stability by ``1 + growth * R`` so well-timed
    reviews (high R) grow it most. A miss decays it by ``decay`` but never
    below ``min_strength`` days.
    """
    s = _effective_strength(strength, params)
    r = min(1.0, max(0.0, retention_at_review))
    if correct:
        return max(params.min_strength, s * (1.0 + params.growth * r))
    return max(params.min_strength, s * params.decay)


def forecast_retention(
    record: MasteryRecord,
    days: int = DEFAULT_RETENTION.forecast_days,
    params: RetentionParams = DEFAULT_RETENTION,
) -> List[float]:
    """Projected recall-weighted mastery for each day 0..days from now."""
    s = _effective_strength(record.strength, params)
    return [math.exp(-day / s) * record.value for day in range(days + 1)]
