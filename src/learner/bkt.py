# ABOUTME: Bayesian Knowledge Tracing update for a single concept's mastery probability.
# ABOUTME: Applies the evidence step, then the learning transition, then clamps.

import math

from src.common.config import BKTParams

DEFAULT_BKT = BKTParams()


def bkt_update(p: float, correct: bool, params: BKTParams = DEFAULT_BKT) -> float:
    """
    Posterior P(mastered) after one observed response.

    Evidence step:
      correct:   p(1-s) / (p(1-s) + (1-p)g)
      incorrect: p s / (p s + (1-p)(1-g))
    Learning step: p_ev + (1 - p_ev) * t
    """
    p = float(p)
    p = params.floor if math.isnan(p) else min(1.0, max(0.0, p))
    if correct:
        numerator = p * (1 - params.slip)
        denominator = numerator + (1 - p) * params.guess
    else:
        numerator = p * params.slip
        denominator = numerator + (1 - p) * (1 - params.guess)
    p_evidence = numerator / denominator if denominator > 0 else p
    p_new = p_evidence + (1 - p_evidence) * params.learn
    return clamp_mastery(p_new, params)


def clamp_mastery(value: float, params: BKTParams = DEFAULT_BKT) -> float:
    """Clamp into [floor, ceiling]; NaN maps to the floor."""
    value = float(value)
    if math.isnan(value):
        return params.floor
    return min(params.ceiling, max(params.floor, value))
