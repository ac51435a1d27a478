# ABOUTME: Updates the learner's global ability with a damped 2PL Newton-Raphson step.
# ABOUTME: Probability, gradient, and information follow the two-parameter logistic model.

from __future__ import annotations

import math
from typing import Optional

from src.common.config import AbilityParams

DEFAULT_ABILITY = AbilityParams()


def probability_correct(theta: float, difficulty: float, discrimination: float = 1.0) -> float:
    """P(correct) = 1 / (1 + exp(-a(theta - b))), stable for large |a(theta - b)|."""
    z = discrimination * (theta - difficulty)
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    e = math.exp(z)
    return e / (1.0 + e)


def update_ability(
    theta: float,
    difficulty: float,
    discrimination: Optional[float],
    correct: bool,
    params: AbilityParams = DEFAULT_ABILITY,
) -> float:
    """
    One damped Newton-Raphson step on the response log-likelihood.

    gradient    g = a (y - p)
    information I = a^2 p (1 - p)
    theta'      = theta + g / (I + damping), clamped to [lower, upper]
    """
    a = discrimination if discrimination else params.default_discrimination
    p = probability_correct(theta, difficulty, a)
    gradient = a * ((1.0 if correct else 0.0) - p)
    information = a * a * p * (1.0 - p)
    if not math.isfinite(information):
        # a^2 overflowed: the Newton step g / I vanishes
        return clamp_ability(theta, params)
    new_theta = theta + gradient / (information + params.damping)
    return clamp_ability(new_theta, params)


def clamp_ability(theta: float, params: AbilityParams = DEFAULT_ABILITY) -> float:
    """Clamp into [lower, upper]; NaN maps to 0.0, the starting ability."""
    theta = float(theta)
    if math.isnan(theta):
        return 0.0
    return min(params.upper, max(params.lower, theta))
