# ABOUTME: Tests the 2PL probability and the damped Newton-Raphson ability update.
# ABOUTME: Verifies direction of movement, clamping, and the default discrimination.

import math

import pytest

from src.common.config import AbilityParams
from src.learner.irt import clamp_ability, probability_correct, update_ability


def test_probability_is_half_at_difficulty():
    assert probability_correct(0.3, 0.3, 2.0) == pytest.approx(0.5)


def test_probability_is_stable_for_extreme_inputs():
    assert probability_correct(0.0, 1000.0) == pytest.approx(0.0)
    assert probability_correct(0.0, -1000.0) == pytest.approx(1.0)


def test_correct_answer_on_easy_item():
    # p = sigmoid(1.2), g = 1.2 (1 - p), I = 1.44 p (1 - p)
    assert update_ability(0.0, -1.0, 1.2, True) == pytest.approx(0.780, abs=1e-3)


def test_direction_of_update():
    assert update_ability(0.0, 0.0, 1.0, True) > 0.0
    assert update_ability(0.0, 0.0, 1.0, False) < 0.0


def test_missing_discrimination_defaults_to_one():
    assert update_ability(0.5, 0.0, None, True) == update_ability(0.5, 0.0, 1.0, True)


def test_ability_is_clamped():
    assert update_ability(4.0, 4.0, 1.0, True) == 4.0
    assert update_ability(-4.0, -4.0, 1.0, False) == -4.0


def test_clamp_ability_with_custom_bounds():
    params = AbilityParams(lower=-1.0, upper=1.0)
    assert clamp_ability(3.0, params) == 1.0
    assert clamp_ability(-3.0, params) == -1.0


def test_huge_discrimination_does_not_flip_sign():
    assert update_ability(1.0, 0.0, 1e200, True) == 1.0


def test_nan_ability_maps_to_start():
    assert clamp_ability(float("nan")) == 0.0


@pytest.mark.parametrize("theta", [-4.0, -1.5, 0.0, 2.5, 4.0])
@pytest.mark.parametrize("difficulty", [-1e6, 0.0, 1e6])
@pytest.mark.parametrize("discrimination", [1e-9, 1.0, 1e200])
def test_update_stays_in_range_and_moves_the_right_way(theta, difficulty, discrimination):
    after_correct = update_ability(theta, difficulty, discrimination, True)
    after_incorrect = update_ability(theta, difficulty, discrimination, False)
    for value in (after_correct, after_incorrect):
        assert math.isfinite(value)
        assert -4.0 <= value <= 4.0
    assert after_correct >= theta
    assert after_incorrect <= theta
