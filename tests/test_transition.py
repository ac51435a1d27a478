# ABOUTME: Tests the pure learner-state transition for one response event.
# ABOUTME: Walks the documented three-day review scenario and the input validation rules.

import math
from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from src.common.catalog import default_catalog
from src.common.config import EngineConfig
from src.common.errors import ValidationError
from src.common.schemas import CognitiveState
from src.learner.transition import ResponseEvent, apply_response, initial_state
from src.policy.qlearning import QLearningPolicy

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
CONFIG = EngineConfig()


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def state(catalog):
    return initial_state(catalog, T0, CONFIG)


@pytest.fixture
def policy(catalog):
    return QLearningPolicy(catalog.action_ids(), CONFIG.policy, rng=np.random.default_rng(0))


def _event(**overrides):
    fields = dict(
        concept_id="algebra_basics",
        correct=True,
        latency_ms=5000.0,
        estimated_time_sec=15.0,
        difficulty=-1.0,
        discrimination=1.2,
        timestamp=T0 + timedelta(days=3),
    )
    fields.update(overrides)
    return ResponseEvent(**fields)


def test_initial_state_uses_catalog_defaults(state):
    record = state.mastery["algebra_basics"]
    assert record.value == pytest.approx(0.2)
    assert record.strength == pytest.approx(2.0)
    assert record.last_review == T0
    assert state.theta == 0.0
    assert state.cognitive_state == CognitiveState.NORMAL


def test_three_day_review_scenario(state, policy):
    result = apply_response(state, _event(), policy, CONFIG)
    record = result.state.mastery["algebra_basics"]

    assert result.retention_at_review == pytest.approx(math.exp(-1.5))
    assert record.strength == pytest.approx(2.67, abs=1e-2)
    assert record.value == pytest.approx(0.600, abs=1e-3)
    assert record.last_review == T0 + timedelta(days=3)
    assert result.state.theta == pytest.approx(0.780, abs=1e-3)
    assert result.previous_mastery == pytest.approx(0.2)
    assert result.mastery_gain == pytest.approx(0.4, abs=1e-3)


def test_policy_target_for_first_response(state, policy):
    result = apply_response(state, _event(), policy, CONFIG)
    assert result.state_key == "L_L_L_L_normal"
    assert result.next_state_key == "M_L_L_L_normal"
    assert result.reward == pytest.approx(5.0, abs=1e-3)
    assert result.q_value == pytest.approx(0.5, abs=1e-4)


def test_transition_is_pure(state, policy):
    before = dict(state.mastery)
    apply_response(state, _event(), policy, CONFIG)
    assert dict(state.mastery) == before
    assert state.latencies == ()
    assert len(policy) == 0


def test_other_concepts_untouched(state, policy):
    result = apply_response(state, _event(), policy, CONFIG)
    for concept_id in ("geometry_triangles", "calculus_limits", "statistics_prob"):
        assert result.state.mastery[concept_id] == state.mastery[concept_id]


def test_windows_and_confidence_are_appended(state, policy):
    result = apply_response(state, _event(confidence=4), policy, CONFIG)
    assert result.state.latencies == (5000.0,)
    assert result.state.accuracies == (True,)
    assert dict(result.state.confidence) == {"algebra_basics": (4,)}
    assert result.event.confidence == 4


def test_windows_stay_bounded(state, policy):
    current = state
    for i in range(8):
        current = apply_response(current, _event(latency_ms=1000.0 * (i + 1)), policy, CONFIG).state
    assert current.latencies == (4000.0, 5000.0, 6000.0, 7000.0, 8000.0)
    assert len(current.accuracies) == 5


def test_cognitive_state_feeds_next_key(state, policy):
    current = state
    for _ in range(3):
        result = apply_response(current, _event(correct=False, latency_ms=800.0), policy, CONFIG)
        current = result.state
    assert current.cognitive_state == CognitiveState.FRUSTRATION
    assert result.next_state_key.endswith("_frustration")


@pytest.mark.parametrize(
    "overrides",
    [
        {"concept_id": "unknown"},
        {"correct": "yes"},
        {"correct": 1},
        {"latency_ms": -1.0},
        {"latency_ms": float("nan")},
        {"latency_ms": "fast"},
        {"estimated_time_sec": float("inf")},
        {"difficulty": float("nan")},
        {"discrimination": 0.0},
        {"discrimination": -1.0},
        {"confidence": 0},
        {"confidence": 6},
        {"confidence": 3.5},
        {"confidence": True},
    ],
)
def test_invalid_events_are_rejected(state, policy, overrides):
    with pytest.raises(ValidationError):
        apply_response(state, _event(**overrides), policy, CONFIG)


def test_missing_discrimination_is_allowed(state, policy):
    result = apply_response(state, _event(discrimination=None), policy, CONFIG)
    assert result.state.theta > 0
