# ABOUTME: Pure transition function mapping (learner state, response event) to the next state.
# ABOUTME: Combines retention, BKT, 2PL ability, the cognitive classifier, and the Q-learning target.

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional, Tuple

from src.common.catalog import ItemCatalog
from src.common.config import EngineConfig
from src.common.errors import ValidationError
from src.common.schemas import CognitiveState, MasteryRecord, SessionEvent, freeze_mapping
from src.policy.qlearning import QLearningPolicy, compute_reward, discretize_state

from .bkt import bkt_update, clamp_mastery
from .cognitive import classify_cognitive_state
from .irt import update_ability
from .ledger import push_confidence, push_window
from .retention import next_strength, retention

CONFIDENCE_RANGE = (1, 5)


@dataclass(frozen=True)
class ResponseEvent:
    """A learner's answer plus the parameters of the item it answered."""

    concept_id: str
    correct: bool
    latency_ms: float
    estimated_time_sec: float
    difficulty: float
    discrimination: Optional[float]
    timestamp: datetime
    confidence: Optional[int] = None

    def to_session_event(self) -> SessionEvent:
        return SessionEvent(
            concept_id=self.concept_id,
            correct=self.correct,
            latency_ms=float(self.latency_ms),
            confidence=self.confidence,
            timestamp=self.timestamp,
        )


@dataclass(frozen=True)
class LearnerState:
    """Scalar learner state plus the bounded windows. Never mutated in place."""

    mastery: Mapping[str, MasteryRecord]
    theta: float
    cognitive_state: CognitiveState
    latencies: Tuple[float, ...] = ()
    accuracies: Tuple[bool, ...] = ()
    confidence: Mapping[str, Tuple[int, ...]] = field(default_factory=lambda: freeze_mapping({}))

    def mastery_values(self) -> Dict[str, float]:
        return {concept_id: record.value for concept_id, record in self.mastery.items()}


@dataclass(frozen=True)
class TransitionResult:
    state: LearnerState
    event: SessionEvent
    reward: float
    state_key: str
    next_state_key: str
    q_value: float
    retention_at_review: float
    previous_mastery: float

    @property
    def mastery_gain(self) -> float:
        return self.state.mastery[self.event.concept_id].value - self.previous_mastery


def initial_state(catalog: ItemCatalog, now: datetime, config: EngineConfig) -> LearnerState:
    """Documented defaults: catalog initial mastery and strength, reviewed at ``now``, theta 0."""
    mastery = {
        concept.concept_id: MasteryRecord(
            value=clamp_mastery(concept.initial_mastery, config.bkt),
            last_review=now,
            strength=max(config.retention.min_strength, concept.initial_strength),
        )
        for concept in catalog.concepts
    }
    return LearnerState(
        mastery=freeze_mapping(mastery),
        theta=0.0,
        cognitive_state=CognitiveState.NORMAL,
        confidence=freeze_mapping({}),
    )


def _require_finite(name: str, value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}.") from None
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be finite, got {value!r}.")
    return number


def validate_response(state: LearnerState, event: ResponseEvent) -> None:
    """Reject malformed input before anything is computed or committed."""
    if event.concept_id not in state.mastery:
        raise ValidationError(f"Unknown concept id '{event.concept_id}'.")
    if not isinstance(event.correct, bool):
        raise ValidationError(f"correct must be a boolean, got {event.correct!r}.")
    if _require_finite("latency_ms", event.latency_ms) < 0:
        raise ValidationError("latency_ms must be non-negative.")
    if _require_finite("estimated_time_sec", event.estimated_time_sec) < 0:
        raise ValidationError("estimated_time_sec must be non-negative.")
    _require_finite("difficulty", event.difficulty)
    if event.discrimination is not None and _require_finite("discrimination", event.discrimination) <= 0:
        raise ValidationError("discrimination must be positive.")
    if event.confidence is not None:
        low, high = CONFIDENCE_RANGE
        if isinstance(event.confidence, bool) or not isinstance(event.confidence, int):
            raise ValidationError(f"confidence must be an integer in {low}-{high}.")
        if not low <= event.confidence <= high:
            raise ValidationError(f"confidence must be in {low}-{high}, got {event.confidence}.")


def apply_response(
    state: LearnerState,
    event: ResponseEvent,
    policy: QLearningPolicy,
    config: EngineConfig,
) -> TransitionResult:
    """
    Compute the post-response learner state without side effects.

    The policy is only read: the returned ``q_value`` is what the caller
    should assign to ``(state_key, event.concept_id)`` on commit.
    """
    validate_response(state, event)

    record = state.mastery[event.concept_id]
    retention_at_review = retention(record.last_review, record.strength, event.timestamp, config.retention)
    new_record = MasteryRecord(
        value=bkt_update(record.value, event.correct, config.bkt),
        last_review=event.timestamp,
        strength=next_strength(record.strength, event.correct, retention_at_review, config.retention),
    )
    mastery = dict(state.mastery)
    mastery[event.concept_id] = new_record

    theta = update_ability(state.theta, event.difficulty, event.discrimination, event.correct, config.ability)

    latencies = push_window(state.latencies, float(event.latency_ms), config.windows.latency)
    accuracies = push_window(state.accuracies, event.correct, config.windows.accuracy)
    cognitive_state = classify_cognitive_state(latencies, accuracies, event.estimated_time_sec, config.cognitive)

    next_state = LearnerState(
        mastery=freeze_mapping(mastery),
        theta=theta,
        cognitive_state=cognitive_state,
        latencies=latencies,
        accuracies=accuracies,
        confidence=freeze_mapping(
            push_confidence(state.confidence, event.concept_id, event.confidence, config.windows.confidence)
        ),
    )

    state_key = discretize_state(state.mastery_values(), state.cognitive_state, config.policy)
    next_state_key = discretize_state(next_state.mastery_values(), cognitive_state, config.policy)
    reward = compute_reward(event.correct, record.value, new_record.value, cognitive_state, config.policy)

    return TransitionResult(
        state=next_state,
        event=event.to_session_event(),
        reward=reward,
        state_key=state_key,
        next_state_key=next_state_key,
        q_value=policy.target_value(state_key, event.concept_id, reward, next_state_key),
        retention_at_review=retention_at_review,
        previous_mastery=record.value,
    )
