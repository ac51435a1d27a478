# ABOUTME: Defines canonical data structures shared by the learner model and the policy.
# ABOUTME: Centralizes catalog, mastery, event, and read-only snapshot definitions.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


class CognitiveState(str, Enum):
    """Discrete learner state inferred from recent latency and accuracy."""

    NORMAL = "normal"
    FATIGUE = "fatigue"
    OVERLOAD = "overload"
    FRUSTRATION = "frustration"


@dataclass(frozen=True)
class Concept:
    """Practice concept; identity is ``concept_id``, ``label`` is display-only."""

    concept_id: str
    label: str
    initial_mastery: float = 0.1
    initial_strength: float = 2.0


@dataclass(frozen=True)
class Item:
    """Question item with fixed 2PL parameters."""

    item_id: str
    concept_id: str
    text: str
    options: Tuple[str, ...]
    correct_index: int
    difficulty: float  # beta
    discrimination: float = 1.0  # alpha
    estimated_time_sec: float = 15.0

    def is_correct(self, selected_index: int) -> bool:
        return selected_index == self.correct_index


@dataclass(frozen=True)
class Prerequisite:
    """Roadmap edge between two concepts."""

    source: str
    target: str
    weight: float


@dataclass(frozen=True)
class MasteryRecord:
    """Per-concept mastery probability plus spaced-repetition stability."""

    value: float
    last_review: Optional[datetime]
    strength: float

    def to_dict(self) -> Dict:
        return {
            "value": self.value,
            "last_review": to_iso(self.last_review),
            "strength": self.strength,
        }


@dataclass(frozen=True)
class SessionEvent:
    """One recorded response. Immutable once appended to the ledger."""

    concept_id: str
    correct: bool
    latency_ms: float
    timestamp: datetime
    confidence: Optional[int] = None

    def to_dict(self) -> Dict:
        return {
            "concept_id": self.concept_id,
            "correct": self.correct,
            "latency_ms": self.latency_ms,
            "confidence": self.confidence,
            "timestamp": to_iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> "SessionEvent":
        confidence = data.get("confidence")
        return cls(
            concept_id=str(data["concept_id"]),
            correct=bool(data["correct"]),
            latency_ms=float(data["latency_ms"]),
            confidence=None if confidence is None else int(confidence),
            timestamp=from_iso(data["timestamp"]),
        )


@dataclass(frozen=True)
class LearnerSnapshot:
    """Read-only view of the whole learner profile at one point in time."""

    mastery: Mapping[str, MasteryRecord]
    theta: float
    cognitive_state: CognitiveState
    latencies: Tuple[float, ...]
    accuracies: Tuple[bool, ...]
    confidence: Mapping[str, Tuple[int, ...]]
    q_table: Mapping[str, Mapping[str, float]]
    history: Tuple[SessionEvent, ...] = field(default_factory=tuple)

    def mastery_values(self) -> Dict[str, float]:
        return {concept_id: record.value for concept_id, record in self.mastery.items()}

    def to_dict(self) -> Dict:
        """Serialize to the persisted snapshot layout."""
        return {
            "version": SNAPSHOT_VERSION,
            "mastery": {cid: record.to_dict() for cid, record in self.mastery.items()},
            "theta": self.theta,
            "q_table": {key: dict(values) for key, values in self.q_table.items()},
            "history": [event.to_dict() for event in self.history],
            "confidence": {cid: list(scores) for cid, scores in self.confidence.items()},
        }


SNAPSHOT_VERSION = 1


def freeze_mapping(values: Mapping) -> Mapping:
    return MappingProxyType(dict(values))


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
