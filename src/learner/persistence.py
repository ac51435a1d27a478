# ABOUTME: Persistence gateway that loads the learner snapshot at boot and rewrites it after each response.
# ABOUTME: Stores JSON atomically; decoding clamps loaded values back into their invariants.

from __future__ import annotations

import json
import math
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Tuple

from src.common.catalog import ItemCatalog
from src.common.config import EngineConfig
from src.common.errors import PersistenceError
from src.common.schemas import (
    SNAPSHOT_VERSION,
    CognitiveState,
    MasteryRecord,
    SessionEvent,
    freeze_mapping,
    from_iso,
)

from .bkt import clamp_mastery
from .irt import clamp_ability
from .ledger import SessionLedger
from .transition import CONFIDENCE_RANGE, LearnerState, initial_state


class SnapshotStore(Protocol):
    """Anything that can hand back the last snapshot payload and accept a new one."""

    def load(self) -> Optional[Dict]:
        ...

    def save(self, payload: Mapping) -> None:
        ...


class JsonSnapshotStore:
    """
    Single-file JSON snapshot store.

    Writes go to a temp file in the same directory and are moved into place,
    so a crash mid-write leaves the previous snapshot intact.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Optional[Dict]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Could not read snapshot {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise PersistenceError(f"Snapshot {self.path} is not a JSON object.")
        return payload

    def save(self, payload: Mapping) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=self.path.parent, suffix=".tmp", delete=False
            ) as f:
                tmp_name = f.name
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Could not write snapshot {self.path}: {exc}") from exc


class MemorySnapshotStore:
    """In-process store; keeps a JSON-encoded copy so saved payloads cannot be aliased."""

    def __init__(self, payload: Optional[Mapping] = None):
        self._encoded: Optional[str] = json.dumps(payload) if payload is not None else None
        self.saves = 0

    def load(self) -> Optional[Dict]:
        return json.loads(self._encoded) if self._encoded is not None else None

    def save(self, payload: Mapping) -> None:
        try:
            self._encoded = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Snapshot is not serializable: {exc}") from exc
        self.saves += 1


def _strength(raw, config: EngineConfig) -> float:
    strength = float(raw) if raw is not None else config.retention.default_strength
    if not math.isfinite(strength) or strength <= 0:
        strength = config.retention.default_strength
    return max(config.retention.min_strength, strength)


def _ratings(scores) -> Tuple[int, ...]:
    """Keep whole-number ratings inside the confidence scale; drop the rest."""
    low, high = CONFIDENCE_RANGE
    kept = []
    for score in scores:
        value = float(score)
        if value.is_integer() and low <= value <= high:
            kept.append(int(value))
    return tuple(kept)


@dataclass(frozen=True)
class RestoredSnapshot:
    state: LearnerState
    q_table: Dict[str, Dict[str, float]]
    ledger: SessionLedger


def decode_snapshot(
    payload: Mapping,
    catalog: ItemCatalog,
    config: EngineConfig,
    now: datetime,
) -> RestoredSnapshot:
    """
    Turn a persisted payload back into engine state.

    Concepts missing from the payload get catalog defaults; unknown concept ids
    are dropped; numbers are clamped into their invariant ranges. Rolling
    windows are rebuilt from the log suffix and the cognitive state restarts
    at NORMAL.
    """
    version = payload.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise PersistenceError(f"Unsupported snapshot version {version!r}.")

    defaults = initial_state(catalog, now, config)
    known = set(catalog.concept_ids())
    try:
        mastery = dict(defaults.mastery)
        for concept_id, raw in (payload.get("mastery") or {}).items():
            if concept_id not in known:
                continue
            mastery[concept_id] = MasteryRecord(
                value=clamp_mastery(float(raw["value"]), config.bkt),
                last_review=from_iso(raw.get("last_review")),
                strength=_strength(raw.get("strength"), config),
            )

        theta = clamp_ability(float(payload.get("theta", 0.0)), config.ability)

        q_table: Dict[str, Dict[str, float]] = {}
        for state_key, values in (payload.get("q_table") or {}).items():
            kept = {
                str(action): float(q)
                for action, q in values.items()
                if action in known and math.isfinite(float(q))
            }
            if kept:
                q_table[str(state_key)] = kept

        ledger = SessionLedger(
            SessionEvent.from_dict(raw)
            for raw in (payload.get("history") or [])
            if raw.get("concept_id") in known
        )

        confidence: Dict[str, Tuple[int, ...]] = {}
        for concept_id, scores in (payload.get("confidence") or {}).items():
            if concept_id in known:
                confidence[concept_id] = _ratings(scores)[-config.windows.confidence:]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise PersistenceError(f"Malformed snapshot: {exc}") from exc

    latencies, accuracies = ledger.rolling_windows(config.windows.latency, config.windows.accuracy)
    state = LearnerState(
        mastery=freeze_mapping(mastery),
        theta=theta,
        cognitive_state=CognitiveState.NORMAL,
        latencies=latencies,
        accuracies=accuracies,
        confidence=freeze_mapping(confidence),
    )
    return RestoredSnapshot(state=state, q_table=q_table, ledger=ledger)
