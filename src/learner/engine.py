# ABOUTME: Controller that owns the learner state, the Q-learning policy, and the session ledger.
# ABOUTME: Runs the serialized record-response transaction and serves recommendations and snapshots.

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

import numpy as np
from loguru import logger

from src.common.catalog import ItemCatalog, default_catalog
from src.common.config import EngineConfig
from src.common.errors import PersistenceError, ValidationError
from src.common.schemas import Item, LearnerSnapshot, utc_now
from src.policy.qlearning import PolicyDecision, QLearningPolicy, discretize_state

from .ledger import SessionLedger
from .persistence import SnapshotStore, decode_snapshot
from .transition import LearnerState, ResponseEvent, TransitionResult, apply_response, initial_state


class LearnerEngine:
    """
    Single-learner modeling and policy engine.

    Exactly one ``record_response`` runs at a time. It computes the whole
    transition first through the pure ``apply_response`` and only then commits
    it, so a rejected call leaves every piece of state untouched. Readers get
    immutable ``LearnerSnapshot`` values, never references to internal state.
    """

    def __init__(
        self,
        catalog: Optional[ItemCatalog] = None,
        config: Optional[EngineConfig] = None,
        store: Optional[SnapshotStore] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.catalog = catalog or default_catalog()
        self.config = config or EngineConfig()
        self.store = store
        self.clock = clock
        self.rng = rng if rng is not None else np.random.default_rng(self.config.policy.seed)
        self.policy = QLearningPolicy(self.catalog.action_ids(), self.config.policy, rng=self.rng)
        self.ledger = SessionLedger()
        self._state = initial_state(self.catalog, self.clock(), self.config)
        self.last_transition: Optional[TransitionResult] = None
        self.last_persistence_error: Optional[PersistenceError] = None
        self._restore()

    def _restore(self) -> None:
        if self.store is None:
            return
        try:
            payload = self.store.load()
            if payload is None:
                logger.info("No learner snapshot found; starting from defaults.")
                return
            restored = decode_snapshot(payload, self.catalog, self.config, self.clock())
        except PersistenceError as exc:
            logger.warning(f"Ignoring unreadable learner snapshot, using defaults: {exc}")
            self.last_persistence_error = exc
            return
        self._state = restored.state
        self.policy = QLearningPolicy(
            self.catalog.action_ids(), self.config.policy, rng=self.rng, table=restored.q_table
        )
        self.ledger = restored.ledger
        logger.info(
            f"Restored learner snapshot: {len(self.ledger)} events, {len(self.policy)} policy states."
        )

    @property
    def state(self) -> LearnerState:
        return self._state

    def record_response(
        self,
        concept_id: str,
        correct: bool,
        latency_ms: float,
        estimated_time_sec: float,
        difficulty: float,
        discrimination: Optional[float],
        confidence: Optional[int] = None,
    ) -> LearnerSnapshot:
        """Apply one response and return the post-transaction snapshot."""
        event = ResponseEvent(
            concept_id=concept_id,
            correct=correct,
            latency_ms=latency_ms,
            estimated_time_sec=estimated_time_sec,
            difficulty=difficulty,
            discrimination=discrimination,
            timestamp=self.clock(),
            confidence=confidence,
        )
        result = apply_response(self._state, event, self.policy, self.config)

        self._state = result.state
        self.policy.assign(result.state_key, concept_id, result.q_value)
        self.ledger.append(result.event)
        self.last_transition = result
        logger.debug(
            f"{concept_id} correct={correct} reward={result.reward:.3f} "
            f"{result.state_key} -> {result.next_state_key} Q={result.q_value:.4f}"
        )

        snapshot = self.get_snapshot()
        self._persist(snapshot)
        return snapshot

    def record_item_response(
        self,
        item_id: str,
        selected_index: int,
        latency_ms: float,
        confidence: Optional[int] = None,
    ) -> LearnerSnapshot:
        """Resolve ``item_id`` in the catalog, grade the selection, and record it."""
        item = self.catalog.get_item(item_id)
        if not 0 <= selected_index < len(item.options):
            raise ValidationError(
                f"Option {selected_index} is outside item '{item_id}' ({len(item.options)} options)."
            )
        return self.record_response(
            concept_id=item.concept_id,
            correct=item.is_correct(selected_index),
            latency_ms=latency_ms,
            estimated_time_sec=item.estimated_time_sec,
            difficulty=item.difficulty,
            discrimination=item.discrimination,
            confidence=confidence,
        )

    def current_state_key(self) -> str:
        return discretize_state(self._state.mastery_values(), self._state.cognitive_state, self.config.policy)

    def decide_next(self) -> PolicyDecision:
        return self.policy.select_action(self.current_state_key())

    def recommend_next(self) -> str:
        """Concept id to practice next. Never fails."""
        return self.decide_next().concept_id

    def next_item(self) -> Item:
        return self.catalog.select_item(self.recommend_next(), self._state.theta, self.rng)

    def get_snapshot(self) -> LearnerSnapshot:
        state = self._state
        return LearnerSnapshot(
            mastery=state.mastery,
            theta=state.theta,
            cognitive_state=state.cognitive_state,
            latencies=state.latencies,
            accuracies=state.accuracies,
            confidence=state.confidence,
            q_table=self.policy.table_view(),
            history=self.ledger.events,
        )

    def _persist(self, snapshot: LearnerSnapshot) -> None:
        if self.store is None:
            return
        try:
            self.store.save(snapshot.to_dict())
        except PersistenceError as exc:
            # in-memory state stays authoritative; the next transaction rewrites everything
            logger.warning(f"Snapshot write failed, keeping in-memory state: {exc}")
            self.last_persistence_error = exc
            return
        self.last_persistence_error = None
