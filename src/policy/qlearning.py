# ABOUTME: Implements the tabular Q-learning policy that picks the next concept to practice.
# ABOUTME: Discretizes mastery plus cognitive state into keys and balances exploration epsilon-greedily.

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from src.common.config import PolicyParams
from src.common.schemas import CognitiveState, freeze_mapping

DEFAULT_POLICY = PolicyParams()
KEY_SEPARATOR = "_"

EXPLORE = "explore"
EXPLOIT = "exploit"
FALLBACK = "fallback"


@dataclass(frozen=True)
class PolicyDecision:
    """Chosen action with the metadata needed to explain it."""

    concept_id: str
    state_key: str
    q_value: float
    source: str  # explore, exploit, or fallback

    @property
    def is_exploration(self) -> bool:
        return self.source != EXPLOIT


def bucket_mastery(value: float, params: PolicyParams = DEFAULT_POLICY) -> str:
    if value < params.low_threshold:
        return "L"
    if value < params.high_threshold:
        return "M"
    return "H"


def discretize_state(
    mastery: Mapping[str, float],
    cognitive_state: CognitiveState,
    params: PolicyParams = DEFAULT_POLICY,
) -> str:
    """
    Encode mastery buckets and the cognitive label as one state key.

    Concept ids are sorted first, so the key never depends on the mapping's
    iteration order. Example: ``L_M_H_L_normal``.
    """
    buckets = [bucket_mastery(mastery[concept_id], params) for concept_id in sorted(mastery)]
    return KEY_SEPARATOR.join(buckets + [CognitiveState(cognitive_state).value])


def compute_reward(
    correct: bool,
    old_mastery: float,
    new_mastery: float,
    cognitive_state: CognitiveState,
    params: PolicyParams = DEFAULT_POLICY,
) -> float:
    """r = outcome + weight * mastery gain + penalty when the learner is not in a normal state."""
    outcome = params.correct_reward if correct else params.incorrect_reward
    gain = params.mastery_gain_weight * (new_mastery - old_mastery)
    penalty = params.cognitive_penalty if cognitive_state != CognitiveState.NORMAL else 0.0
    return outcome + gain + penalty


def state_space_bound(n_concepts: int, n_cognitive_states: int = len(CognitiveState)) -> int:
    """Upper bound on distinct state keys: 3 buckets per concept times the cognitive labels."""
    return 3**n_concepts * n_cognitive_states


class QLearningPolicy:
    """
    Sparse tabular Q-learning over (state key, concept id) pairs.

    Entries are created lazily and unseen pairs read as 0. The table is never
    evicted; its size is bounded by ``state_space_bound``. The random source is
    injected so callers can force deterministic branches.
    """

    def __init__(
        self,
        actions: Sequence[str],
        params: PolicyParams = DEFAULT_POLICY,
        rng: Optional[np.random.Generator] = None,
        table: Optional[Mapping[str, Mapping[str, float]]] = None,
    ):
        if not actions:
            raise ValueError("Policy needs at least one action.")
        self.actions: Tuple[str, ...] = tuple(actions)
        self.params = params
        self.rng = rng if rng is not None else np.random.default_rng(params.seed)
        self._table: Dict[str, Dict[str, float]] = {}
        for state_key, values in (table or {}).items():
            self._table[state_key] = {action: float(q) for action, q in values.items()}
        self.n_updates = 0

    def q_value(self, state_key: str, action: str) -> float:
        return self._table.get(state_key, {}).get(action, 0.0)

    def has_entries(self, state_key: str) -> bool:
        return bool(self._table.get(state_key))

    def max_q(self, state_key: str) -> float:
        """Max over recorded entries of ``state_key``; 0 when none are recorded."""
        values = self._table.get(state_key)
        return max(values.values()) if values else 0.0

    def best_action(self, state_key: str) -> Tuple[str, float]:
        """Greedy action; ties go to the first action in enumeration order."""
        best = self.actions[0]
        best_q = float("-inf")
        for action in self.actions:
            q = self.q_value(state_key, action)
            if q > best_q:
                best_q = q
                best = action
        return best, best_q

    def _random_action(self) -> str:
        return self.actions[int(self.rng.integers(len(self.actions)))]

    def select_action(self, state_key: str) -> PolicyDecision:
        """Epsilon-greedy choice; a state with no recorded entries gets a uniform random action."""
        if self.rng.random() < self.params.epsilon:
            action = self._random_action()
            return PolicyDecision(action, state_key, self.q_value(state_key, action), EXPLORE)
        if not self.has_entries(state_key):
            action = self._random_action()
            return PolicyDecision(action, state_key, 0.0, FALLBACK)
        action, q = self.best_action(state_key)
        return PolicyDecision(action, state_key, q, EXPLOIT)

    def target_value(self, state_key: str, action: str, reward: float, next_state_key: str) -> float:
        """Q(s,a) + lr * (r + gamma * maxQ(s') - Q(s,a)), computed without touching the table."""
        current = self.q_value(state_key, action)
        td_target = reward + self.params.discount * self.max_q(next_state_key)
        return current + self.params.learning_rate * (td_target - current)

    def assign(self, state_key: str, action: str, value: float) -> None:
        self._table.setdefault(state_key, {})[action] = float(value)
        self.n_updates += 1

    def update(self, state_key: str, action: str, reward: float, next_state_key: str) -> float:
        value = self.target_value(state_key, action, reward, next_state_key)
        self.assign(state_key, action, value)
        return value

    def table_view(self) -> Mapping[str, Mapping[str, float]]:
        """Read-only deep copy of the table."""
        return freeze_mapping({key: freeze_mapping(values) for key, values in self._table.items()})

    def __len__(self) -> int:
        return len(self._table)
