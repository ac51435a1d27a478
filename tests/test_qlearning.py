# ABOUTME: Unit tests for the tabular Q-learning policy.
# ABOUTME: Verifies state keys, reward shaping, convergence, and epsilon-greedy selection.

import unittest

import numpy as np
import pytest

from src.common.config import PolicyParams
from src.common.schemas import CognitiveState
from src.policy.qlearning import (
    EXPLOIT,
    EXPLORE,
    FALLBACK,
    QLearningPolicy,
    bucket_mastery,
    compute_reward,
    discretize_state,
    state_space_bound,
)

GREEDY = PolicyParams(epsilon=0.0)


class TestStateKeys(unittest.TestCase):
    def test_buckets_use_half_open_thresholds(self):
        self.assertEqual(bucket_mastery(0.39), "L")
        self.assertEqual(bucket_mastery(0.4), "M")
        self.assertEqual(bucket_mastery(0.79), "M")
        self.assertEqual(bucket_mastery(0.8), "H")

    def test_key_sorts_concept_ids(self):
        key = discretize_state({"b": 0.5, "a": 0.1, "c": 0.9}, CognitiveState.NORMAL)
        self.assertEqual(key, "L_M_H_normal")

    def test_key_is_independent_of_mapping_order(self):
        forward = {"algebra": 0.9, "geometry": 0.2, "stats": 0.5}
        backward = dict(reversed(list(forward.items())))
        self.assertEqual(
            discretize_state(forward, CognitiveState.FATIGUE),
            discretize_state(backward, CognitiveState.FATIGUE),
        )

    def test_cognitive_label_is_last(self):
        key = discretize_state({"a": 0.1}, CognitiveState.FRUSTRATION)
        self.assertEqual(key, "L_frustration")

    def test_state_space_bound(self):
        self.assertEqual(state_space_bound(4), 3**4 * 4)


def test_reward_for_correct_answer_with_gain():
    assert compute_reward(True, 0.2, 0.6, CognitiveState.NORMAL) == pytest.approx(5.0)


def test_reward_penalizes_non_normal_state():
    reward = compute_reward(False, 0.5, 0.3, CognitiveState.FATIGUE)
    assert reward == pytest.approx(-0.5 - 2.0 - 0.5)


def test_update_converges_to_reward_when_next_state_is_unseen():
    policy = QLearningPolicy(["a", "b"], GREEDY, rng=np.random.default_rng(0))
    for _ in range(200):
        policy.update("s", "a", 1.0, "terminal")
    assert policy.q_value("s", "a") == pytest.approx(1.0, abs=1e-3)


def test_self_loop_converges_to_discounted_return():
    policy = QLearningPolicy(["a"], GREEDY, rng=np.random.default_rng(0))
    for _ in range(2000):
        policy.update("s", "a", 1.0, "s")
    # fixed point of q = q + lr (r + gamma q - q)
    assert policy.q_value("s", "a") == pytest.approx(1.0 / (1 - 0.9), abs=1e-3)


def test_single_update_value():
    policy = QLearningPolicy(["a", "b"], GREEDY)
    policy.assign("next", "b", 2.0)
    value = policy.update("s", "a", 1.0, "next")
    assert value == pytest.approx(0.1 * (1.0 + 0.9 * 2.0))


def test_max_q_covers_recorded_entries_only():
    policy = QLearningPolicy(["a", "b"], GREEDY)
    assert policy.max_q("s") == 0.0
    policy.assign("s", "a", -1.0)
    assert policy.max_q("s") == -1.0


def test_target_value_does_not_touch_table():
    policy = QLearningPolicy(["a"], GREEDY)
    policy.target_value("s", "a", 3.0, "s2")
    assert len(policy) == 0
    assert policy.n_updates == 0


def test_greedy_selection_is_deterministic():
    policy = QLearningPolicy(["a", "b", "c"], GREEDY, rng=np.random.default_rng(3))
    policy.assign("s", "b", 2.0)
    policy.assign("s", "c", 1.0)
    decisions = [policy.select_action("s") for _ in range(20)]
    assert {d.concept_id for d in decisions} == {"b"}
    assert all(d.source == EXPLOIT for d in decisions)
    assert decisions[0].q_value == 2.0


def test_ties_go_to_first_action():
    policy = QLearningPolicy(["a", "b", "c"], GREEDY)
    policy.assign("s", "c", 1.0)
    policy.assign("s", "b", 1.0)
    assert policy.best_action("s") == ("b", 1.0)


def test_unrecorded_actions_read_as_zero_during_exploitation():
    policy = QLearningPolicy(["a", "b"], GREEDY)
    policy.assign("s", "b", -2.0)
    decision = policy.select_action("s")
    assert decision.concept_id == "a"
    assert decision.q_value == 0.0


def test_unknown_state_falls_back_to_random_action():
    policy = QLearningPolicy(["a", "b", "c"], GREEDY, rng=np.random.default_rng(5))
    decision = policy.select_action("never-seen")
    assert decision.source == FALLBACK
    assert decision.concept_id in {"a", "b", "c"}
    assert decision.is_exploration


def test_full_epsilon_always_explores():
    policy = QLearningPolicy(["a", "b"], PolicyParams(epsilon=1.0), rng=np.random.default_rng(1))
    policy.assign("s", "a", 10.0)
    decisions = [policy.select_action("s") for _ in range(50)]
    assert all(d.source == EXPLORE for d in decisions)
    assert {d.concept_id for d in decisions} == {"a", "b"}


def test_seeded_policies_make_the_same_choices():
    first = QLearningPolicy(["a", "b", "c"], PolicyParams(epsilon=0.5), rng=np.random.default_rng(11))
    second = QLearningPolicy(["a", "b", "c"], PolicyParams(epsilon=0.5), rng=np.random.default_rng(11))
    assert [first.select_action("s") for _ in range(30)] == [second.select_action("s") for _ in range(30)]


def test_table_view_is_read_only_copy():
    policy = QLearningPolicy(["a"], GREEDY)
    policy.assign("s", "a", 1.0)
    view = policy.table_view()
    with pytest.raises(TypeError):
        view["s"]["a"] = 5.0
    with pytest.raises(TypeError):
        view["t"] = {}
    policy.assign("s", "a", 2.0)
    assert view["s"]["a"] == 1.0


def test_policy_requires_actions():
    with pytest.raises(ValueError):
        QLearningPolicy([], GREEDY)


def test_initial_table_is_copied():
    table = {"s": {"a": 1.5}}
    policy = QLearningPolicy(["a"], GREEDY, table=table)
    table["s"]["a"] = 9.0
    assert policy.q_value("s", "a") == 1.5
