# ABOUTME: Exposes the tabular Q-learning recommendation policy.
# ABOUTME: Groups state discretization, reward shaping, and epsilon-greedy selection.

from .qlearning import PolicyDecision, QLearningPolicy, compute_reward, discretize_state

__all__ = [
    "PolicyDecision",
    "QLearningPolicy",
    "compute_reward",
    "discretize_state",
]
