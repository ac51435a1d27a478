# ABOUTME: Classifies the learner's cognitive state from the rolling latency and accuracy windows.
# ABOUTME: Heuristics run in priority order: fatigue, overload, frustration, else normal.

from __future__ import annotations

from typing import Sequence

from src.common.config import CognitiveParams
from src.common.schemas import CognitiveState

DEFAULT_COGNITIVE = CognitiveParams()


def is_fatigued(latencies: Sequence[float], accuracies: Sequence[bool], params: CognitiveParams) -> bool:
    if len(latencies) < params.fatigue_min_samples:
        return False
    recent = list(accuracies)[-params.fatigue_streak:]
    return len(recent) > 0 and not any(recent)


def is_overloaded(latencies: Sequence[float], expected_time_sec: float, params: CognitiveParams) -> bool:
    *earlier, latest = latencies
    if not earlier:
        return False
    baseline = sum(earlier) / len(earlier)
    return latest > baseline * params.overload_ratio and latest > expected_time_sec * 1000


def is_frustrated(latencies: Sequence[float], accuracies: Sequence[bool], params: CognitiveParams) -> bool:
    if not accuracies:
        return False
    return latencies[-1] < params.frustration_latency_ms and not accuracies[-1]


def classify_cognitive_state(
    latencies: Sequence[float],
    accuracies: Sequence[bool],
    expected_time_sec: float,
    params: CognitiveParams = DEFAULT_COGNITIVE,
) -> CognitiveState:
    """
    Infer the cognitive state after the latest response.

    Windows are chronological, oldest first. Fewer than ``min_samples``
    latencies always yields NORMAL.
    """
    if len(latencies) < params.min_samples:
        return CognitiveState.NORMAL
    if is_fatigued(latencies, accuracies, params):
        return CognitiveState.FATIGUE
    if is_overloaded(latencies, expected_time_sec, params):
        return CognitiveState.OVERLOAD
    if is_frustrated(latencies, accuracies, params):
        return CognitiveState.FRUSTRATION
    return CognitiveState.NORMAL
