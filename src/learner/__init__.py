# ABOUTME: Groups the learner model: retention, BKT, 2PL ability, cognitive state, and the engine.
# ABOUTME: Re-exports the engine controller, the pure transition function, and snapshot stores.

from .engine import LearnerEngine
from .persistence import JsonSnapshotStore, MemorySnapshotStore
from .transition import LearnerState, ResponseEvent, apply_response

__all__ = [
    "JsonSnapshotStore",
    "LearnerEngine",
    "LearnerState",
    "MemorySnapshotStore",
    "ResponseEvent",
    "apply_response",
]
