# ABOUTME: Keeps the append-only session event log and the bounded FIFO buffers derived from it.
# ABOUTME: Rolling windows feed the cognitive classifier; confidence buffers feed reporting.

from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from src.common.schemas import SessionEvent


def push_window(window: Tuple, value, size: int) -> Tuple:
    """Append ``value`` and evict the oldest entries beyond ``size``."""
    return (tuple(window) + (value,))[-size:] if size > 0 else ()


def push_confidence(
    history: Mapping[str, Tuple[int, ...]],
    concept_id: str,
    rating: Optional[int],
    size: int,
) -> Dict[str, Tuple[int, ...]]:
    """Return a new per-concept history with ``rating`` appended; None leaves it unchanged."""
    updated = dict(history)
    if rating is not None:
        updated[concept_id] = push_window(updated.get(concept_id, ()), int(rating), size)
    return updated


class SessionLedger:
    """
    Append-only ordered log of SessionEvents.

    The engine never reads arbitrary history; it only asks for the bounded
    suffix views below.
    """

    def __init__(self, events: Iterable[SessionEvent] = ()):
        self._events: List[SessionEvent] = list(events)

    def append(self, event: SessionEvent) -> None:
        self._events.append(event)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> Tuple[SessionEvent, ...]:
        return tuple(self._events)

    def recent(self, count: int) -> Tuple[SessionEvent, ...]:
        if count <= 0:
            return ()
        return tuple(self._events[-count:])

    def rolling_windows(self, latency_size: int, accuracy_size: int) -> Tuple[Tuple[float, ...], Tuple[bool, ...]]:
        """Latency and accuracy windows rebuilt from the log suffix, oldest first."""
        latencies = tuple(event.latency_ms for event in self.recent(latency_size))
        accuracies = tuple(event.correct for event in self.recent(accuracy_size))
        return latencies, accuracies
