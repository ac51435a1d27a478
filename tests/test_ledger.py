# ABOUTME: Tests the append-only session ledger and the bounded FIFO helpers.
# ABOUTME: Ensures windows evict oldest first and confidence buffers stay per concept.

from datetime import datetime, timedelta, timezone

from src.common.schemas import SessionEvent
from src.learner.ledger import SessionLedger, push_confidence, push_window

T0 = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _event(i, correct=True):
    return SessionEvent("algebra", correct, 1000.0 * (i + 1), T0 + timedelta(minutes=i))


def test_push_window_evicts_oldest():
    window = ()
    for value in range(7):
        window = push_window(window, value, 5)
    assert window == (2, 3, 4, 5, 6)


def test_push_window_with_zero_size():
    assert push_window((1, 2), 3, 0) == ()


def test_push_confidence_appends_per_concept():
    history = push_confidence({}, "algebra", 4, 3)
    history = push_confidence(history, "geometry", 2, 3)
    for rating in (5, 1, 3):
        history = push_confidence(history, "algebra", rating, 3)
    assert history == {"algebra": (5, 1, 3), "geometry": (2,)}


def test_push_confidence_ignores_missing_rating():
    original = {"algebra": (3,)}
    updated = push_confidence(original, "algebra", None, 10)
    assert updated == original
    assert updated is not original


def test_ledger_keeps_order_and_is_append_only():
    ledger = SessionLedger()
    for i in range(4):
        ledger.append(_event(i))
    events = ledger.events
    assert len(ledger) == 4
    assert [e.latency_ms for e in events] == [1000.0, 2000.0, 3000.0, 4000.0]
    ledger.append(_event(4))
    assert len(events) == 4


def test_recent_returns_suffix():
    ledger = SessionLedger(_event(i) for i in range(6))
    assert [e.latency_ms for e in ledger.recent(2)] == [5000.0, 6000.0]
    assert ledger.recent(0) == ()
    assert len(ledger.recent(100)) == 6


def test_rolling_windows_rebuilt_from_suffix():
    ledger = SessionLedger(_event(i, correct=i % 2 == 0) for i in range(8))
    latencies, accuracies = ledger.rolling_windows(5, 3)
    assert latencies == (4000.0, 5000.0, 6000.0, 7000.0, 8000.0)
    assert accuracies == (False, True, False)
