# ABOUTME: Builds reporting tables from learner snapshots for dashboards and the CLI.
# ABOUTME: Covers mastery summaries, retention forecasts, confidence gaps, policy summaries, and KPIs.

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Mapping, Optional

import pandas as pd

from src.common.catalog import ItemCatalog
from src.common.config import RetentionParams
from src.common.schemas import LearnerSnapshot, MasteryRecord, SessionEvent

from .retention import DEFAULT_RETENTION, elapsed_days, forecast_retention, retention

MASTERED_THRESHOLD = 0.85
OVERCONFIDENCE_GAP = 0.15
MAX_CONFIDENCE = 5


@dataclass
class OverviewKpis:
    mastered_count: int
    average_mastery: float
    theta: float
    cognitive_state: str
    total_responses: int
    recent_drills: List[SessionEvent]
    next_unmastered: Optional[str]


def mastery_summary(
    snapshot: LearnerSnapshot,
    catalog: ItemCatalog,
    now: datetime,
    params: RetentionParams = DEFAULT_RETENTION,
) -> pd.DataFrame:
    """One row per concept with mastery, stability, current retention and attempt counts."""
    attempts: Dict[str, int] = {}
    correct: Dict[str, int] = {}
    for event in snapshot.history:
        attempts[event.concept_id] = attempts.get(event.concept_id, 0) + 1
        correct[event.concept_id] = correct.get(event.concept_id, 0) + int(event.correct)

    rows = []
    for concept in catalog.concepts:
        record = snapshot.mastery[concept.concept_id]
        rows.append(
            {
                "concept_id": concept.concept_id,
                "label": concept.label,
                "mastery": record.value,
                "strength_days": record.strength,
                "retention": retention(record.last_review, record.strength, now, params),
                "days_since_review": elapsed_days(record.last_review, now) if record.last_review else float("nan"),
                "attempts": attempts.get(concept.concept_id, 0),
                "accuracy": (
                    correct.get(concept.concept_id, 0) / attempts[concept.concept_id]
                    if attempts.get(concept.concept_id)
                    else float("nan")
                ),
            }
        )
    return pd.DataFrame(rows)


def retention_forecast(
    mastery: Mapping[str, MasteryRecord],
    days: int = DEFAULT_RETENTION.forecast_days,
    params: RetentionParams = DEFAULT_RETENTION,
) -> pd.DataFrame:
    """Long table (concept_id, day, retention) of projected recall-weighted mastery."""
    rows = []
    for concept_id in sorted(mastery):
        for day, value in enumerate(forecast_retention(mastery[concept_id], days, params)):
            rows.append({"concept_id": concept_id, "day": day, "retention": value})
    return pd.DataFrame(rows, columns=["concept_id", "day", "retention"])


def simulate_retention(
    snapshot: LearnerSnapshot,
    elapsed: float,
    overrides: Optional[Mapping[str, float]] = None,
    params: RetentionParams = DEFAULT_RETENTION,
) -> pd.DataFrame:
    """
    What-if view: apply hypothetical mastery values and a time lapse in days.

    Works on a snapshot copy only; engine state is never touched.
    """
    overrides = overrides or {}
    rows = []
    for concept_id in sorted(snapshot.mastery):
        record = snapshot.mastery[concept_id]
        base = float(overrides.get(concept_id, record.value))
        strength = record.strength if record.strength and record.strength > 0 else params.default_strength
        rows.append(
            {
                "concept_id": concept_id,
                "base_mastery": base,
                "projected": math.exp(-max(0.0, elapsed) / strength) * base,
            }
        )
    return pd.DataFrame(rows)


def confidence_gap(snapshot: LearnerSnapshot, catalog: ItemCatalog) -> pd.DataFrame:
    """
    Compare perceived mastery (mean confidence / 5) with modeled mastery.

    ``overconfident`` flags gaps above 0.15; concepts without ratings report
    zero perceived mastery.
    """
    rows = []
    for concept in catalog.concepts:
        scores = snapshot.confidence.get(concept.concept_id, ())
        mean_confidence = sum(scores) / len(scores) if scores else 0.0
        perceived = mean_confidence / MAX_CONFIDENCE
        actual = snapshot.mastery[concept.concept_id].value
        gap = perceived - actual
        rows.append(
            {
                "concept_id": concept.concept_id,
                "mean_confidence": mean_confidence,
                "perceived": perceived,
                "actual": actual,
                "gap": gap,
                "overconfident": gap > OVERCONFIDENCE_GAP,
            }
        )
    return pd.DataFrame(rows)


def policy_summary(snapshot: LearnerSnapshot, catalog: ItemCatalog) -> pd.DataFrame:
    """Mean Q-value per concept across visited states (unrecorded pairs count as 0)."""
    states = list(snapshot.q_table.values())
    rows = []
    for concept_id in catalog.concept_ids():
        values = [state.get(concept_id, 0.0) for state in states]
        rows.append(
            {
                "concept_id": concept_id,
                "mean_q": sum(values) / len(values) if values else 0.0,
                "max_q": max(values) if values else 0.0,
                "visited_states": sum(1 for state in states if concept_id in state),
            }
        )
    return pd.DataFrame(rows)


def overview_kpis(snapshot: LearnerSnapshot, catalog: ItemCatalog, recent: int = 5) -> OverviewKpis:
    values = snapshot.mastery_values()
    next_unmastered = next(
        (c.concept_id for c in catalog.concepts if values[c.concept_id] < MASTERED_THRESHOLD),
        None,
    )
    return OverviewKpis(
        mastered_count=sum(1 for v in values.values() if v >= MASTERED_THRESHOLD),
        average_mastery=sum(values.values()) / len(values) if values else 0.0,
        theta=snapshot.theta,
        cognitive_state=snapshot.cognitive_state.value,
        total_responses=len(snapshot.history),
        recent_drills=list(reversed(snapshot.history[-recent:])) if recent > 0 else [],
        next_unmastered=next_unmastered,
    )


def history_frame(snapshot: LearnerSnapshot) -> pd.DataFrame:
    """Session log as a DataFrame, oldest first."""
    columns = ["concept_id", "correct", "latency_ms", "confidence", "timestamp"]
    if not snapshot.history:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame([event.to_dict() for event in snapshot.history], columns=columns)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df
