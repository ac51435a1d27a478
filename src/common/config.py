# ABOUTME: Declares tunable engine parameters and loads them from YAML plus environment overrides.
# ABOUTME: Defaults reproduce the documented BKT, 2PL, retention, classifier, and Q-learning constants.

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Mapping, Optional

import yaml

from .errors import ValidationError

CONFIG_ENV = "COGNIPATH_CONFIG"
SNAPSHOT_ENV = "COGNIPATH_SNAPSHOT"
LOG_LEVEL_ENV = "COGNIPATH_LOG_LEVEL"


@dataclass(frozen=True)
class BKTParams:
    slip: float = 0.10
    guess: float = 0.20
    learn: float = 0.15
    floor: float = 0.01
    ceiling: float = 0.99


@dataclass(frozen=True)
class AbilityParams:
    damping: float = 0.1
    lower: float = -4.0
    upper: float = 4.0
    default_discrimination: float = 1.0


@dataclass(frozen=True)
class RetentionParams:
    default_strength: float = 2.0  # days
    growth: float = 1.5
    decay: float = 0.4
    min_strength: float = 1.0
    forecast_days: int = 7


@dataclass(frozen=True)
class CognitiveParams:
    min_samples: int = 3
    fatigue_min_samples: int = 4
    fatigue_streak: int = 3
    overload_ratio: float = 2.0
    frustration_latency_ms: float = 2000.0


@dataclass(frozen=True)
class PolicyParams:
    learning_rate: float = 0.1  # alpha
    discount: float = 0.9  # gamma
    epsilon: float = 0.1
    low_threshold: float = 0.4
    high_threshold: float = 0.8
    correct_reward: float = 1.0
    incorrect_reward: float = -0.5
    mastery_gain_weight: float = 10.0
    cognitive_penalty: float = -0.5
    seed: Optional[int] = None


@dataclass(frozen=True)
class WindowParams:
    latency: int = 5
    accuracy: int = 5
    confidence: int = 10


@dataclass(frozen=True)
class PersistenceParams:
    snapshot_path: str = "data/learner_snapshot.json"
    catalog_path: Optional[str] = None


@dataclass(frozen=True)
class EngineConfig:
    """Top-level configuration; each section maps to one YAML mapping."""

    bkt: BKTParams = field(default_factory=BKTParams)
    ability: AbilityParams = field(default_factory=AbilityParams)
    retention: RetentionParams = field(default_factory=RetentionParams)
    cognitive: CognitiveParams = field(default_factory=CognitiveParams)
    policy: PolicyParams = field(default_factory=PolicyParams)
    windows: WindowParams = field(default_factory=WindowParams)
    persistence: PersistenceParams = field(default_factory=PersistenceParams)


def load_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Build an EngineConfig from a YAML file.

    ``path`` falls back to the ``COGNIPATH_CONFIG`` environment variable; with
    neither set the documented defaults are used. ``COGNIPATH_SNAPSHOT``
    overrides ``persistence.snapshot_path`` in every case.
    """

    if path is None and os.environ.get(CONFIG_ENV):
        path = Path(os.environ[CONFIG_ENV])

    cfg: Mapping = {}
    if path is not None:
        with open(path) as f:
            cfg = yaml.safe_load(f) or {}
        if not isinstance(cfg, Mapping):
            raise ValidationError(f"Config {path} must contain a mapping at the top level.")

    config = config_from_dict(cfg)
    snapshot_override = os.environ.get(SNAPSHOT_ENV)
    if snapshot_override:
        config = replace(config, persistence=replace(config.persistence, snapshot_path=snapshot_override))
    return config


def config_from_dict(cfg: Mapping) -> EngineConfig:
    config = EngineConfig()
    known_sections = {f.name: f for f in fields(EngineConfig)}
    overrides = {}
    for section, values in cfg.items():
        if section not in known_sections:
            raise ValidationError(f"Unknown config section '{section}'.")
        current = getattr(config, section)
        overrides[section] = _apply_section(section, current, values or {})
    return replace(config, **overrides)


def _apply_section(name: str, current, values: Mapping):
    if not isinstance(values, Mapping):
        raise ValidationError(f"Config section '{name}' must be a mapping.")
    allowed = {f.name for f in fields(current)}
    unknown = set(values) - allowed
    if unknown:
        raise ValidationError(f"Unknown keys in config section '{name}': {sorted(unknown)}")
    return replace(current, **values)
