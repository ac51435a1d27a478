# ABOUTME: Makes the shared common package importable across the learner and policy packages.
# ABOUTME: Re-exports schema types, errors, catalog, and configuration for convenience.

from .catalog import ItemCatalog, default_catalog, load_catalog
from .config import EngineConfig, load_config
from .errors import CogniPathError, PersistenceError, UpstreamServiceError, ValidationError
from .schemas import CognitiveState, Concept, Item, LearnerSnapshot, MasteryRecord, SessionEvent

__all__ = [
    "CogniPathError",
    "CognitiveState",
    "Concept",
    "EngineConfig",
    "Item",
    "ItemCatalog",
    "LearnerSnapshot",
    "MasteryRecord",
    "PersistenceError",
    "SessionEvent",
    "UpstreamServiceError",
    "ValidationError",
    "default_catalog",
    "load_catalog",
    "load_config",
]
