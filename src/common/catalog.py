# ABOUTME: Holds the static, read-only item catalog of concepts, items, and prerequisites.
# ABOUTME: Loads catalogs from YAML, validates them, and picks the item best matched to ability.

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
import yaml

from .errors import ValidationError
from .schemas import Concept, Item, Prerequisite


class ItemCatalog:
    """
    Immutable collection of concepts and question items.

    Concept order is kept as declared: it is the display order and the
    policy's action order, so greedy ties go to the earliest declared concept.
    ``concept_ids`` is sorted and only used where a stable key order matters.
    """

    def __init__(
        self,
        concepts: Iterable[Concept],
        items: Iterable[Item],
        prerequisites: Iterable[Prerequisite] = (),
    ):
        self._concepts: Tuple[Concept, ...] = tuple(concepts)
        self._items: Tuple[Item, ...] = tuple(items)
        self._prerequisites: Tuple[Prerequisite, ...] = tuple(prerequisites)
        self._concept_index: Dict[str, Concept] = {}
        self._item_index: Dict[str, Item] = {}
        self._validate()

    def _validate(self) -> None:
        if not self._concepts:
            raise ValidationError("Catalog must declare at least one concept.")
        for concept in self._concepts:
            if concept.concept_id in self._concept_index:
                raise ValidationError(f"Duplicate concept id '{concept.concept_id}'.")
            self._concept_index[concept.concept_id] = concept
        for item in self._items:
            if item.item_id in self._item_index:
                raise ValidationError(f"Duplicate item id '{item.item_id}'.")
            if item.concept_id not in self._concept_index:
                raise ValidationError(
                    f"Item '{item.item_id}' references unknown concept '{item.concept_id}'."
                )
            if not 0 <= item.correct_index < len(item.options):
                raise ValidationError(
                    f"Item '{item.item_id}' has correct index {item.correct_index} "
                    f"outside its {len(item.options)} options."
                )
            if item.discrimination <= 0:
                raise ValidationError(f"Item '{item.item_id}' needs a positive discrimination.")
            self._item_index[item.item_id] = item
        for edge in self._prerequisites:
            for concept_id in (edge.source, edge.target):
                if concept_id not in self._concept_index:
                    raise ValidationError(f"Prerequisite references unknown concept '{concept_id}'.")
            if not 0 < edge.weight <= 1:
                raise ValidationError(f"Prerequisite weight {edge.weight} must be in (0, 1].")

    @property
    def concepts(self) -> Tuple[Concept, ...]:
        return self._concepts

    @property
    def items(self) -> Tuple[Item, ...]:
        return self._items

    @property
    def prerequisites(self) -> Tuple[Prerequisite, ...]:
        return self._prerequisites

    def concept_ids(self) -> List[str]:
        return sorted(self._concept_index)

    def action_ids(self) -> List[str]:
        return [concept.concept_id for concept in self._concepts]

    def has_concept(self, concept_id: str) -> bool:
        return concept_id in self._concept_index

    def get_concept(self, concept_id: str) -> Concept:
        try:
            return self._concept_index[concept_id]
        except KeyError:
            raise ValidationError(f"Unknown concept id '{concept_id}'.") from None

    def label(self, concept_id: str) -> str:
        concept = self._concept_index.get(concept_id)
        return concept.label if concept else concept_id

    def get_item(self, item_id: str) -> Item:
        try:
            return self._item_index[item_id]
        except KeyError:
            raise ValidationError(f"Unknown item id '{item_id}'.") from None

    def items_for(self, concept_id: str) -> List[Item]:
        return [item for item in self._items if item.concept_id == concept_id]

    def prerequisites_of(self, concept_id: str) -> List[Prerequisite]:
        return [edge for edge in self._prerequisites if edge.target == concept_id]

    def select_item(
        self,
        concept_id: str,
        theta: float,
        rng: Optional[np.random.Generator] = None,
    ) -> Item:
        """
        Pick the item of ``concept_id`` whose difficulty is closest to ``theta``.

        Falls back to a uniformly random catalog item when the concept has no
        items. Ties keep catalog order.
        """
        candidates = self.items_for(concept_id)
        if candidates:
            return min(candidates, key=lambda item: abs(item.difficulty - theta))
        if not self._items:
            raise ValidationError("Catalog has no items to practice.")
        rng = rng or np.random.default_rng()
        return self._items[int(rng.integers(len(self._items)))]


def default_catalog() -> ItemCatalog:
    """Built-in four-concept catalog used when no catalog file is configured."""
    concepts = [
        Concept("algebra_basics", "Algebra Basics", initial_mastery=0.2, initial_strength=2.0),
        Concept("geometry_triangles", "Geometry", initial_mastery=0.1, initial_strength=1.5),
        Concept("calculus_limits", "Calculus", initial_mastery=0.05, initial_strength=1.0),
        Concept("statistics_prob", "Statistics", initial_mastery=0.05, initial_strength=1.0),
    ]
    items = [
        Item("q1", "algebra_basics", "Solve for x: 2x + 5 = 13", ("2", "4", "6", "8"), 1, -1.0, 1.2, 15),
        Item("q2", "algebra_basics", "Evaluate: 3(x - 2) when x = 5", ("6", "9", "12", "15"), 1, -0.5, 1.0, 15),
        Item(
            "q3",
            "geometry_triangles",
            "Find the hypotenuse of a right triangle with legs 3 and 4.",
            ("5", "6", "7", "8"),
            0,
            0.0,
            1.5,
            20,
        ),
        Item("q4", "geometry_triangles", "Sum of interior angles of a triangle?", ("90", "180", "270", "360"), 1, -1.5, 0.8, 10),
        Item(
            "q5",
            "calculus_limits",
            "Limit of sin(x)/x as x approaches 0",
            ("0", "1", "Infinity", "Undefined"),
            1,
            1.2,
            1.8,
            30,
        ),
        Item("q6", "calculus_limits", "Derivative of x^2", ("x", "2x", "x^2", "2"), 1, 0.5, 1.4, 20),
        Item("q7", "statistics_prob", "Probability of rolling a 6 on a fair die?", ("1/2", "1/4", "1/6", "1/12"), 2, -0.2, 1.1, 15),
        Item(
            "q8",
            "statistics_prob",
            "What is the median of [1, 3, 3, 6, 7, 8, 9]?",
            ("3", "6", "7", "5.5"),
            1,
            0.8,
            1.3,
            25,
        ),
    ]
    prerequisites = [
        Prerequisite("algebra_basics", "geometry_triangles", 0.8),
        Prerequisite("algebra_basics", "calculus_limits", 0.6),
        Prerequisite("geometry_triangles", "statistics_prob", 0.4),
        Prerequisite("calculus_limits", "statistics_prob", 0.7),
    ]
    return ItemCatalog(concepts, items, prerequisites)


def load_catalog(path: Path) -> ItemCatalog:
    """Load a catalog YAML with ``concepts``, ``items`` and optional ``prerequisites``."""

    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    return catalog_from_dict(raw)


def catalog_from_dict(raw: Mapping) -> ItemCatalog:
    try:
        concepts = [
            Concept(
                concept_id=str(entry["id"]),
                label=str(entry.get("label", entry["id"])),
                initial_mastery=float(entry.get("initial_mastery", 0.1)),
                initial_strength=float(entry.get("initial_strength", 2.0)),
            )
            for entry in raw.get("concepts", [])
        ]
        items = [
            Item(
                item_id=str(entry["id"]),
                concept_id=str(entry["concept"]),
                text=str(entry.get("text", "")),
                options=tuple(str(option) for option in entry["options"]),
                correct_index=int(entry["correct"]),
                difficulty=float(entry["beta"]),
                discrimination=float(entry.get("alpha", 1.0)),
                estimated_time_sec=float(entry.get("est_time", 15.0)),
            )
            for entry in raw.get("items", [])
        ]
        prerequisites = [
            Prerequisite(str(entry["source"]), str(entry["target"]), float(entry.get("weight", 1.0)))
            for entry in raw.get("prerequisites", [])
        ]
    except (KeyError, TypeError, ValueError) as exc:
        raise ValidationError(f"Malformed catalog entry: {exc}") from exc
    return ItemCatalog(concepts, items, prerequisites)
