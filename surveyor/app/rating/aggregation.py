"""
Hierarchical rating aggregation.

Turns per-component ratings into unit, floor and structure rollups:

    unit       average of held component ratings, per category
    floor      average of unit-level category averages
    structure  average of floor-level category averages

Every average is rounded to one decimal place (half away from zero on
the positive scale). The combined score is

    structural_avg * 0.7 + non_structural_avg * 0.3

and exists only when both category averages exist. Classification uses
the combined score, or the structural average alone when the
non-structural average is absent.

IMPORTANT:
- Recompute functions are pure. They take a snapshot and return a new
  rollup; recomputing twice with no change yields identical output.
- Recomputation is explicit. After a rating change the caller walks
  unit -> floor -> structure (see propagate_unit_change).
- Rollups are never computed top-down from raw leaves.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional
from uuid import UUID

from surveyor.app.errors import AggregationError, AggregationPrecondition
from surveyor.app.rating.classifier import classify
from surveyor.app.schemas.hierarchy import (
    Floor,
    FloorRollup,
    RateableUnit,
    Rollup,
    Structure,
    StructureRollup,
)
from surveyor.app.schemas.ratings import ComponentRating, RatingCategory

logger = logging.getLogger(__name__)

# Fixed design constants. Classification parity depends on this ratio.
STRUCTURAL_WEIGHT = 0.7
NON_STRUCTURAL_WEIGHT = 0.3

DEFAULT_ATTENTION_THRESHOLD = 3.0


# ------------------------------------------------------------------
# Numeric helpers
# ------------------------------------------------------------------


def round_score(value: float) -> float:
    """Round to one decimal place, halves rounding up."""
    return math.floor(value * 10 + 0.5) / 10


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round_score(sum(present) / len(present))


def combined_score(
    structural_avg: Optional[float],
    non_structural_avg: Optional[float],
) -> Optional[float]:
    if structural_avg is None or non_structural_avg is None:
        return None
    return round_score(
        structural_avg * STRUCTURAL_WEIGHT
        + non_structural_avg * NON_STRUCTURAL_WEIGHT
    )


def _rollup_fields(
    structural_avg: Optional[float],
    non_structural_avg: Optional[float],
) -> dict:
    combined = combined_score(structural_avg, non_structural_avg)

    # Structural rating takes precedence when non-structural is absent
    basis = combined if combined is not None else structural_avg
    status, priority = classify(basis)

    return {
        "structural_avg": structural_avg,
        "non_structural_avg": non_structural_avg,
        "combined_score": combined,
        "health_status": status,
        "priority": priority,
    }


# ------------------------------------------------------------------
# Recompute (pure)
# ------------------------------------------------------------------


def recompute_unit(unit: RateableUnit, *, strict: bool = False) -> Rollup:
    """
    Rollup for a single rateable unit.

    Unset components are ignored. With strict=True, a unit with no
    rated components raises AggregationPrecondition instead of yielding
    a null rollup.
    """
    for slot, category in (
        (unit.structural, RatingCategory.STRUCTURAL),
        (unit.non_structural, RatingCategory.NON_STRUCTURAL),
    ):
        for key, rating in slot.items():
            if rating.category is not category or rating.component_type != key:
                raise AggregationError(
                    f"Invariant violation: unit '{unit.label}' holds "
                    f"{rating.component_type!r} in {category.value} slot {key!r}"
                )

    structural_avg = _mean(r.rating for r in unit.structural.values())
    non_structural_avg = _mean(r.rating for r in unit.non_structural.values())

    if strict and structural_avg is None and non_structural_avg is None:
        raise AggregationPrecondition(
            f"Unit '{unit.label}' has no rated components"
        )

    return Rollup(**_rollup_fields(structural_avg, non_structural_avg))


def recompute_floor(
    floor: Floor,
    *,
    attention_threshold: float = DEFAULT_ATTENTION_THRESHOLD,
    strict: bool = False,
) -> FloorRollup:
    """
    Rollup for a floor from its units' stored rollups.

    Unit rollups MUST be current; this function does not descend to
    component ratings.
    """
    structural_avg = _mean(u.rollup.structural_avg for u in floor.units)
    non_structural_avg = _mean(u.rollup.non_structural_avg for u in floor.units)

    if strict and structural_avg is None and non_structural_avg is None:
        raise AggregationPrecondition(
            f"Floor '{floor.label}' has no rated units"
        )

    needing_attention = sum(
        1
        for u in floor.units
        if u.rollup.combined_score is not None
        and u.rollup.combined_score < attention_threshold
    )

    return FloorRollup(
        **_rollup_fields(structural_avg, non_structural_avg),
        flats_needing_attention=needing_attention,
    )


def recompute_structure(
    structure: Structure,
    *,
    strict: bool = False,
) -> StructureRollup:
    """
    Rollup for a structure from its floors' stored rollups.

    This is the structure's final health assessment.
    """
    structural_avg = _mean(f.rollup.structural_avg for f in structure.floors)
    non_structural_avg = _mean(
        f.rollup.non_structural_avg for f in structure.floors
    )

    if strict and structural_avg is None and non_structural_avg is None:
        raise AggregationPrecondition(
            f"Structure {structure.id} has no rated floors"
        )

    return StructureRollup(
        **_rollup_fields(structural_avg, non_structural_avg),
        flats_needing_attention=sum(
            f.rollup.flats_needing_attention for f in structure.floors
        ),
    )


# ------------------------------------------------------------------
# Snapshot transitions
# ------------------------------------------------------------------


def apply_rating(unit: RateableUnit, rating: ComponentRating) -> RateableUnit:
    """
    Return a new unit with `rating` stored in its slot and the unit
    rollup recomputed. Any previous rating for the slot is replaced.
    """
    category = rating.category
    if category is RatingCategory.STRUCTURAL:
        update = {"structural": {**unit.structural, rating.component_type: rating}}
    elif category is RatingCategory.NON_STRUCTURAL:
        update = {
            "non_structural": {
                **unit.non_structural,
                rating.component_type: rating,
            }
        }
    else:
        raise AggregationError(
            f"Component {rating.component_type!r} reached aggregation without "
            "passing the evidence policy"
        )

    updated = unit.model_copy(update=update)
    return updated.model_copy(update={"rollup": recompute_unit(updated)})


def refresh_floor(
    floor: Floor,
    *,
    attention_threshold: float = DEFAULT_ATTENTION_THRESHOLD,
) -> Floor:
    return floor.model_copy(
        update={
            "rollup": recompute_floor(
                floor, attention_threshold=attention_threshold
            )
        }
    )


def refresh_structure(structure: Structure) -> Structure:
    return structure.model_copy(
        update={"rollup": recompute_structure(structure)}
    )


def propagate_unit_change(
    structure: Structure,
    floor_id: UUID,
    unit: RateableUnit,
    *,
    attention_threshold: float = DEFAULT_ATTENTION_THRESHOLD,
) -> Structure:
    """
    Replace a unit and recompute its ancestors: floor, then structure.

    Only the affected floor is recomputed; sibling floors keep their
    stored rollups.
    """
    floor = structure.floor(floor_id)
    floor.unit(unit.id)

    units = [unit if u.id == unit.id else u for u in floor.units]
    new_floor = refresh_floor(
        floor.model_copy(update={"units": units}),
        attention_threshold=attention_threshold,
    )

    floors = [new_floor if f.id == floor_id else f for f in structure.floors]
    new_structure = refresh_structure(
        structure.model_copy(update={"floors": floors})
    )

    logger.debug(
        "Recomputed rollups for structure %s (floor %s, unit %s): "
        "structural=%s non_structural=%s combined=%s",
        structure.id,
        floor_id,
        unit.id,
        new_structure.rollup.structural_avg,
        new_structure.rollup.non_structural_avg,
        new_structure.rollup.combined_score,
    )
    return new_structure


def recompute_all(
    structure: Structure,
    *,
    attention_threshold: float = DEFAULT_ATTENTION_THRESHOLD,
) -> Structure:
    """
    Full bottom-up rebuild of every rollup in a structure.

    Used when loading snapshots whose stored rollups may be stale.
    """
    floors = []
    for floor in structure.floors:
        units = [
            u.model_copy(update={"rollup": recompute_unit(u)})
            for u in floor.units
        ]
        floors.append(
            refresh_floor(
                floor.model_copy(update={"units": units}),
                attention_threshold=attention_threshold,
            )
        )
    return refresh_structure(structure.model_copy(update={"floors": floors}))
