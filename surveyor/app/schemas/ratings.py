"""
Component rating schemas.

A ComponentRating is one inspected element instance within a rateable
unit (a flat or an industrial block). Ratings are on a 1-5 scale:

    5 excellent, 4 good, 3 fair, 2 poor, 1 critical

ComponentRating objects are only constructed from submissions that have
already passed the evidence policy. They are never partially persisted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Component catalog (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class RatingCategory(str, Enum):
    STRUCTURAL = "structural"
    NON_STRUCTURAL = "non_structural"


class StructuralComponent(str, Enum):
    BEAMS = "beams"
    COLUMNS = "columns"
    SLAB = "slab"
    FOUNDATION = "foundation"


class NonStructuralComponent(str, Enum):
    BRICK_PLASTER = "brick_plaster"
    DOORS_WINDOWS = "doors_windows"
    FLOORING_TILES = "flooring_tiles"
    ELECTRICAL_WIRING = "electrical_wiring"
    SANITARY_FITTINGS = "sanitary_fittings"
    RAILINGS = "railings"
    WATER_TANKS = "water_tanks"
    PLUMBING = "plumbing"
    SEWAGE_SYSTEM = "sewage_system"
    PANEL_BOARD = "panel_board"
    LIFTS = "lifts"


STRUCTURAL_COMPONENTS = frozenset(c.value for c in StructuralComponent)
NON_STRUCTURAL_COMPONENTS = frozenset(c.value for c in NonStructuralComponent)


def category_of(component_type: str) -> Optional[RatingCategory]:
    """Return the rating category of a component, or None if unknown."""
    if component_type in STRUCTURAL_COMPONENTS:
        return RatingCategory.STRUCTURAL
    if component_type in NON_STRUCTURAL_COMPONENTS:
        return RatingCategory.NON_STRUCTURAL
    return None


# ---------------------------------------------------------------------------
# Distress evidence
# ---------------------------------------------------------------------------


class DimensionUnit(str, Enum):
    MM = "mm"
    CM = "cm"
    M = "m"
    INCH = "inch"
    FEET = "feet"


class DistressType(str, Enum):
    PHYSICAL = "physical"
    CHEMICAL = "chemical"
    MECHANICAL = "mechanical"


class DistressDimensions(BaseModel):
    """Measured extent of observed distress."""

    length: Optional[float] = Field(None, ge=0)
    breadth: Optional[float] = Field(None, ge=0)
    height: Optional[float] = Field(None, ge=0)
    unit: DimensionUnit = DimensionUnit.MM

    model_config = ConfigDict(frozen=True, extra="forbid")

    def has_measurement(self) -> bool:
        return any(
            v is not None and v > 0
            for v in (self.length, self.breadth, self.height)
        )


# ---------------------------------------------------------------------------
# Component rating
# ---------------------------------------------------------------------------


class ComponentRating(BaseModel):
    """
    Accepted rating for a single component slot.

    Each submission replaces the previous value for the same slot.
    """

    component_type: str = Field(
        ...,
        description="Component slot identifier (e.g. 'beams', 'plumbing')",
    )

    rating: int = Field(
        ...,
        ge=1,
        le=5,
        description="Condition rating on the 1-5 scale",
    )

    condition_comment: str = Field(
        "",
        max_length=1000,
        description="Inspector's description of the observed condition",
    )

    photos: List[str] = Field(
        default_factory=list,
        description="References to supporting photographs",
    )

    inspector_notes: str = Field(
        "",
        max_length=2000,
    )

    distress_dimensions: Optional[DistressDimensions] = None

    distress_types: List[DistressType] = Field(default_factory=list)

    repair_methodology: Optional[str] = None

    inspection_date: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("inspection_date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive dates are taken as UTC so schedules compare
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def category(self) -> Optional[RatingCategory]:
        return category_of(self.component_type)

    @classmethod
    def from_submission(cls, payload: Mapping[str, Any]) -> "ComponentRating":
        """
        Build a ComponentRating from an accepted submission payload.

        Accepts the camelCase keys of the wire payload as well as
        snake_case. A single photo string is normalized to a list.
        """
        photos: Union[str, List[str], None] = _pick(payload, "photos", "photo")
        if isinstance(photos, str):
            photos = [photos]
        # Blank references are never stored
        photos = [p for p in photos or [] if not isinstance(p, str) or p.strip()]

        data = {
            "component_type": _pick(payload, "component_type", "componentType"),
            "rating": payload.get("rating"),
            "condition_comment": (
                _pick(payload, "condition_comment", "conditionComment") or ""
            ).strip(),
            "photos": photos,
            "inspector_notes": (
                _pick(payload, "inspector_notes", "inspectorNotes") or ""
            ),
            "distress_dimensions": _pick(
                payload, "distress_dimensions", "distressDimensions"
            ),
            "distress_types": sorted(
                set(_pick(payload, "distress_types", "distressTypes") or [])
            ),
            "repair_methodology": _pick(
                payload, "repair_methodology", "repairMethodology"
            ),
        }
        inspection_date = _pick(payload, "inspection_date", "inspectionDate")
        if inspection_date is not None:
            data["inspection_date"] = inspection_date

        return cls.model_validate(data)


def _pick(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None
