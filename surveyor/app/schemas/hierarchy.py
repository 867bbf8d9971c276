"""
Audit hierarchy schemas.

Structure -> Floor -> RateableUnit -> ComponentRating

Every level carries a derived rollup. Rollups are recomputed bottom-up
by the aggregation engine and are NEVER computed top-down from raw
component ratings.

All models are frozen. Changes are expressed as new snapshots via
model_copy(update=...); the caller owns persistence and concurrency
control.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from surveyor.app.errors import FloorNotFoundError, UnitNotFoundError
from surveyor.app.schemas.identity import GeneratedIdentity, StructureType
from surveyor.app.schemas.ratings import ComponentRating


# ---------------------------------------------------------------------------
# Classification labels (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class HealthStatus(str, Enum):
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"
    CRITICAL = "Critical"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class UnitKind(str, Enum):
    FLAT = "flat"
    BLOCK = "block"


class FloorType(str, Enum):
    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    MIXED = "mixed"
    PARKING = "parking"
    UTILITY = "utility"
    RECREATIONAL = "recreational"


# ---------------------------------------------------------------------------
# Rollups
# ---------------------------------------------------------------------------


class Rollup(BaseModel):
    """
    Derived health summary at one hierarchy level.

    All fields are None when nothing beneath the level is rated.
    """

    structural_avg: Optional[float] = None
    non_structural_avg: Optional[float] = None
    combined_score: Optional[float] = None
    health_status: Optional[HealthStatus] = None
    priority: Optional[Priority] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_empty(self) -> bool:
        return self.structural_avg is None and self.non_structural_avg is None


class FloorRollup(Rollup):
    flats_needing_attention: int = Field(
        0,
        ge=0,
        description="Units on the floor whose combined score is below threshold",
    )


class StructureRollup(Rollup):
    flats_needing_attention: int = Field(
        0,
        ge=0,
        description="Sum of flats needing attention across all floors",
    )


# ---------------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------------


class RateableUnit(BaseModel):
    """
    A flat or industrial block: the smallest rated entity.

    Holds at most one ComponentRating per component slot in each
    category.
    """

    id: UUID = Field(default_factory=uuid4)
    label: str = Field(..., min_length=1, max_length=20)
    kind: UnitKind = UnitKind.FLAT

    structural: Dict[str, ComponentRating] = Field(default_factory=dict)
    non_structural: Dict[str, ComponentRating] = Field(default_factory=dict)

    rollup: Rollup = Field(default_factory=Rollup)

    model_config = ConfigDict(frozen=True)


class Floor(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    floor_number: int
    label: str = Field(..., min_length=1, max_length=50)
    floor_type: FloorType = FloorType.RESIDENTIAL

    units: List[RateableUnit] = Field(default_factory=list)

    rollup: FloorRollup = Field(default_factory=FloorRollup)

    model_config = ConfigDict(frozen=True)

    def unit(self, unit_id: UUID) -> RateableUnit:
        for unit in self.units:
            if unit.id == unit_id:
                return unit
        raise UnitNotFoundError(
            f"Unit {unit_id} not found on floor '{self.label}'"
        )


class Structure(BaseModel):
    """
    One building under audit.

    The identity code is assigned exactly once and is immutable
    thereafter. `version` is incremented by the repository on every
    successful save.
    """

    id: UUID = Field(default_factory=uuid4)
    name: Optional[str] = Field(None, max_length=200)
    type_of_structure: StructureType = StructureType.RESIDENTIAL

    identity: Optional[GeneratedIdentity] = None

    floors: List[Floor] = Field(default_factory=list)

    rollup: StructureRollup = Field(default_factory=StructureRollup)

    version: int = Field(0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def final_health_assessment(self) -> StructureRollup:
        return self.rollup

    @property
    def identity_code(self) -> Optional[str]:
        return self.identity.code if self.identity is not None else None

    def floor(self, floor_id: UUID) -> Floor:
        for floor in self.floors:
            if floor.id == floor_id:
                return floor
        raise FloorNotFoundError(
            f"Floor {floor_id} not found in structure {self.id}"
        )
