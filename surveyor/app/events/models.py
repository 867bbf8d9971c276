from __future__ import annotations

from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime, timezone
from uuid import uuid4, UUID

from pydantic import BaseModel, Field, ConfigDict


# ----------------------------------------------------------------------
# Event Types (Finite and Versioned)
# ----------------------------------------------------------------------
class InspectionEventType(str, Enum):
    """
    Lifecycle events emitted while a structure is being audited.

    NOTE:
    This enum is finite and versioned.
    New entries must preserve observational semantics.
    """

    # ------------------------------------------------------------------
    # Structure lifecycle
    # ------------------------------------------------------------------
    STRUCTURE_CREATED = "structure_created"
    IDENTITY_ASSIGNED = "identity_assigned"
    SEQUENCE_FALLBACK_USED = "sequence_fallback_used"

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------
    FLOOR_ADDED = "floor_added"
    UNIT_ADDED = "unit_added"

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------
    RATINGS_SUBMITTED = "ratings_submitted"
    RATINGS_REJECTED = "ratings_rejected"
    ROLLUP_RECOMPUTED = "rollup_recomputed"


# ----------------------------------------------------------------------
# Event Model
# ----------------------------------------------------------------------
class InspectionEvent(BaseModel):
    """
    An immutable observation of a state transition.

    Events are:
    - strictly observational
    - transport-agnostic
    - not authoritative
    """

    event_id: UUID = Field(default_factory=uuid4)
    structure_id: str = Field(..., description="The audited structure")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    event_type: InspectionEventType

    # Optional contextual metadata (floor_id, unit_id, counts, etc.)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
