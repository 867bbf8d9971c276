"""
Evidence violation schema.

An EvidenceViolation records one reason a submitted component rating
lacks sufficient supporting evidence. Violations are returned as lists,
never raised, so a caller can render every failure at once.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EvidenceRule(str, Enum):
    """
    Evidence rule that produced a violation.

    Rule identifiers participate in stable violation IDs and MUST
    remain stable.
    """

    UNKNOWN_COMPONENT = "unknown_component"
    RATING_REQUIRED = "rating_required"
    RATING_OUT_OF_RANGE = "rating_out_of_range"
    PHOTO_REQUIRED = "photo_required"
    PHOTO_FORMAT = "photo_format"
    COMMENT_REQUIRED = "comment_required"
    DIMENSIONS_REQUIRED = "dimensions_required"
    DISTRESS_TYPE_REQUIRED = "distress_type_required"
    DISTRESS_TYPE_UNKNOWN = "distress_type_unknown"
    METHODOLOGY_REQUIRED = "methodology_required"
    INVALID_VALUE = "invalid_value"


class EvidenceViolation(BaseModel):
    """A single evidence-policy failure for one component of one unit."""

    violation_id: str = Field(
        ...,
        description=(
            "Stable identifier derived from unit, component and rule. "
            "Identical input always yields the same ID."
        ),
    )

    component_type: str = Field(
        ...,
        description="Component slot the violation applies to",
    )

    unit_label: str = Field(
        ...,
        description="Human-readable label of the rateable unit",
    )

    rule: EvidenceRule

    field: Optional[str] = Field(
        None,
        description="Payload field that is missing or invalid",
    )

    message: str = Field(
        ...,
        description="Actionable, field-level message for the inspector",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
