"""
Maintenance recommendation schema.

Recommendations are advisory. They are derived from low component
ratings and carry no authority over rollups or classification.
"""

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from surveyor.app.schemas.hierarchy import Priority
from surveyor.app.schemas.ratings import RatingCategory


class MaintenanceRecommendation(BaseModel):
    category: RatingCategory
    priority: Priority
    component: str = Field(..., description="Display name of the component")
    location: str = Field(..., description="e.g. 'Floor 2, Flat 2-01'")
    issue: str
    recommended_action: str
    urgency: str
    rating: int = Field(..., ge=1, le=5)
    photos: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, extra="forbid")


class MaintenancePlan(BaseModel):
    """All recommendations for one structure, most urgent first."""

    structure_id: str
    identity_code: str | None = None
    recommendations: List[MaintenanceRecommendation] = Field(
        default_factory=list
    )

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> int:
        return len(self.recommendations)

    @property
    def critical_issues(self) -> int:
        return sum(
            1 for r in self.recommendations if r.priority is Priority.CRITICAL
        )

    @property
    def high_priority_issues(self) -> int:
        return sum(
            1 for r in self.recommendations if r.priority is Priority.HIGH
        )
