"""
Maintenance recommendations and inspection scheduling.

Advisory outputs derived from stored ratings and rollups:

- per-component repair recommendations for ratings of 2 or below
- next inspection date from a structure's priority
- ordering of structures for re-inspection

Nothing here feeds back into rollups or classification.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple, TypeVar, Union

from surveyor.app.schemas.hierarchy import Floor, Priority, RateableUnit, Structure
from surveyor.app.schemas.maintenance import (
    MaintenancePlan,
    MaintenanceRecommendation,
)
from surveyor.app.schemas.ratings import ComponentRating, RatingCategory

RECOMMENDATION_RATING_THRESHOLD = 2

PRIORITY_ORDER: Dict[Priority, int] = {
    Priority.CRITICAL: 0,
    Priority.HIGH: 1,
    Priority.MEDIUM: 2,
    Priority.LOW: 3,
}

# Months until the next inspection, by priority
INSPECTION_INTERVAL_MONTHS: Dict[Optional[Priority], int] = {
    Priority.CRITICAL: 3,
    Priority.HIGH: 6,
    Priority.MEDIUM: 12,
    Priority.LOW: 24,
    None: 24,
}

_STRUCTURAL_ACTIONS: Dict[str, Dict[int, str]] = {
    "beams": {
        1: "Immediate structural assessment required. Consider beam replacement or strengthening.",
        2: "Detailed inspection and repair of cracks/deflection needed within 30 days.",
    },
    "columns": {
        1: "Critical - Immediate structural engineer assessment. Potential load-bearing compromise.",
        2: "Repair cracks and assess load-bearing capacity. Monitor closely.",
    },
    "slab": {
        1: "Major slab repair or replacement required. Safety risk present.",
        2: "Repair cracks and address deflection issues. Check for water damage.",
    },
    "foundation": {
        1: "Critical foundation issues. Immediate professional assessment required.",
        2: "Foundation repair needed. Address settlement and drainage issues.",
    },
}

_NON_STRUCTURAL_ACTIONS: Dict[str, Dict[int, str]] = {
    "brick_plaster": {
        1: "Complete replastering required. Address underlying moisture issues.",
        2: "Repair cracks and repaint. Check for seepage.",
    },
    "doors_windows": {
        1: "Replace doors/windows. Check for security and weather sealing.",
        2: "Repair hardware and improve sealing. Paint/stain as needed.",
    },
    "electrical_wiring": {
        1: "Complete electrical system overhaul required. Safety hazard present.",
        2: "Upgrade wiring and replace faulty components. Check circuit capacity.",
    },
    "plumbing": {
        1: "Major plumbing renovation needed. Replace old pipes.",
        2: "Repair leaks and replace worn fixtures. Check water pressure.",
    },
    "sanitary_fittings": {
        1: "Replace all sanitary fittings. Address hygiene and functionality issues.",
        2: "Repair or replace damaged fittings. Improve drainage.",
    },
    "flooring_tiles": {
        1: "Complete floor replacement required. Safety and aesthetic concerns.",
        2: "Repair damaged tiles and improve finishing.",
    },
    "railings": {
        1: "Replace railings immediately. Safety hazard present.",
        2: "Repair and strengthen existing railings.",
    },
    "water_tanks": {
        1: "Replace water storage system. Water quality and supply issues.",
        2: "Clean and repair water tanks. Check for leaks.",
    },
    "sewage_system": {
        1: "Major sewage system overhaul required. Immediate health hazard.",
        2: "Repair drainage issues and improve sewage flow.",
    },
    "panel_board": {
        1: "Replace electrical panel board. Fire and safety hazard.",
        2: "Upgrade panel board components and improve safety features.",
    },
    "lifts": {
        1: "Lift system requires immediate replacement or major overhaul.",
        2: "Service and repair lift mechanisms. Address safety concerns.",
    },
}

# (priority, urgency) keyed by (category, rating)
_SEVERITY: Dict[Tuple[RatingCategory, int], Tuple[Priority, str]] = {
    (RatingCategory.STRUCTURAL, 1): (Priority.CRITICAL, "Immediate"),
    (RatingCategory.STRUCTURAL, 2): (Priority.HIGH, "Within 30 days"),
    (RatingCategory.NON_STRUCTURAL, 1): (Priority.HIGH, "Within 15 days"),
    (RatingCategory.NON_STRUCTURAL, 2): (Priority.MEDIUM, "Within 60 days"),
}


# ------------------------------------------------------------------
# Recommendations
# ------------------------------------------------------------------


def recommended_action(
    category: RatingCategory, component: str, rating: int
) -> str:
    if category is RatingCategory.STRUCTURAL:
        action = _STRUCTURAL_ACTIONS.get(component, {}).get(rating)
        return action or f"{component} requires professional assessment."

    action = _NON_STRUCTURAL_ACTIONS.get(component, {}).get(rating)
    return action or f"{_humanize(component)} needs maintenance attention."


def _humanize(component: str) -> str:
    return component.replace("_", " ")


def _unit_recommendations(
    floor: Floor, unit: RateableUnit
) -> List[MaintenanceRecommendation]:
    location = f"Floor {floor.floor_number}, {unit.kind.value.title()} {unit.label}"
    recommendations = []

    slots: Iterable[Tuple[RatingCategory, Dict[str, ComponentRating]]] = (
        (RatingCategory.STRUCTURAL, unit.structural),
        (RatingCategory.NON_STRUCTURAL, unit.non_structural),
    )
    for category, slot in slots:
        for component, rating in slot.items():
            if rating.rating > RECOMMENDATION_RATING_THRESHOLD:
                continue

            priority, urgency = _SEVERITY[(category, rating.rating)]
            recommendations.append(
                MaintenanceRecommendation(
                    category=category,
                    priority=priority,
                    component=_humanize(component).title(),
                    location=location,
                    issue=(
                        rating.condition_comment
                        or f"{_humanize(component)} needs attention"
                    ),
                    recommended_action=recommended_action(
                        category, component, rating.rating
                    ),
                    urgency=urgency,
                    rating=rating.rating,
                    photos=list(rating.photos),
                )
            )
    return recommendations


def maintenance_plan(structure: Structure) -> MaintenancePlan:
    """
    Collect recommendations for every component rated 2 or below,
    sorted by priority then urgency.
    """
    recommendations: List[MaintenanceRecommendation] = []
    for floor in structure.floors:
        for unit in floor.units:
            recommendations.extend(_unit_recommendations(floor, unit))

    recommendations.sort(
        key=lambda r: (PRIORITY_ORDER[r.priority], r.urgency)
    )

    return MaintenancePlan(
        structure_id=str(structure.id),
        identity_code=structure.identity_code,
        recommendations=recommendations,
    )


# ------------------------------------------------------------------
# Scheduling
# ------------------------------------------------------------------


DateLike = TypeVar("DateLike", date, datetime)


def _add_months(value: DateLike, months: int) -> DateLike:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def next_inspection_date(
    priority: Union[Priority, None],
    *,
    from_date: DateLike,
) -> DateLike:
    """Critical +3 months, High +6, Medium +1 year, Low or unknown +2 years."""
    return _add_months(from_date, INSPECTION_INTERVAL_MONTHS[priority])


def last_inspected(structure: Structure) -> Optional[datetime]:
    """Most recent inspection date across every stored component rating."""
    dates = [
        _as_utc(rating.inspection_date)
        for floor in structure.floors
        for unit in floor.units
        for slot in (unit.structural, unit.non_structural)
        for rating in slot.values()
    ]
    return max(dates, default=None)


def inspection_due(structure: Structure) -> Optional[datetime]:
    """
    Date the structure is next due for inspection.

    None when the structure has never been inspected.
    """
    last = last_inspected(structure)
    if last is None:
        return None
    return next_inspection_date(structure.rollup.priority, from_date=last)


def requires_inspection(
    structure: Structure, *, now: Optional[datetime] = None
) -> bool:
    """
    A structure requires inspection when any of these hold:

    - it has never been inspected
    - its next inspection date has passed
    - its priority is High or Critical
    - any unit is below the attention threshold
    """
    if (
        structure.rollup.priority in {Priority.HIGH, Priority.CRITICAL}
        or structure.rollup.flats_needing_attention > 0
    ):
        return True

    due = inspection_due(structure)
    if due is None:
        return True

    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    return due <= now


def inspection_queue(
    structures: Iterable[Structure], *, now: Optional[datetime] = None
) -> List[Structure]:
    """
    Structures requiring inspection, Critical > High > Medium > Low,
    unknown priority last.

    Ties keep their input order.
    """
    now = now if now is not None else datetime.now(timezone.utc)
    pending = [s for s in structures if requires_inspection(s, now=now)]
    return sorted(
        pending,
        key=lambda s: PRIORITY_ORDER.get(s.rollup.priority, len(PRIORITY_ORDER)),
    )
