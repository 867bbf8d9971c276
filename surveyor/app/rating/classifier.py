"""
Health classification.

Maps a numeric score on the 1-5 scale to a status and priority label.
Bands are inclusive on their lower bound:

    score >= 4   Good      / Low
    score >= 3   Fair      / Medium
    score >= 2   Poor      / High
    score <  2   Critical  / Critical

Callers pass scores already rounded to one decimal place; the
classifier compares exactly what it is given.
"""

from __future__ import annotations

from typing import NamedTuple, Optional

from surveyor.app.schemas.hierarchy import HealthStatus, Priority


class Classification(NamedTuple):
    status: Optional[HealthStatus]
    priority: Optional[Priority]


UNCLASSIFIED = Classification(None, None)

_BANDS = (
    (4.0, Classification(HealthStatus.GOOD, Priority.LOW)),
    (3.0, Classification(HealthStatus.FAIR, Priority.MEDIUM)),
    (2.0, Classification(HealthStatus.POOR, Priority.HIGH)),
)


def classify(score: Optional[float]) -> Classification:
    if score is None:
        return UNCLASSIFIED

    for lower_bound, classification in _BANDS:
        if score >= lower_bound:
            return classification

    return Classification(HealthStatus.CRITICAL, Priority.CRITICAL)
