"""
Evidence policy for component rating submissions.

Decides whether a submitted component rating carries sufficient
supporting evidence before it may be stored.

Rules:
- Every rating (1-5) requires a rating value and at least one photo.
- Ratings of 3 or below additionally require:
    * a condition comment of at least N characters
    * distress dimensions with at least one of length/breadth/height > 0
    * a non-empty set of distress types (physical, chemical, mechanical)
    * a repair methodology string of at least N characters
      (a boolean is a violation, not a methodology)

IMPORTANT:
- Checks never fail fast. Every violation is collected and returned.
- Checks never raise for bad input. Violations ARE the output.
- Any payload that passes is guaranteed to build a ComponentRating.
"""

from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Union

from pydantic import TypeAdapter, ValidationError

from surveyor.app.schemas.evidence import EvidenceRule, EvidenceViolation
from surveyor.app.schemas.ratings import (
    ComponentRating,
    DimensionUnit,
    DistressDimensions,
    DistressType,
    category_of,
)
from surveyor.app.utils.hashing import stable_digest

DEFAULT_MIN_TEXT_LENGTH = 10
EVIDENCE_RATING_THRESHOLD = 3

MAX_COMMENT_LENGTH = 1000
MAX_NOTES_LENGTH = 2000

PHOTO_URL_PATTERN = re.compile(
    r"^https?://.+\.(jpg|jpeg|png|gif|bmp|webp)$",
    re.IGNORECASE,
)

_DISTRESS_TYPES = frozenset(t.value for t in DistressType)
_DIMENSION_UNITS = frozenset(u.value for u in DimensionUnit)
_INSPECTION_DATE = TypeAdapter(datetime)


# ------------------------------------------------------------------
# Public checks
# ------------------------------------------------------------------


def run_evidence_checks(
    submission: Union[Mapping[str, Any], ComponentRating],
    *,
    unit_label: str,
    min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
    enforce_photo_url_format: bool = False,
) -> List[EvidenceViolation]:
    """
    Evaluate one component rating submission.

    Returns an empty list when the submission is accepted.
    """
    if isinstance(submission, ComponentRating):
        payload: Mapping[str, Any] = submission.model_dump(mode="json")
    else:
        payload = submission

    component = _get(payload, "component_type", "componentType")
    component_label = component if isinstance(component, str) else "<missing>"

    violations: List[EvidenceViolation] = []

    def violate(
        rule: EvidenceRule, message: str, field: Optional[str] = None
    ) -> None:
        violations.append(
            _violation(
                unit_label=unit_label,
                component_type=component_label,
                rule=rule,
                field=field,
                message=message,
            )
        )

    # --------------------------------------------------------------
    # Component identity
    # --------------------------------------------------------------
    if not isinstance(component, str) or category_of(component) is None:
        violate(
            EvidenceRule.UNKNOWN_COMPONENT,
            f"Unknown component type: {component_label}",
            "componentType",
        )

    # --------------------------------------------------------------
    # Rating value
    # --------------------------------------------------------------
    rating = payload.get("rating")
    rating_valid = False

    if rating is None:
        violate(
            EvidenceRule.RATING_REQUIRED,
            f"Rating is required for {_display(component_label)}",
            "rating",
        )
    elif isinstance(rating, bool) or not isinstance(rating, int):
        violate(
            EvidenceRule.RATING_OUT_OF_RANGE,
            f"Rating for {_display(component_label)} must be a whole number "
            "between 1 and 5",
            "rating",
        )
    elif not 1 <= rating <= 5:
        violate(
            EvidenceRule.RATING_OUT_OF_RANGE,
            f"Rating for {_display(component_label)} must be between 1 and 5",
            "rating",
        )
    else:
        rating_valid = True

    # --------------------------------------------------------------
    # Photos (required for every rating)
    # --------------------------------------------------------------
    photos = _photo_list(_get(payload, "photos", "photo"))

    if photos is None:
        violate(
            EvidenceRule.INVALID_VALUE,
            f"Photos for {_display(component_label)} must be a URL or a "
            "list of URLs",
            "photos",
        )
    elif not photos:
        violate(
            EvidenceRule.PHOTO_REQUIRED,
            f"At least one photo is required for {_display(component_label)}",
            "photos",
        )
    elif enforce_photo_url_format:
        for photo in photos:
            if not PHOTO_URL_PATTERN.match(photo):
                violate(
                    EvidenceRule.PHOTO_FORMAT,
                    f"Invalid photo URL format for {_display(component_label)}: "
                    f"{photo}. Must be a valid image URL.",
                    "photos",
                )

    # --------------------------------------------------------------
    # Shape of optional fields (checked whenever supplied)
    # --------------------------------------------------------------
    comment = _get(payload, "condition_comment", "conditionComment")
    if comment is not None and not isinstance(comment, str):
        violate(
            EvidenceRule.INVALID_VALUE,
            "Condition comment must be text",
            "conditionComment",
        )
        comment = None
    elif isinstance(comment, str) and len(comment.strip()) > MAX_COMMENT_LENGTH:
        violate(
            EvidenceRule.INVALID_VALUE,
            f"Condition comment cannot exceed {MAX_COMMENT_LENGTH} characters",
            "conditionComment",
        )

    notes = _get(payload, "inspector_notes", "inspectorNotes")
    if notes is not None and (
        not isinstance(notes, str) or len(notes) > MAX_NOTES_LENGTH
    ):
        violate(
            EvidenceRule.INVALID_VALUE,
            f"Inspector notes must be text of at most {MAX_NOTES_LENGTH} "
            "characters",
            "inspectorNotes",
        )

    dimensions = _get(payload, "distress_dimensions", "distressDimensions")
    dimensions_measured = False
    if dimensions is not None:
        dimension_errors, dimensions_measured = _inspect_dimensions(dimensions)
        for message in dimension_errors:
            violate(EvidenceRule.INVALID_VALUE, message, "distressDimensions")

    distress_types = _get(payload, "distress_types", "distressTypes")
    distress_values: List[str] = []
    if distress_types is not None:
        if isinstance(distress_types, (str, bytes)) or not isinstance(
            distress_types, Iterable
        ):
            violate(
                EvidenceRule.INVALID_VALUE,
                "Distress types must be a list",
                "distressTypes",
            )
        else:
            for value in distress_types:
                raw = getattr(value, "value", value)
                if not isinstance(raw, str) or raw not in _DISTRESS_TYPES:
                    violate(
                        EvidenceRule.DISTRESS_TYPE_UNKNOWN,
                        f"Unknown distress type: {raw}. Must be one of: "
                        f"{', '.join(sorted(_DISTRESS_TYPES))}",
                        "distressTypes",
                    )
                else:
                    distress_values.append(raw)

    methodology = _get(payload, "repair_methodology", "repairMethodology")
    if methodology is not None and not isinstance(methodology, str):
        violate(
            EvidenceRule.METHODOLOGY_REQUIRED
            if rating_valid and rating <= EVIDENCE_RATING_THRESHOLD
            else EvidenceRule.INVALID_VALUE,
            "Repair methodology must be a written description, "
            f"not {type(methodology).__name__}",
            "repairMethodology",
        )
        methodology = None
        methodology_reported = True
    else:
        methodology_reported = False

    inspection_date = _get(payload, "inspection_date", "inspectionDate")
    if inspection_date is not None:
        try:
            _INSPECTION_DATE.validate_python(inspection_date)
        except ValidationError:
            violate(
                EvidenceRule.INVALID_VALUE,
                f"Inspection date must be a date and time, not {inspection_date!r}",
                "inspectionDate",
            )

    # --------------------------------------------------------------
    # Conditional evidence for ratings of 3 or below
    # --------------------------------------------------------------
    if rating_valid and rating <= EVIDENCE_RATING_THRESHOLD:
        if comment is None or len(comment.strip()) < min_text_length:
            violate(
                EvidenceRule.COMMENT_REQUIRED,
                f"Condition comment of at least {min_text_length} characters "
                f"is required for {_display(component_label)} rated {rating}",
                "conditionComment",
            )

        if not dimensions_measured:
            violate(
                EvidenceRule.DIMENSIONS_REQUIRED,
                "Distress dimensions with at least one of length, breadth or "
                f"height greater than 0 are required for "
                f"{_display(component_label)} rated {rating}",
                "distressDimensions",
            )

        if not distress_values:
            violate(
                EvidenceRule.DISTRESS_TYPE_REQUIRED,
                "At least one distress type (physical, chemical, mechanical) "
                f"is required for {_display(component_label)} rated {rating}",
                "distressTypes",
            )

        if not methodology_reported and (
            methodology is None or len(methodology.strip()) < min_text_length
        ):
            violate(
                EvidenceRule.METHODOLOGY_REQUIRED,
                f"Repair methodology of at least {min_text_length} characters "
                f"is required for {_display(component_label)} rated {rating}",
                "repairMethodology",
            )

    # --------------------------------------------------------------
    # Anything the rules above missed still cannot be stored
    # --------------------------------------------------------------
    if not violations and not isinstance(submission, ComponentRating):
        try:
            ComponentRating.from_submission(payload)
        except ValidationError as exc:
            for error in exc.errors():
                location = ".".join(str(part) for part in error["loc"])
                violate(
                    EvidenceRule.INVALID_VALUE,
                    f"{location or 'submission'}: {error['msg']}",
                    location or None,
                )

    return violations


def run_submission_checks(
    submissions: Iterable[Union[Mapping[str, Any], ComponentRating]],
    *,
    unit_label: str,
    min_text_length: int = DEFAULT_MIN_TEXT_LENGTH,
    enforce_photo_url_format: bool = False,
) -> List[EvidenceViolation]:
    """Evaluate every component of a multi-component submission."""
    violations: List[EvidenceViolation] = []
    for submission in submissions:
        violations.extend(
            run_evidence_checks(
                submission,
                unit_label=unit_label,
                min_text_length=min_text_length,
                enforce_photo_url_format=enforce_photo_url_format,
            )
        )
    return violations


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _violation(
    *,
    unit_label: str,
    component_type: str,
    rule: EvidenceRule,
    field: Optional[str],
    message: str,
) -> EvidenceViolation:
    suffix = stable_digest(unit_label, component_type, rule.value, field or "")
    return EvidenceViolation(
        violation_id=f"EVD-{rule.value.upper()}-{suffix}",
        component_type=component_type,
        unit_label=unit_label,
        rule=rule,
        field=field,
        message=message,
    )


def _get(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _display(component: str) -> str:
    return component.replace("_", " ")


def _photo_list(photos: Any) -> Optional[List[str]]:
    """
    Normalize photos to a list of non-empty strings.

    Returns None when the value has the wrong shape.
    """
    if photos is None:
        return []
    if isinstance(photos, str):
        return [photos] if photos.strip() else []
    if isinstance(photos, (list, tuple)):
        if not all(isinstance(p, str) for p in photos):
            return None
        return [p for p in photos if p.strip()]
    return None


def _inspect_dimensions(dimensions: Any) -> tuple[List[str], bool]:
    """Return (shape errors, has at least one positive measurement)."""
    if isinstance(dimensions, DistressDimensions):
        return [], dimensions.has_measurement()

    if not isinstance(dimensions, Mapping):
        return ["Distress dimensions must be an object"], False

    errors: List[str] = []
    measured = False

    for axis in ("length", "breadth", "height"):
        value = dimensions.get(axis)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            errors.append(f"Distress {axis} must be a number")
        elif not math.isfinite(value):
            errors.append(f"Distress {axis} must be a finite number")
        elif value < 0:
            errors.append(f"Distress {axis} cannot be negative")
        elif value > 0:
            measured = True

    unit = getattr(dimensions.get("unit"), "value", dimensions.get("unit"))
    if unit is not None and (
        not isinstance(unit, str) or unit not in _DIMENSION_UNITS
    ):
        errors.append(
            f"Invalid dimension unit: {unit}. Must be one of: "
            f"{', '.join(u.value for u in DimensionUnit)}"
        )

    unexpected = set(dimensions) - {"length", "breadth", "height", "unit"}
    if unexpected:
        errors.append(
            f"Unexpected distress dimension fields: {', '.join(sorted(unexpected))}"
        )

    return errors, measured and not errors
