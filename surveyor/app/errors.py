"""
Error taxonomy for the structural audit core.

Identity and evidence failures are local and caller-recoverable.
Aggregation failures under valid input are programming errors and
MUST surface to the caller unaltered.

NOTE:
Evidence violations are NOT exceptions. They are returned as
EvidenceViolation lists so every failure can be reported at once.
EvidenceRejectedError exists only for callers that choose to reject
a whole submission.
"""

from __future__ import annotations

from typing import Any, List, TYPE_CHECKING

if TYPE_CHECKING:
    from surveyor.app.schemas.evidence import EvidenceViolation


class SurveyorError(Exception):
    """Base class for all structural audit errors."""


# ---------------------------------------------------------------------------
# Identity codec
# ---------------------------------------------------------------------------


class IdentityCodecError(SurveyorError):
    """Base class for identity code generation and parsing errors."""


class InvalidFieldError(IdentityCodecError):
    """
    A location or type field cannot be encoded.

    Always caller-recoverable. The message is field-level and safe to
    show to the person filling in the form.
    """

    def __init__(self, field: str, value: Any, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.value = value


class MalformedCodeError(IdentityCodecError):
    """A code does not have the fixed 17-character layout."""


class UnknownTypeCodeError(IdentityCodecError):
    """A well-formed code carries a type code outside the enumeration."""


# ---------------------------------------------------------------------------
# Sequence allocation
# ---------------------------------------------------------------------------


class SequenceLookupUnavailable(SurveyorError):
    """
    Raised by lookup implementations when existing codes cannot be read.

    This is the only condition under which the timestamp fallback
    sequence may be used.
    """


class SequenceExhaustedError(SurveyorError):
    """All 99999 sequence numbers for a location prefix are in use."""


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


class AggregationPrecondition(SurveyorError):
    """
    Recomputation requested on a level with no rated components.

    Only raised in strict mode. The default behaviour is a null rollup.
    """


class AggregationError(RuntimeError):
    """Internal invariant violation during rollup recomputation."""


# ---------------------------------------------------------------------------
# Caller-side (coordinator) errors
# ---------------------------------------------------------------------------


class EvidenceRejectedError(SurveyorError):
    """A rating submission was rejected because of evidence violations."""

    def __init__(self, violations: List["EvidenceViolation"]) -> None:
        super().__init__(
            f"Submission rejected with {len(violations)} evidence violation(s)"
        )
        self.violations = violations


class StructureNotFoundError(SurveyorError):
    pass


class FloorNotFoundError(SurveyorError):
    pass


class UnitNotFoundError(SurveyorError):
    pass


class IdentityAlreadyAssignedError(SurveyorError):
    """Identity codes are assigned exactly once and never replaced."""


class DuplicateIdentityError(SurveyorError):
    """An allocated identity code is already held by another structure."""


class ConcurrentModificationError(SurveyorError):
    """The stored structure version moved since it was read."""
