"""
Structural identity schemas.

Defines the fixed enumerations and the records produced and consumed by
the identity codec:

- IdentityFields: location + type input used to mint a code
- IdentityComponents: the six fixed-width parts of a code
- GeneratedIdentity: a freshly minted code with display form and metadata
- DecodedIdentity: the parts recovered from an existing code

A 17-character code is laid out as:

    SS DD CCCC LL NNNNN TT
    state, district, city, location, sequence, type
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enumerations (FROZEN CONTRACTS)
# ---------------------------------------------------------------------------


class StructureType(str, Enum):
    """
    Closed enumeration of structure types.

    The two-digit type code is part of every identity code and MUST
    remain stable.
    """

    RESIDENTIAL = "residential"
    COMMERCIAL = "commercial"
    EDUCATIONAL = "educational"
    HOSPITAL = "hospital"
    INDUSTRIAL = "industrial"


TYPE_CODES: Dict[StructureType, str] = {
    StructureType.RESIDENTIAL: "01",
    StructureType.COMMERCIAL: "02",
    StructureType.EDUCATIONAL: "03",
    StructureType.HOSPITAL: "04",
    StructureType.INDUSTRIAL: "05",
}

TYPE_NAMES: Dict[str, StructureType] = {
    code: structure_type for structure_type, code in TYPE_CODES.items()
}

# Indian state and union territory codes
STATE_CODES = frozenset(
    {
        "AN", "AP", "AR", "AS", "BR", "CH", "CG", "DD", "DL", "DN", "GA", "GJ",
        "HP", "HR", "JH", "JK", "KA", "KL", "LD", "MH", "ML", "MN", "MP", "MZ",
        "NL", "OD", "PB", "PY", "RJ", "SK", "TN", "TS", "TR", "UK", "UP", "WB",
    }
)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class IdentityFields(BaseModel):
    """
    Location and type fields captured at structure creation.

    Values are accepted raw. Normalization and validation happen in the
    codec so that errors can be reported per field.
    """

    state_code: str
    district_code: Union[str, int]
    city_name: str
    location_code: str
    type_of_structure: str

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class IdentityComponents(BaseModel):
    """The six fixed-width parts of an identity code."""

    state_code: str = Field(..., min_length=2, max_length=2)
    district_code: str = Field(..., min_length=2, max_length=2)
    city_code: str = Field(..., min_length=4, max_length=4)
    location_code: str = Field(..., min_length=2, max_length=2)
    sequence: str = Field(..., min_length=5, max_length=5)
    type_code: str = Field(..., min_length=2, max_length=2)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def location_prefix(self) -> str:
        return (
            self.state_code
            + self.district_code
            + self.city_code
            + self.location_code
        )

    def code(self) -> str:
        return self.location_prefix + self.sequence + self.type_code

    def display(self) -> str:
        return "-".join(
            (
                self.state_code,
                self.district_code,
                self.city_code,
                self.location_code,
                self.sequence,
                self.type_code,
            )
        )


class ZipCodeMetadata(BaseModel):
    """Zip code recorded alongside, but never inside, an identity code."""

    zip_code: str = Field(..., pattern=r"^[0-9]{6}$")
    state_code: str
    integrated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    validation_status: str = "verified"

    model_config = ConfigDict(frozen=True)


class GeneratedIdentity(BaseModel):
    """
    A freshly minted identity code.

    The display form is derived purely from the same components and
    carries no additional information.
    """

    code: str = Field(..., min_length=17, max_length=17)
    formatted_display: str
    components: IdentityComponents
    generated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    zip_code: Optional[ZipCodeMetadata] = None

    model_config = ConfigDict(frozen=True)


class DecodedIdentity(BaseModel):
    """Parts recovered from an existing identity code."""

    components: IdentityComponents
    type_of_structure: StructureType

    model_config = ConfigDict(frozen=True)

    @property
    def state_code(self) -> str:
        return self.components.state_code

    @property
    def district_code(self) -> str:
        return self.components.district_code

    @property
    def city_code(self) -> str:
        return self.components.city_code

    @property
    def location_code(self) -> str:
        return self.components.location_code

    @property
    def sequence(self) -> str:
        return self.components.sequence

    @property
    def type_code(self) -> str:
        return self.components.type_code


class CodeValidationResult(BaseModel):
    """Per-code outcome of bulk validation. Never raises."""

    code: str
    is_valid: bool
    decoded: Optional[DecodedIdentity] = None
    error: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class LocationLevel(str, Enum):
    STATE = "state"
    DISTRICT = "district"
    CITY = "city"
    LOCATION = "location"
    PARTIAL = "partial"


class LocationPrefixInfo(BaseModel):
    """Human-oriented breakdown of a (possibly partial) location prefix."""

    location_prefix: str
    state_code: str
    district_code: str
    city_code: str
    location_code: str
    is_complete: bool
    level: LocationLevel
    description: str

    model_config = ConfigDict(frozen=True)


class QRCodeData(BaseModel):
    """Payload encoded into a structure's QR label."""

    qr_data: Dict[str, str]
    qr_string: str
    display_text: str

    model_config = ConfigDict(frozen=True)


class BulkValidationReport(BaseModel):
    results: List[CodeValidationResult] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def valid_count(self) -> int:
        return sum(1 for r in self.results if r.is_valid)

    @property
    def invalid_count(self) -> int:
        return len(self.results) - self.valid_count
