"""
Structural identity codec.

Generates, parses and validates the fixed-width 17-character structural
identity code:

    StateCode(2 letters) + DistrictCode(2 digits) + CityCode(4 letters)
    + LocationCode(2 letters) + Sequence(5 digits) + TypeCode(2 digits)

The codec is pure and deterministic. It performs no I/O and holds no
state; sequence numbers are supplied by the caller (see
surveyor.app.identity.sequence).
"""

from __future__ import annotations

import json
import random
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional, Union

from pydantic import ValidationError

from surveyor.app.errors import (
    IdentityCodecError,
    InvalidFieldError,
    MalformedCodeError,
    UnknownTypeCodeError,
)
from surveyor.app.schemas.identity import (
    STATE_CODES,
    TYPE_CODES,
    TYPE_NAMES,
    BulkValidationReport,
    CodeValidationResult,
    DecodedIdentity,
    GeneratedIdentity,
    IdentityComponents,
    IdentityFields,
    LocationLevel,
    LocationPrefixInfo,
    QRCodeData,
    StructureType,
    ZipCodeMetadata,
)

CODE_LENGTH = 17
LOCATION_PREFIX_LENGTH = 10
MAX_SEQUENCE = 99999

CODE_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z]{4}[A-Z]{2}[0-9]{5}[0-9]{2}$")

_ALPHA = re.compile(r"^[A-Z]+$")
_DISTRICT = re.compile(r"^[0-9]{1,2}$")
_ZIP_CODE = re.compile(r"^[0-9]{6}$")

QR_PAYLOAD_VERSION = "1.0"


# ------------------------------------------------------------------
# Field formatting
# ------------------------------------------------------------------


def format_state_code(state_code: Any) -> str:
    value = str(state_code or "").strip().upper()
    if len(value) != 2:
        raise InvalidFieldError(
            "state_code",
            state_code,
            "State code must be exactly 2 characters",
        )
    if value not in STATE_CODES:
        raise InvalidFieldError(
            "state_code",
            state_code,
            f"Invalid state code: {value}. Must be a recognized state code.",
        )
    return value


def format_district_code(district_code: Any) -> str:
    value = str(district_code if district_code is not None else "").strip()
    if not _DISTRICT.match(value):
        raise InvalidFieldError(
            "district_code",
            district_code,
            "District code must be 1-2 digits",
        )
    return value.zfill(2)


def format_city_code(city_name: Any) -> str:
    value = "".join(str(city_name or "").split()).upper()
    if not _ALPHA.match(value):
        raise InvalidFieldError(
            "city_name",
            city_name,
            "City name must contain only alphabetic characters",
        )
    return (value + "XXXX")[:4]


def format_location_code(location_code: Any) -> str:
    value = str(location_code or "").strip().upper()
    if not _ALPHA.match(value):
        raise InvalidFieldError(
            "location_code",
            location_code,
            "Location code must contain only alphabetic characters",
        )
    return (value + "XX")[:2]


def format_sequence(sequence: Union[int, str]) -> str:
    if isinstance(sequence, bool):
        raise InvalidFieldError(
            "sequence", sequence, "Sequence must be an integer"
        )
    if isinstance(sequence, str):
        if not sequence.isdigit():
            raise InvalidFieldError(
                "sequence", sequence, "Sequence must contain only digits"
            )
        number = int(sequence)
    elif isinstance(sequence, int):
        number = sequence
    else:
        raise InvalidFieldError(
            "sequence", sequence, "Sequence must be an integer"
        )

    if not 1 <= number <= MAX_SEQUENCE:
        raise InvalidFieldError(
            "sequence",
            sequence,
            f"Sequence must be between 1 and {MAX_SEQUENCE}",
        )
    return f"{number:05d}"


def type_code_for(type_of_structure: Any) -> str:
    raw = str(getattr(type_of_structure, "value", type_of_structure) or "")
    try:
        structure_type = StructureType(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(t.value for t in StructureType)
        raise InvalidFieldError(
            "type_of_structure",
            type_of_structure,
            f"Invalid structure type: {raw}. Must be one of: {allowed}",
        ) from None
    return TYPE_CODES[structure_type]


# ------------------------------------------------------------------
# Encoding
# ------------------------------------------------------------------


def coerce_fields(
    fields: Union[IdentityFields, Mapping[str, Any]],
) -> IdentityFields:
    if isinstance(fields, IdentityFields):
        return fields
    try:
        return IdentityFields.model_validate(dict(fields))
    except ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(p) for p in error["loc"]) or "fields"
        raise InvalidFieldError(
            field,
            error.get("input"),
            f"{field}: {error['msg']}",
        ) from None


def location_prefix(
    state_code: Any,
    district_code: Any,
    city_name: Any,
    location_code: Any,
) -> str:
    """
    Return the 10-character location prefix used to scope sequence
    allocation.
    """
    return (
        format_state_code(state_code)
        + format_district_code(district_code)
        + format_city_code(city_name)
        + format_location_code(location_code)
    )


def components_for(
    fields: Union[IdentityFields, Mapping[str, Any]],
    sequence: Union[int, str],
) -> IdentityComponents:
    fields = coerce_fields(fields)
    return IdentityComponents(
        state_code=format_state_code(fields.state_code),
        district_code=format_district_code(fields.district_code),
        city_code=format_city_code(fields.city_name),
        location_code=format_location_code(fields.location_code),
        sequence=format_sequence(sequence),
        type_code=type_code_for(fields.type_of_structure),
    )


def encode(
    fields: Union[IdentityFields, Mapping[str, Any]],
    sequence: Union[int, str],
) -> str:
    """
    Encode location fields and a sequence number into a 17-character code.

    Raises InvalidFieldError for any field that cannot be encoded.
    """
    code = components_for(fields, sequence).code()

    if len(code) != CODE_LENGTH or not CODE_PATTERN.match(code):
        raise RuntimeError(
            f"Invariant violation: encoded identity code is malformed: {code!r}"
        )
    return code


def generate(
    fields: Union[IdentityFields, Mapping[str, Any]],
    sequence: Union[int, str],
    *,
    zip_code: Optional[str] = None,
) -> GeneratedIdentity:
    """
    Mint a complete identity record: code, display form and components.

    The optional zip code is validated and recorded as metadata only;
    it never becomes part of the code.
    """
    components = components_for(fields, sequence)
    code = encode(fields, sequence)

    zip_metadata = None
    if zip_code is not None:
        if not _ZIP_CODE.match(str(zip_code)):
            raise InvalidFieldError(
                "zip_code",
                zip_code,
                "Zip code must be exactly 6 digits",
            )
        zip_metadata = ZipCodeMetadata(
            zip_code=str(zip_code),
            state_code=components.state_code,
        )

    return GeneratedIdentity(
        code=code,
        formatted_display=components.display(),
        components=components,
        zip_code=zip_metadata,
    )


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------


def decode(code: str) -> DecodedIdentity:
    """
    Split a 17-character code into its components.

    Raises:
        MalformedCodeError: wrong length, wrong layout or unknown state.
        UnknownTypeCodeError: well-formed code with an unknown type code.
    """
    if not isinstance(code, str) or len(code) != CODE_LENGTH:
        raise MalformedCodeError(
            "Invalid structure number length. "
            f"Must be exactly {CODE_LENGTH} characters."
        )

    if not CODE_PATTERN.match(code):
        raise MalformedCodeError(
            "Invalid structure number format. "
            "Must match: AA##AAAAAA#######"
        )

    components = IdentityComponents(
        state_code=code[0:2],
        district_code=code[2:4],
        city_code=code[4:8],
        location_code=code[8:10],
        sequence=code[10:15],
        type_code=code[15:17],
    )

    if components.state_code not in STATE_CODES:
        raise MalformedCodeError(
            f"Invalid state code: {components.state_code}"
        )

    type_of_structure = TYPE_NAMES.get(components.type_code)
    if type_of_structure is None:
        raise UnknownTypeCodeError(
            f"Invalid type code: {components.type_code}"
        )

    return DecodedIdentity(
        components=components,
        type_of_structure=type_of_structure,
    )


def is_valid(code: Any) -> bool:
    """Non-throwing validity check."""
    try:
        decode(code)
    except IdentityCodecError:
        return False
    return True


def format_display(code: str) -> str:
    """Hyphenated display form: SS-DD-CCCC-LL-NNNNN-TT."""
    return decode(code).components.display()


def bulk_validate(codes: Iterable[str]) -> BulkValidationReport:
    """Validate many codes, reporting each outcome without raising."""
    results = []
    for code in codes:
        try:
            decoded = decode(code)
        except IdentityCodecError as exc:
            results.append(
                CodeValidationResult(
                    code=str(code),
                    is_valid=False,
                    error=str(exc),
                )
            )
        else:
            results.append(
                CodeValidationResult(
                    code=code,
                    is_valid=True,
                    decoded=decoded,
                )
            )
    return BulkValidationReport(results=results)


# ------------------------------------------------------------------
# Location prefix description
# ------------------------------------------------------------------


_LEVELS = {
    2: LocationLevel.STATE,
    4: LocationLevel.DISTRICT,
    8: LocationLevel.CITY,
    10: LocationLevel.LOCATION,
}


def describe_location_prefix(prefix: str) -> LocationPrefixInfo:
    """
    Break a partial or complete location prefix into its parts.

    Missing trailing parts are reported as X-padding.
    """
    if not prefix or len(prefix) < 4:
        raise InvalidFieldError(
            "location_prefix",
            prefix,
            "Location prefix must be at least 4 characters",
        )
    if len(prefix) > LOCATION_PREFIX_LENGTH:
        raise InvalidFieldError(
            "location_prefix",
            prefix,
            f"Location prefix cannot exceed {LOCATION_PREFIX_LENGTH} characters",
        )

    state = prefix[0:2]
    district = prefix[2:4]
    city = prefix[4:8] if len(prefix) >= 8 else "XXXX"
    location = prefix[8:10] if len(prefix) >= 10 else "XX"

    description = f"State: {state}"
    if district != "XX":
        description += f", District: {district}"
    if city != "XXXX":
        description += f", City: {city}"
    if location != "XX":
        description += f", Location: {location}"

    return LocationPrefixInfo(
        location_prefix=prefix,
        state_code=state,
        district_code=district,
        city_code=city,
        location_code=location,
        is_complete=len(prefix) == LOCATION_PREFIX_LENGTH,
        level=_LEVELS.get(len(prefix), LocationLevel.PARTIAL),
        description=description,
    )


# ------------------------------------------------------------------
# QR label payload
# ------------------------------------------------------------------


def generate_uid(*, now: Optional[datetime] = None) -> str:
    """Mint a structure UID of the form UID-YYYYMMDD-NNN."""
    now = now or datetime.now(timezone.utc)
    return f"UID-{now:%Y%m%d}-{random.randint(0, 999):03d}"


def qr_code_data(
    code: str,
    uid: str,
    zip_code: str,
    *,
    generated_at: Optional[datetime] = None,
) -> QRCodeData:
    """
    Build the QR label payload for a structure with an assigned code.

    The uid is supplied by the caller, usually from generate_uid().
    """
    decode(code)

    generated_at = generated_at or datetime.now(timezone.utc)
    payload = {
        "structure_id": code,
        "uid": uid,
        "zip_code": zip_code,
        "generated_at": generated_at.isoformat(),
        "version": QR_PAYLOAD_VERSION,
    }

    return QRCodeData(
        qr_data=payload,
        qr_string=json.dumps(payload, separators=(",", ":")),
        display_text=f"{code} | {uid} | PIN: {zip_code}",
    )
