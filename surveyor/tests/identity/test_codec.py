import json
import re
from datetime import datetime, timezone

import pytest

from surveyor.app.errors import (
    IdentityCodecError,
    InvalidFieldError,
    MalformedCodeError,
    UnknownTypeCodeError,
)
from surveyor.app.identity import codec
from surveyor.app.schemas.identity import (
    IdentityFields,
    LocationLevel,
    StructureType,
)
from surveyor.tests.fixtures.structures import IDENTITY_FIELDS


def fields(**overrides):
    return {**IDENTITY_FIELDS, **overrides}


# ---------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------


def test_encode_produces_fixed_width_code():
    code = codec.encode(fields(), 1)

    assert code == "MH01MUMBAN0000101"
    assert len(code) == 17
    assert codec.CODE_PATTERN.match(code)


def test_encode_accepts_model_and_mapping_identically():
    assert codec.encode(IdentityFields(**IDENTITY_FIELDS), 42) == codec.encode(
        fields(), 42
    )


@pytest.mark.parametrize(
    "city, expected",
    [
        ("Mumbai", "MUMB"),
        ("Goa", "GOAX"),
        ("New Delhi", "NEWD"),
        ("pune", "PUNE"),
    ],
)
def test_city_code_is_padded_or_truncated_to_four_letters(city, expected):
    assert codec.format_city_code(city) == expected


def test_district_code_is_zero_filled():
    assert codec.encode(fields(district_code=5), 7)[2:4] == "05"
    assert codec.encode(fields(district_code="7"), 7)[2:4] == "07"


def test_location_code_is_normalized_to_two_letters():
    assert codec.format_location_code("a") == "AX"
    assert codec.format_location_code("Andheri") == "AN"


def test_sequence_and_type_occupy_trailing_digits():
    code = codec.encode(fields(type_of_structure="industrial"), 12345)

    assert code[10:15] == "12345"
    assert code[15:17] == "05"


@pytest.mark.parametrize(
    "structure_type, type_code",
    [
        ("residential", "01"),
        ("commercial", "02"),
        ("educational", "03"),
        ("hospital", "04"),
        ("industrial", "05"),
        (StructureType.HOSPITAL, "04"),
    ],
)
def test_type_codes_are_stable(structure_type, type_code):
    assert codec.type_code_for(structure_type) == type_code


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"state_code": "XX"}, "state_code"),
        ({"state_code": "MAH"}, "state_code"),
        ({"district_code": "123"}, "district_code"),
        ({"district_code": "A1"}, "district_code"),
        ({"city_name": "Mumbai1"}, "city_name"),
        ({"city_name": ""}, "city_name"),
        ({"location_code": "1"}, "location_code"),
        ({"type_of_structure": "warehouse"}, "type_of_structure"),
    ],
)
def test_invalid_fields_are_reported_per_field(overrides, field):
    with pytest.raises(InvalidFieldError) as exc_info:
        codec.encode(fields(**overrides), 1)

    assert exc_info.value.field == field


def test_missing_field_is_reported_as_invalid_field():
    incomplete = dict(IDENTITY_FIELDS)
    del incomplete["city_name"]

    with pytest.raises(InvalidFieldError) as exc_info:
        codec.encode(incomplete, 1)

    assert exc_info.value.field == "city_name"


@pytest.mark.parametrize("sequence", [0, 100000, -1, True, "12a45", 1.5])
def test_out_of_range_or_non_integer_sequence_is_rejected(sequence):
    with pytest.raises(InvalidFieldError) as exc_info:
        codec.encode(fields(), sequence)

    assert exc_info.value.field == "sequence"


# ---------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------


def test_generate_returns_code_display_and_components():
    identity = codec.generate(fields(), 1)

    assert identity.code == "MH01MUMBAN0000101"
    assert identity.formatted_display == "MH-01-MUMB-AN-00001-01"
    assert identity.components.location_prefix == "MH01MUMBAN"
    assert identity.components.code() == identity.code
    assert identity.zip_code is None


def test_zip_code_is_recorded_outside_the_code():
    identity = codec.generate(fields(), 3, zip_code="400001")

    assert identity.zip_code.zip_code == "400001"
    assert identity.zip_code.state_code == "MH"
    assert "400001" not in identity.code


def test_malformed_zip_code_is_rejected():
    with pytest.raises(InvalidFieldError) as exc_info:
        codec.generate(fields(), 3, zip_code="4000")

    assert exc_info.value.field == "zip_code"


# ---------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------


def test_decode_round_trips_every_structure_type():
    for structure_type in StructureType:
        code = codec.encode(fields(type_of_structure=structure_type.value), 99)
        decoded = codec.decode(code)

        assert decoded.type_of_structure is structure_type
        assert decoded.components.code() == code


def test_decode_exposes_components():
    decoded = codec.decode("KA05BANGKR0042003")

    assert decoded.state_code == "KA"
    assert decoded.district_code == "05"
    assert decoded.city_code == "BANG"
    assert decoded.location_code == "KR"
    assert decoded.sequence == "00420"
    assert decoded.type_code == "03"
    assert decoded.type_of_structure is StructureType.EDUCATIONAL


@pytest.mark.parametrize(
    "code",
    [
        "",
        "MH01MUMBAN00001",
        "MH01MUMBAN000010101",
        "mh01mumban0000101",
        "MH0XMUMBAN0000101",
        "MH01MUMBAN000A101",
        "ZZ01MUMBAN0000101",
    ],
)
def test_malformed_codes_are_rejected(code):
    with pytest.raises(MalformedCodeError):
        codec.decode(code)


def test_unknown_type_code_is_distinguished_from_malformed():
    with pytest.raises(UnknownTypeCodeError):
        codec.decode("MH01MUMBAN0000109")


def test_decode_rejects_non_string():
    with pytest.raises(MalformedCodeError):
        codec.decode(12345678901234567)


def test_is_valid_never_raises():
    assert codec.is_valid("MH01MUMBAN0000101") is True
    assert codec.is_valid("MH01MUMBAN0000109") is False
    assert codec.is_valid(None) is False


def test_format_display():
    assert codec.format_display("DL02NEWDCP0001502") == "DL-02-NEWD-CP-00015-02"


def test_bulk_validate_reports_each_code():
    report = codec.bulk_validate(
        ["MH01MUMBAN0000101", "bogus", "MH01MUMBAN0000109"]
    )

    assert report.valid_count == 1
    assert report.invalid_count == 2
    assert report.results[0].decoded.type_of_structure is StructureType.RESIDENTIAL
    assert report.results[1].error
    assert report.results[2].decoded is None


def test_codec_errors_share_a_base_class():
    assert issubclass(InvalidFieldError, IdentityCodecError)
    assert issubclass(MalformedCodeError, IdentityCodecError)
    assert issubclass(UnknownTypeCodeError, IdentityCodecError)


# ---------------------------------------------------------------------
# Location prefixes and QR payloads
# ---------------------------------------------------------------------


def test_location_prefix_matches_generated_code():
    prefix = codec.location_prefix("mh", 1, "Mumbai", "an")

    assert prefix == "MH01MUMBAN"
    assert codec.encode(fields(), 1).startswith(prefix)


def test_describe_district_prefix():
    info = codec.describe_location_prefix("MH01")

    assert info.level is LocationLevel.DISTRICT
    assert info.is_complete is False
    assert info.city_code == "XXXX"
    assert info.description == "State: MH, District: 01"


def test_describe_complete_prefix():
    info = codec.describe_location_prefix("MH01MUMBAN")

    assert info.level is LocationLevel.LOCATION
    assert info.is_complete is True
    assert info.description == "State: MH, District: 01, City: MUMB, Location: AN"


def test_describe_uneven_prefix_is_partial():
    assert codec.describe_location_prefix("MH01MUM").level is LocationLevel.PARTIAL


@pytest.mark.parametrize("prefix", ["", "MH0", "MH01MUMBAN0"])
def test_describe_rejects_bad_prefix_length(prefix):
    with pytest.raises(InvalidFieldError):
        codec.describe_location_prefix(prefix)


def test_qr_code_data():
    generated_at = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)

    qr = codec.qr_code_data(
        "MH01MUMBAN0000101",
        "USR-001",
        "400001",
        generated_at=generated_at,
    )

    assert qr.display_text == "MH01MUMBAN0000101 | USR-001 | PIN: 400001"
    assert qr.qr_data["version"] == "1.0"
    assert json.loads(qr.qr_string) == qr.qr_data
    assert qr.qr_data["generated_at"] == generated_at.isoformat()


def test_generated_uid_carries_the_date():
    uid = codec.generate_uid(now=datetime(2024, 3, 7, tzinfo=timezone.utc))

    assert re.fullmatch(r"UID-20240307-\d{3}", uid)


def test_qr_code_data_accepts_a_minted_uid():
    uid = codec.generate_uid()

    qr = codec.qr_code_data("MH01MUMBAN0000101", uid, "400001")

    assert qr.qr_data["uid"] == uid


def test_qr_code_data_requires_a_valid_code():
    with pytest.raises(MalformedCodeError):
        codec.qr_code_data("nope", "USR-001", "400001")
