from datetime import date

import pytest

from field_data import (
    build_field_data,
    decode_signature,
    format_long_date,
    legal_name,
    map_company_data_to_fields,
    normalize_key,
    postal_address,
    resolve_detected_key,
    resolve_value,
)
from models import FieldMapping


def _mapping(**extra) -> FieldMapping:
    return FieldMapping.model_validate({"page": 0, "xRatio": 0.1, "yRatio": 0.2, **extra})


def test_format_long_date() -> None:
    assert format_long_date(date(2026, 1, 5)) == "5 January 2026"


def test_build_field_data_aliases(profile: dict) -> None:
    data = build_field_data(profile, today=date(2026, 1, 15))

    assert data["todayDate"] == data["currentDate"] == data["date"] == "15 January 2026"
    assert data["legalName"] == data["bidderName"] == "Acme CC"
    assert data["rsaResident"] == "Yes"
    assert data["hasBranch"] == "No"
    assert data["womenOwned"] == "51%"
    assert data["youthOwned"] == ""
    assert data["directorName"] == "Jane Doe"
    assert data["director2Name"] == ""
    assert data["signature"] == "Signature"
    assert data["tick"] == data["checkmark"] == "✓"
    assert data["dash"] == data["cancel"] == "—"
    assert data["cross"] == "✗"


def test_resolve_value_drops_empty_values(profile: dict) -> None:
    data = build_field_data(profile)
    assert resolve_value("director2Name", [_mapping()], data) is None
    assert resolve_value("unknownField", [_mapping()], data) is None


def test_resolve_value_uses_custom_value() -> None:
    mappings = [_mapping(isCustom=True, customValue="N/A"), _mapping(isCustom=True, customValue="ignored")]
    assert resolve_value("notes", mappings, {}) == "N/A"
    assert resolve_value("notes", [_mapping(isCustom=True, customValue="")], {}) is None


def test_normalize_key() -> None:
    assert normalize_key("  Name of Bidder: ") == "name of bidder"


@pytest.mark.parametrize(
    "key_text, field_key",
    [
        ("Name of Bidder:", "NAME_OF_BIDDER"),
        ("Postal Address", "POSTAL_ADDRESS"),
        ("Physical address of business", "STREET_ADDRESS"),
        ("Cellphone number", "CELL_NUMBER"),
        ("VAT Registration Number", "VAT_NUMBER"),
        ("CSD supplier number", "CSD_NUMBER"),
        ("E-mail / Email address", "EMAIL"),
    ],
)
def test_resolve_detected_key(profile: dict, key_text: str, field_key: str) -> None:
    resolved = resolve_detected_key(key_text, profile)
    assert resolved is not None
    assert resolved[0] == field_key
    assert resolved[1]


def test_resolve_detected_key_misses(profile: dict) -> None:
    assert resolve_detected_key("Favourite colour", profile) is None
    profile["companyProfile"]["basic"]["vatNumber"] = ""
    assert resolve_detected_key("VAT number", profile) is None


def test_legacy_profile_shape() -> None:
    legacy = {
        "company": {
            "name": "Old Co",
            "address": {"street": "1 Main", "city": "Town", "postalCode": "0001"},
            "contact": {"phone": "011 000 0000"},
        }
    }
    assert legal_name(legacy) == "Old Co"
    assert postal_address(legacy) == "1 Main, Town, 0001"
    assert map_company_data_to_fields(legacy)["CELL_NUMBER"] == "011 000 0000"


def test_decode_signature(profile: dict) -> None:
    png = decode_signature(profile)
    assert png is not None
    assert png.startswith(b"\x89PNG")


def test_decode_signature_rejects_garbage() -> None:
    assert decode_signature({"signature": {"base64": "not-an-image"}}) is None
    assert decode_signature({}) is None
