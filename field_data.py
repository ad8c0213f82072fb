"""Resolve field identifiers to the strings stamped on a form.

Two directions:

* canonical name -> value (template fill): ``build_field_data`` builds a fresh
  dictionary per request from the company profile and today's date.
* free-text OCR key -> canonical field (layout analysis): the raw key is
  normalised and run through ``DETECTED_KEY_RULES`` in order; the first rule
  that matches decides the field.

In both directions an empty value means the field is dropped, exactly as if
nothing had matched.
"""

import base64
import binascii
import io
import json
import logging
import re
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from models import FieldMapping

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]

SYMBOL_GLYPHS = {
    "tick": "✓",
    "checkmark": "✓",
    "dash": "—",
    "cancel": "—",
    "cross": "✗",
}

SIGNATURE_PLACEHOLDER = "Signature"


def load_profile(path: Path) -> dict:
    with Path(path).open("r", encoding="utf-8") as f:
        return json.load(f)


# --- profile accessors ---------------------------------------------------
# Profiles come in two shapes: the current {"companyProfile": {"basic": ...}}
# and the older {"company": {"name": ..., "address": {...}}}.
def _section(profile: dict, name: str) -> dict:
    return (profile.get("companyProfile") or {}).get(name) or {}


def _legacy(profile: dict) -> dict:
    return profile.get("company") or {}


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def legal_name(profile: dict) -> str:
    basic = _section(profile, "basic")
    return _text(basic.get("legalName") or basic.get("name") or _legacy(profile).get("name"))


def _legacy_address(profile: dict, with_postal_code: bool) -> str:
    address = _legacy(profile).get("address") or {}
    if not address:
        return ""
    parts = [_text(address.get("street")), _text(address.get("city"))]
    if with_postal_code:
        parts.append(_text(address.get("postalCode")))
    return ", ".join(parts).strip()


def postal_address(profile: dict) -> str:
    return _text(_section(profile, "contact").get("postalAddress")) or _legacy_address(profile, True)


def street_address(profile: dict) -> str:
    return _text(_section(profile, "contact").get("physicalAddress")) or _legacy_address(profile, False)


def contact_number(profile: dict) -> str:
    contact = _section(profile, "contact")
    legacy = _legacy(profile).get("contact") or {}
    return _text(contact.get("cellphone") or contact.get("telephone") or legacy.get("phone"))


def email(profile: dict) -> str:
    legacy = _legacy(profile).get("contact") or {}
    return _text(_section(profile, "contact").get("email") or legacy.get("email"))


def vat_number(profile: dict) -> str:
    return _text(_section(profile, "basic").get("vatNumber") or _legacy(profile).get("vatNumber"))


def csd_number(profile: dict) -> str:
    basic = _section(profile, "basic")
    return _text(
        basic.get("registrationNumber") or basic.get("csdNumber") or _legacy(profile).get("registrationNumber")
    )


# --- canonical name -> value ---------------------------------------------
def format_long_date(day: date) -> str:
    """``15 January 2026``"""
    return f"{day.day} {MONTH_NAMES[day.month - 1]} {day.year}"


def _yes_no(flag: Any) -> str:
    return "Yes" if flag else "No"


def _percent(value: Any) -> str:
    return "" if value is None else f"{value}%"


def build_field_data(profile: dict, today: Optional[date] = None) -> Dict[str, str]:
    basic = _section(profile, "basic")
    contact = _section(profile, "contact")
    directors = (profile.get("companyProfile") or {}).get("directors") or []
    compliance = _section(profile, "compliance")
    preferences = _section(profile, "preferences")
    symbols = _section(profile, "symbols")

    def director(index: int, key: str) -> str:
        return _text(directors[index].get(key)) if len(directors) > index else ""

    today_text = format_long_date(today or date.today())
    name = legal_name(profile)

    data = {
        "todayDate": today_text,
        "currentDate": today_text,
        "date": today_text,

        "legalName": name,
        "bidderName": name,
        "companyName": name,
        "registrationNumber": _text(basic.get("registrationNumber")),
        "companyType": _text(basic.get("companyType")),
        "vatNumber": vat_number(profile),
        "taxPin": _text(basic.get("taxPin")),
        "csdNumber": _text(basic.get("csdNumber")),

        "physicalAddress": street_address(profile),
        "postalAddress": postal_address(profile),
        "address": street_address(profile),
        "telephone": _text(contact.get("telephone")),
        "phone": _text(contact.get("telephone")),
        "cellphone": _text(contact.get("cellphone")),
        "fax": _text(contact.get("fax")),
        "email": email(profile),

        "directorName": director(0, "name"),
        "directorId": director(0, "idNumber"),
        "directorPosition": director(0, "position"),
        "director1Name": director(0, "name"),
        "director2Name": director(1, "name"),

        "rsaResident": _yes_no(compliance.get("rsaResident")),
        "hasBranch": _yes_no(compliance.get("hasBranch")),
        "accreditedRep": _yes_no(compliance.get("accreditedRep")),

        "womenOwned": _percent(preferences.get("womenOwnedPercent")),
        "youthOwned": _percent(preferences.get("youthOwnedPercent")),
        "pwdOwned": _percent(preferences.get("pwdOwnedPercent")),
        "pointsClaimed": _text(preferences.get("pointsClaimed")),

        # Lets signature fields flow through the compiler like any other field.
        "signature": SIGNATURE_PLACEHOLDER,
    }
    for name_, glyph in SYMBOL_GLYPHS.items():
        data[name_] = _text(symbols.get(name_)) or glyph
    return data


def resolve_value(field_name: str, mappings: Sequence[FieldMapping], field_data: Dict[str, str]) -> Optional[str]:
    """Value for ``field_name`` or ``None`` when the field should be dropped."""
    value = field_data.get(field_name)
    if not value and mappings:
        primary = mappings[0]
        if primary.is_custom and primary.custom_value:
            value = primary.custom_value
    if not value:
        logger.debug("No data for field: %s", field_name)
        return None
    return value


# --- OCR key -> canonical field ------------------------------------------
def normalize_key(raw: str) -> str:
    return re.sub(r"[^a-z0-9]+", " ", (raw or "").lower()).strip()


class KeyRule(NamedTuple):
    field_key: str
    match: Callable[[str], bool]
    value: Callable[[dict], str]


DETECTED_KEY_RULES: List[KeyRule] = [
    KeyRule(
        "NAME_OF_BIDDER",
        lambda s: "name of bidder" in s or s == "bidder" or "name of tenderer" in s or s == "name",
        legal_name,
    ),
    KeyRule(
        "POSTAL_ADDRESS",
        lambda s: "postal address" in s or ("address" in s and "postal" in s),
        postal_address,
    ),
    KeyRule(
        "STREET_ADDRESS",
        lambda s: "street address" in s or "physical address" in s or ("address" in s and "street" in s),
        street_address,
    ),
    KeyRule(
        "CELL_NUMBER",
        lambda s: "cell" in s or "mobile" in s or "contact number" in s,
        contact_number,
    ),
    KeyRule("VAT_NUMBER", lambda s: "vat" in s, vat_number),
    KeyRule(
        "CSD_NUMBER",
        lambda s: "csd" in s or "maaa" in s or "supplier number" in s or "registration number" in s,
        csd_number,
    ),
    KeyRule("EMAIL", lambda s: "email" in s, email),
]


def resolve_detected_key(key_text: str, profile: dict) -> Optional[Tuple[str, str]]:
    """``(field_key, value)`` for an OCR key, or ``None`` if it should be dropped."""
    key = normalize_key(key_text)
    for rule in DETECTED_KEY_RULES:
        if not rule.match(key):
            continue
        value = rule.value(profile)
        return (rule.field_key, value) if value else None
    return None


def map_company_data_to_fields(profile: dict) -> Dict[str, str]:
    """Values for the hand-authored document maps."""
    return {
        "NAME_OF_BIDDER": legal_name(profile),
        "POSTAL_ADDRESS": postal_address(profile),
        "STREET_ADDRESS": street_address(profile),
        "CELL_NUMBER": contact_number(profile),
        "VAT_NUMBER": vat_number(profile),
        "CSD_NUMBER": csd_number(profile),
    }


# --- signature -----------------------------------------------------------
def decode_signature(profile: dict) -> Optional[bytes]:
    """The profile's signature as PNG bytes, or ``None`` if absent/undecodable."""
    raw = _text((profile.get("signature") or {}).get("base64"))
    if not raw:
        return None
    raw = re.sub(r"^data:image/\w+;base64,", "", raw)
    try:
        data = base64.b64decode(raw, validate=False)
        with Image.open(io.BytesIO(data)) as img:
            buf = io.BytesIO()
            img.convert("RGBA").save(buf, format="PNG")
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        logger.warning("Signature image could not be decoded: %s", e)
        return None
    return buf.getvalue()


def image_size(png_bytes: bytes) -> Tuple[int, int]:
    with Image.open(io.BytesIO(png_bytes)) as img:
        return img.size
