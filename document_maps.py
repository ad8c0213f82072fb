"""Hand-authored coordinate tables for the standard bid documents.

Coordinates are PDF points measured from the top-left corner of the page; the
text baseline is placed at ``page_height - y``. Values are fitted with the
stamp-time policy in ``text_fit`` (10pt, then 8pt, then truncated).
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from field_data import map_company_data_to_fields
from overlay_fill import Stamp
from text_fit import MeasureFn, fit_text, font_measure

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 500
SIGNATURE_SCALE = 0.2


class FieldCoordinate(NamedTuple):
    page: int
    x: float
    y: float
    font_size: float = 10
    max_width: Optional[float] = None


DOCUMENT_MAPS: Dict[str, Dict[str, FieldCoordinate]] = {
    "SBD1_TOURISM": {
        "NAME_OF_BIDDER": FieldCoordinate(0, 130, 515, 10, 250),
        "POSTAL_ADDRESS": FieldCoordinate(0, 130, 495, 10, 250),
        "STREET_ADDRESS": FieldCoordinate(0, 130, 460, 10, 250),
        "CELL_NUMBER": FieldCoordinate(0, 130, 425, 10, 150),
        "VAT_NUMBER": FieldCoordinate(0, 130, 390, 10, 150),
        "CSD_NUMBER": FieldCoordinate(0, 420, 355, 10, 150),
        "SIGNATURE": FieldCoordinate(6, 150, 120, 10),
    },
    "SABS_RFP": {
        "NAME_OF_BIDDER": FieldCoordinate(1, 230, 655, 10, 300),
        "POSTAL_ADDRESS": FieldCoordinate(1, 230, 625, 10, 300),
        "STREET_ADDRESS": FieldCoordinate(1, 230, 595, 10, 300),
        "VAT_NUMBER": FieldCoordinate(1, 230, 480, 10, 200),
        "SIGNATURE": FieldCoordinate(20, 200, 150, 10),
    },
    "SBD4": {
        "NAME_OF_BIDDER": FieldCoordinate(0, 130, 515, 10, 250),
        "SIGNATURE": FieldCoordinate(1, 150, 120, 10),
    },
}


def detect_form_type(pdf_text: str) -> Optional[str]:
    lower = (pdf_text or "").lower()

    if "sabs" in lower or "south african bureau of standards" in lower or "rfp 201891" in lower:
        return "SABS_RFP"

    if any(k in lower for k in ("tourism", "sbd", "standard bidding document", "bidder", "tender")):
        return "SBD1_TOURISM"

    logger.info("No form type detected from %d characters of text", len(lower))
    return None


def get_form_mapping(form_type: Optional[str]) -> Optional[Dict[str, FieldCoordinate]]:
    if not form_type:
        return None
    return DOCUMENT_MAPS.get(form_type)


def build_fixed_stamps(
    form_map: Dict[str, FieldCoordinate],
    values: Dict[str, str],
    page_sizes: Sequence[Tuple[float, float]],
    *,
    signature_size: Optional[Tuple[float, float]] = None,
    measure: Optional[MeasureFn] = None,
) -> List[Stamp]:
    """Stamps for one fixed map.

    ``signature_size`` is the natural pixel size of the signature image; it is
    drawn at ``SIGNATURE_SCALE`` of that, hanging below its anchor point.
    """
    measure = measure or font_measure("helv")
    stamps: List[Stamp] = []

    for field_name, coord in form_map.items():
        if coord.page < 0 or coord.page >= len(page_sizes):
            logger.warning("Page %s not found for field: %s", coord.page, field_name)
            continue
        _, page_height = page_sizes[coord.page]

        if field_name == "SIGNATURE":
            if signature_size:
                width, height = (d * SIGNATURE_SCALE for d in signature_size)
                stamps.append(Stamp(
                    coord.page, coord.x, page_height - coord.y - height,
                    kind="signature", width=width, height=height,
                ))
            continue

        value = values.get(field_name)
        if not value:
            continue

        fit = fit_text(
            str(value), coord.max_width or DEFAULT_MAX_WIDTH, measure,
            initial_size=coord.font_size, fallback_size=8,
        )
        stamps.append(Stamp(coord.page, coord.x, page_height - coord.y, text=fit.text, fontsize=fit.font_size))
    return stamps


def stamps_for_profile(
    form_type: str,
    profile: dict,
    page_sizes: Sequence[Tuple[float, float]],
    signature_size: Optional[Tuple[float, float]] = None,
) -> List[Stamp]:
    form_map = get_form_mapping(form_type)
    if form_map is None:
        return []
    return build_fixed_stamps(
        form_map, map_company_data_to_fields(profile), page_sizes, signature_size=signature_size,
    )
