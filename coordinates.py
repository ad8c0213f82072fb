"""Conversions between the three coordinate spaces used by the overlay.

* Ratio space   - fractions of page width/height, origin top-left.
* Editor space  - ratio * page size * editor scale, origin top-left. This is
                  the canvas the interactive editor renders the page on.
* PDF space     - unscaled points, origin bottom-left.

All functions are pure. ``scale`` is always passed by the caller; it must be
the zoom factor the editor used to render the page.
"""

import math
from typing import NamedTuple, Tuple

EDITOR_SCALE = 1.5

# Ascent approximations used to turn a top-left anchor into a text baseline.
TEXT_BASELINE = 0.75
SYMBOL_BASELINE = 0.85


class Point(NamedTuple):
    x: float
    y: float


def finite(value: float) -> float:
    """Return ``value`` or 0.0 when it is NaN/inf (renderers reject those)."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


def ratio_to_editor(ratio: Point, page_width: float, page_height: float, scale: float = EDITOR_SCALE) -> Point:
    # The stored Y ratio is measured against bottom-up page geometry, so it is
    # flipped here to land on a top-down canvas.
    return Point(
        ratio.x * page_width * scale,
        (1 - ratio.y) * page_height * scale,
    )


def editor_to_pdf(coord: Point, page_height: float, scale: float = EDITOR_SCALE) -> Point:
    return Point(coord.x / scale, page_height - coord.y / scale)


def editor_to_ratio(coord: Point, page_width: float, page_height: float, scale: float = EDITOR_SCALE) -> Point:
    """Inverse of :func:`ratio_to_editor`; used when the designer saves a template."""
    return Point(
        (coord.x / scale) / page_width,
        1 - (coord.y / scale) / page_height,
    )


def editor_y_to_pdf_baseline(editor_y: float, page_height: float, font_size: float, scale: float = EDITOR_SCALE) -> float:
    """PDF y of the text baseline for an editor y, adding the approximate ascent."""
    pdf_y = editor_to_pdf(Point(0, editor_y), page_height, scale).y
    return pdf_y + font_size * TEXT_BASELINE


def baseline_offset(font_size: float, symbol: bool = False) -> float:
    """Distance from a layer's top edge down to where its glyphs sit.

    Single symbol glyphs are pushed slightly lower so they look centred in the
    box instead of sitting on a text baseline.
    """
    return font_size * (SYMBOL_BASELINE if symbol else TEXT_BASELINE)


def nudge_offset(dx_ratio: float, dy_ratio: float, width: float, height: float) -> Point:
    """A ratio nudge expressed in the units of a ``width`` x ``height`` surface.

    Positive ``dy_ratio`` moves down the page, as on screen.
    """
    return Point(finite(dx_ratio) * width, finite(dy_ratio) * height)


def bbox_to_pdf_rect(left: float, top: float, width: float, height: float,
                     page_width: float, page_height: float) -> Tuple[float, float, float, float]:
    """Page-fraction box (top-left origin) -> ``(x, y_bottom, width, height)`` in points."""
    box_x = left * page_width
    box_w = width * page_width
    box_h = height * page_height
    y_bottom = page_height - top * page_height - box_h
    return box_x, y_bottom, box_w, box_h
