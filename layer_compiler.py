"""Compile template field mappings into editor text layers.

A layer is a self-contained description of one stamp (text, glyph, checkbox
or signature) in editor space. Compiling never touches the PDF; the same
layers feed the interactive preview and, later, ``overlay_fill``.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from coordinates import EDITOR_SCALE, Point, nudge_offset, ratio_to_editor
from field_data import SYMBOL_GLYPHS, resolve_value
from models import FieldMapping, LayerEdit, Nudge, TemplateMapping, TextLayer

logger = logging.getLogger(__name__)

DEFAULT_FONT_SIZE = 14
MIN_FONT_SIZE = 10
CHAR_WIDTH_ESTIMATE = 8  # px per character at DEFAULT_FONT_SIZE
DASH_GLYPH_SIZE = 28
GLYPH_SIZE = 24

DEFAULT_BOX = {
    "signature": (150, 50),
    "checkbox": (20, 20),
}

SYMBOL_TEXTS = {"✓", "✗", "—", "-", "X", "x"}
CHECKED_VALUES = {"x", "true", "yes", "on", "1", "checked"}

PageSize = Tuple[float, float]


def is_symbol_text(text: str) -> bool:
    return (text or "").strip() in SYMBOL_TEXTS


def glyph_font_size(glyph: str) -> int:
    return DASH_GLYPH_SIZE if glyph.strip() in ("—", "-") else GLYPH_SIZE


def estimate_font_size(text: str, max_width: float) -> int:
    """Quick preview sizing: shrink proportionally, never below MIN_FONT_SIZE."""
    estimated = len(text) * CHAR_WIDTH_ESTIMATE
    if estimated <= max_width:
        return DEFAULT_FONT_SIZE
    return max(MIN_FONT_SIZE, math.floor(DEFAULT_FONT_SIZE * (max_width / estimated)))


def compile_field(
    field_name: str,
    mapping: FieldMapping,
    value: Optional[str],
    page_width: float,
    page_height: float,
    *,
    scale: float = EDITOR_SCALE,
    layer_id: Optional[str] = None,
    nudge: Optional[Nudge] = None,
) -> Optional[TextLayer]:
    if not value:
        return None

    coord = ratio_to_editor(Point(mapping.x_ratio, mapping.y_ratio), page_width, page_height, scale)
    if nudge is not None:
        offset = nudge_offset(nudge.dx_ratio, nudge.dy_ratio, page_width * scale, page_height * scale)
        coord = Point(coord.x + offset.x, coord.y + offset.y)

    text = value
    font_size = DEFAULT_FONT_SIZE
    glyph = SYMBOL_GLYPHS.get(field_name)
    if glyph:
        text = glyph
        font_size = glyph_font_size(glyph)
    elif mapping.max_width_ratio:
        font_size = estimate_font_size(text, mapping.max_width_ratio * page_width * scale)

    default_w, default_h = DEFAULT_BOX.get(mapping.type, (None, None))
    width = mapping.width_ratio * page_width * scale if mapping.width_ratio else default_w
    height = mapping.height_ratio * page_height * scale if mapping.height_ratio else default_h

    layer = TextLayer(
        id=layer_id or field_name,
        text=text,
        x=coord.x,
        y=coord.y,
        font_size=font_size,
        font_family="Helvetica",
        color=mapping.color or "#000000",
        bold=True,
        italic=False,
        page=mapping.page,
        type=mapping.type or "text",
        width=width,
        height=height,
        checked=mapping.type == "checkbox" and value.strip().lower() in CHECKED_VALUES,
    )
    logger.debug(
        "Created layer %s at Editor(%.1f, %.1f): %r",
        layer.id, layer.x, layer.y, text[:30],
    )
    return layer


def instance_id(field_name: str, index: int) -> str:
    return f"{field_name}#{index}"


class NudgeBook:
    """Accumulated nudges for one render/sign request, keyed by layer id.

    Nothing here is written back to the template; every request starts empty.
    """

    def __init__(self, initial: Optional[Dict[str, Nudge]] = None) -> None:
        self._nudges: Dict[str, Nudge] = {}
        for field_id, nudge in (initial or {}).items():
            self.add(field_id, nudge)

    def add(self, field_id: str, nudge: Nudge) -> Nudge:
        total = self._nudges.get(field_id, Nudge()) + nudge
        self._nudges[field_id] = total
        return total

    def get(self, field_id: str) -> Optional[Nudge]:
        return self._nudges.get(field_id)

    def __contains__(self, field_id: str) -> bool:
        return field_id in self._nudges

    def __len__(self) -> int:
        return len(self._nudges)

    def as_dict(self) -> Dict[str, Nudge]:
        return dict(self._nudges)


def compile_template(
    template: TemplateMapping,
    field_data: Dict[str, str],
    page_sizes: Sequence[PageSize],
    *,
    scale: float = EDITOR_SCALE,
    nudges: Optional[NudgeBook] = None,
) -> List[TextLayer]:
    layers: List[TextLayer] = []
    for field_name, mappings in template.fields.items():
        value = resolve_value(field_name, mappings, field_data)
        if value is None:
            continue

        for index, mapping in enumerate(mappings):
            if mapping.page >= len(page_sizes):
                logger.warning("Page %s not found for field: %s", mapping.page, field_name)
                continue
            page_width, page_height = page_sizes[mapping.page]
            layer_id = instance_id(field_name, index)
            layer = compile_field(
                field_name, mapping, value, page_width, page_height,
                scale=scale,
                layer_id=layer_id,
                nudge=nudges.get(layer_id) if nudges else None,
            )
            if layer is not None:
                layers.append(layer)

    logger.info("Created %d text layers for template: %s", len(layers), template.template_id)
    return layers


def apply_layer_edits(
    layers: Iterable[TextLayer],
    edits: Iterable[LayerEdit],
    page_sizes: Sequence[PageSize],
    *,
    scale: float = EDITOR_SCALE,
) -> List[TextLayer]:
    """Apply the editor's ordered edit list to a set of compiled layers.

    An edit carrying a ``layer`` replaces the layer with that id (or adds it
    when the id is new). Nudges for the same id accumulate, then each layer is
    shifted once by its total.
    """
    by_id: Dict[str, TextLayer] = {layer.id: layer for layer in layers}
    book = NudgeBook()
    for edit in edits:
        if edit.layer is not None:
            by_id[edit.field_id] = edit.layer.model_copy(update={"id": edit.field_id})
        if edit.nudge is not None:
            book.add(edit.field_id, edit.nudge)

    result: List[TextLayer] = []
    for layer_id, layer in by_id.items():
        nudge = book.get(layer_id)
        if nudge is not None and 0 <= layer.page < len(page_sizes):
            page_width, page_height = page_sizes[layer.page]
            offset = nudge_offset(nudge.dx_ratio, nudge.dy_ratio, page_width * scale, page_height * scale)
            layer = layer.model_copy(update={"x": layer.x + offset.x, "y": layer.y + offset.y})
        result.append(layer)
    return result
