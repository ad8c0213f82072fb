"""Draw text layers, glyphs and the signature onto a PDF using PyMuPDF.

This is the one place that writes into a document. Callers hand over either
editor ``TextLayer`` objects (template fill, editor save/download) or ready
made ``Stamp`` objects in PDF space (fixed document maps, OCR analysis); both
end up in :func:`draw_stamps`.

Drawing is best effort: a layer that cannot be drawn is logged and skipped,
while a PDF that cannot be opened raises ``DocumentLoadError``.
"""

import argparse
import json
import logging
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import fitz  # PyMuPDF

from coordinates import EDITOR_SCALE, Point, baseline_offset, editor_to_pdf
from errors import DocumentLoadError
from layer_compiler import DEFAULT_BOX, DEFAULT_FONT_SIZE, GLYPH_SIZE, glyph_font_size, is_symbol_text
from models import TextLayer

logger = logging.getLogger(__name__)

PX_TO_PT = 0.75

# (regular, bold) base-14 font names, picked by a substring of the family.
FONT_FAMILIES = {
    "Times": ("tiro", "tibo"),
    "Courier": ("cour", "cobo"),
}
SANS = ("helv", "hebo")

# Glyphs outside WinAnsi come from ZapfDingbats.
DINGBATS = {"✓": "3", "✗": "7"}

WINANSI = {"—": "\x97", "–": "\x96", "‘": "\x91", "’": "\x92", "“": "\x93", "”": "\x94", "…": "\x85", "€": "\x80"}

Color = Tuple[float, float, float]


@dataclass
class Stamp:
    """One drawing operation in PDF space (points, origin bottom-left).

    For text ``y`` is the baseline; for the signature ``(x, y)`` is the
    bottom-left corner of the image box.
    """

    page: int
    x: float
    y: float
    kind: str = "text"  # "text" | "signature"
    text: str = ""
    fontname: str = "helv"
    fontsize: float = 10
    color: Color = (0, 0, 0)
    width: float = 0.0
    height: float = 0.0


def hex_to_rgb(value: Optional[str]) -> Color:
    hex_color = (value or "").lstrip("#")
    if len(hex_color) != 6:
        return (0, 0, 0)
    try:
        return tuple(int(hex_color[i:i + 2], 16) / 255 for i in (0, 2, 4))
    except ValueError:
        return (0, 0, 0)


def pick_font(family: Optional[str], bold: bool) -> str:
    regular, heavy = SANS
    for key, pair in FONT_FAMILIES.items():
        if key in (family or ""):
            regular, heavy = pair
            break
    return heavy if bold else regular


def _baseline_drop(size_px: float, symbol: bool = False) -> float:
    # Symbols use the 0.85 rule on the point size; text uses 0.75 on pixels.
    if symbol:
        return baseline_offset(size_px * PX_TO_PT, symbol=True)
    return baseline_offset(size_px)


def layer_to_stamp(layer: TextLayer, page_height: float, scale: float = EDITOR_SCALE) -> Optional[Stamp]:
    """Convert an editor layer to a PDF-space stamp; ``None`` means nothing to draw."""
    pdf = editor_to_pdf(Point(layer.x, layer.y), page_height, scale)

    if layer.type == "signature":
        default_w, default_h = DEFAULT_BOX["signature"]
        width = (layer.width or default_w) / scale
        height = (layer.height or default_h) / scale
        return Stamp(layer.page, pdf.x, pdf.y - height, kind="signature", width=width, height=height)

    if layer.type == "checkbox":
        if not layer.checked:
            return None
        return Stamp(
            layer.page, pdf.x, pdf.y - _baseline_drop(GLYPH_SIZE, symbol=True),
            text="✓", fontname=SANS[1], fontsize=GLYPH_SIZE * PX_TO_PT,
        )

    text = layer.text or ""
    if not text.strip():
        return None
    symbol = is_symbol_text(text)
    size = layer.font_size or DEFAULT_FONT_SIZE
    fontname = pick_font(layer.font_family, layer.bold)
    if symbol:
        text = text.strip()
        size = max(size, glyph_font_size(text))
        fontname = SANS[1]
    return Stamp(
        layer.page, pdf.x, pdf.y - _baseline_drop(size, symbol),
        text=text, fontname=fontname, fontsize=size * PX_TO_PT, color=hex_to_rgb(layer.color),
    )


class SignatureImage:
    """Inserts the signature PNG once per document, then reuses its xref."""

    def __init__(self, png_bytes: Optional[bytes]) -> None:
        self.png_bytes = png_bytes
        self.xref = 0

    def draw(self, page: fitz.Page, rect: fitz.Rect) -> None:
        if not self.png_bytes:
            raise ValueError("no signature image available")
        if self.xref:
            page.insert_image(rect, xref=self.xref, keep_proportion=False)
        else:
            self.xref = page.insert_image(rect, stream=self.png_bytes, keep_proportion=False)


def _encode_text(text: str, fontname: str) -> Tuple[str, str]:
    if text in DINGBATS:
        return DINGBATS[text], "zadb"
    return "".join(WINANSI.get(ch, ch) for ch in text), fontname


def draw_stamp(page: fitz.Page, stamp: Stamp, signature: SignatureImage) -> None:
    page_height = page.rect.height
    # PyMuPDF measures y from the top of the page.
    if stamp.kind == "signature":
        rect = fitz.Rect(
            stamp.x, page_height - (stamp.y + stamp.height),
            stamp.x + stamp.width, page_height - stamp.y,
        )
        signature.draw(page, rect)
        return

    text, fontname = _encode_text(stamp.text, stamp.fontname)
    page.insert_text(
        fitz.Point(stamp.x, page_height - stamp.y),
        text,
        fontname=fontname,
        fontsize=stamp.fontsize,
        color=stamp.color,
    )


def draw_stamps(doc: fitz.Document, stamps: Iterable[Stamp], signature_png: Optional[bytes] = None) -> int:
    """Draw ``stamps`` page by page; returns how many were drawn."""
    by_page: Dict[int, List[Stamp]] = defaultdict(list)
    for stamp in stamps:
        by_page[stamp.page].append(stamp)

    signature = SignatureImage(signature_png)
    drawn = 0
    for page_index in sorted(by_page):
        if page_index < 0 or page_index >= doc.page_count:
            logger.warning("Skipping %d stamp(s) for missing page %s", len(by_page[page_index]), page_index)
            continue
        page = doc[page_index]
        for stamp in by_page[page_index]:
            try:
                draw_stamp(page, stamp, signature)
            except Exception:
                logger.exception("Failed to draw %s stamp on page %s", stamp.kind, page_index)
                continue
            drawn += 1
    return drawn


def composite_layers(
    doc: fitz.Document,
    layers: Sequence[TextLayer],
    *,
    signature_png: Optional[bytes] = None,
    scale: float = EDITOR_SCALE,
) -> int:
    stamps: List[Stamp] = []
    for layer in layers:
        if layer.page < 0 or layer.page >= doc.page_count:
            logger.warning("Layer %s points at missing page %s", layer.id, layer.page)
            continue
        try:
            stamp = layer_to_stamp(layer, doc[layer.page].rect.height, scale)
        except Exception:
            logger.exception("Failed to convert layer %s", layer.id)
            continue
        if stamp is not None:
            stamps.append(stamp)

    drawn = draw_stamps(doc, stamps, signature_png)
    logger.info("Saved %d of %d layers to PDF", drawn, len(layers))
    return drawn


def open_pdf(pdf_bytes: bytes) -> fitz.Document:
    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except (fitz.FileDataError, RuntimeError, ValueError) as e:
        raise DocumentLoadError(f"Cannot open PDF: {e}") from e
    if doc.page_count == 0:
        doc.close()
        raise DocumentLoadError("PDF has no pages")
    return doc


def page_sizes(doc: fitz.Document) -> List[Tuple[float, float]]:
    return [(page.rect.width, page.rect.height) for page in doc]


def save_pdf(doc: fitz.Document) -> bytes:
    return doc.tobytes(garbage=3, deflate=True)


def render_layers(
    pdf_bytes: bytes,
    layers: Sequence[TextLayer],
    *,
    signature_png: Optional[bytes] = None,
    scale: float = EDITOR_SCALE,
) -> bytes:
    """Bake ``layers`` into ``pdf_bytes`` and return the new PDF."""
    doc = open_pdf(pdf_bytes)
    try:
        composite_layers(doc, layers, signature_png=signature_png, scale=scale)
        return save_pdf(doc)
    finally:
        doc.close()


def load_layers(json_path: str) -> List[TextLayer]:
    with open(json_path, "r", encoding="utf-8") as f:
        return [TextLayer.model_validate(item) for item in json.load(f)]


def main() -> None:
    from field_data import decode_signature, load_profile

    parser = argparse.ArgumentParser(description="Bake editor text layers into a PDF")
    parser.add_argument("--pdf-in", required=True, help="Path to the original, unfilled PDF")
    parser.add_argument("--layers-json", required=True, help="Path to a JSON list of text layers")
    parser.add_argument("--pdf-out", required=True, help="Path to write the filled PDF")
    parser.add_argument("--profile", help="Company profile JSON (for the signature image)")
    parser.add_argument("--scale", type=float, default=EDITOR_SCALE, help="Editor zoom the layers were placed at")
    args = parser.parse_args()

    signature_png = decode_signature(load_profile(Path(args.profile))) if args.profile else None
    layers = load_layers(args.layers_json)
    out = render_layers(Path(args.pdf_in).read_bytes(), layers, signature_png=signature_png, scale=args.scale)
    Path(args.pdf_out).write_bytes(out)
    print(f"Saved overlay to: {args.pdf_out}")


if __name__ == "__main__":
    main()
