"""End-to-end fills: pick positions, resolve values, bake the PDF.

Three position sources share the same compositor:

1. Template fill   - a stored template (matched by filename or chosen by id)
                     is compiled into editor layers, which the editor may
                     adjust before they are baked.
2. Fixed map fill  - one of the hand-authored ``document_maps`` tables.
3. Detected fill   - boxes found by Textract (see ``ocr_fields``), with
                     optional nudges from the preview.

Usage
-----
python fill_form_pipeline.py \\
    --pdf path/to/form.pdf \\
    --profile company_profile.json \\
    [--template-id "SBD 4" | --fixed-map [SBD4]] \\
    --pdf-out filled.pdf [--layers-out layers.json]
"""

import argparse
import json
import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from config import configure_logging, get_settings
from coordinates import EDITOR_SCALE
from document_maps import detect_form_type, stamps_for_profile
from errors import TemplateNotFoundError
from field_data import build_field_data, decode_signature, image_size, load_profile
from layer_compiler import NudgeBook, apply_layer_edits, compile_template
from models import Analysis, LayerEdit, Nudge, TemplateMapping, TextLayer
from ocr_fields import build_detected_stamps
from overlay_fill import draw_stamps, open_pdf, page_sizes, render_layers, save_pdf
from template_matcher import detect_template
from template_store import TemplateStore

logger = logging.getLogger(__name__)


def resolve_template_id(filename: Optional[str], manual_id: Optional[str], store: TemplateStore) -> str:
    """Manual choice wins; otherwise match the filename against stored templates."""
    if manual_id:
        logger.info("Using manually selected template: %s", manual_id)
        return manual_id
    template_id = detect_template(filename, store)
    if not template_id:
        raise TemplateNotFoundError(f"No template matches {filename!r}")
    return template_id


def compile_layers(
    pdf_bytes: bytes,
    template: TemplateMapping,
    profile: dict,
    *,
    scale: float = EDITOR_SCALE,
    edits: Sequence[LayerEdit] = (),
    today: Optional[date] = None,
) -> Tuple[List[TextLayer], List[Tuple[float, float]]]:
    """Layers for ``template`` on this document, with the editor's edits applied."""
    doc = open_pdf(pdf_bytes)
    try:
        sizes = page_sizes(doc)
    finally:
        doc.close()

    layers = compile_template(template, build_field_data(profile, today), sizes, scale=scale)
    if edits:
        layers = apply_layer_edits(layers, edits, sizes, scale=scale)
    return layers, sizes


def bake_layers(
    pdf_bytes: bytes,
    layers: Sequence[TextLayer],
    profile: dict,
    *,
    scale: float = EDITOR_SCALE,
) -> bytes:
    return render_layers(pdf_bytes, layers, signature_png=decode_signature(profile), scale=scale)


def fill_fixed_map(
    pdf_bytes: bytes,
    profile: dict,
    form_type: Optional[str] = None,
    default_form_type: Optional[str] = None,
) -> Tuple[bytes, str]:
    """Stamp one of the hand-authored document maps; returns (pdf, form type used)."""
    doc = open_pdf(pdf_bytes)
    try:
        if not form_type:
            text = "".join(page.get_text() for page in doc)
            form_type = detect_form_type(text) or default_form_type or get_settings().default_form_type
        signature_png = decode_signature(profile)
        stamps = stamps_for_profile(
            form_type, profile, page_sizes(doc),
            signature_size=image_size(signature_png) if signature_png else None,
        )
        draw_stamps(doc, stamps, signature_png)
        logger.info("Filled %d fixed fields using %s", len(stamps), form_type)
        return save_pdf(doc), form_type
    finally:
        doc.close()


def sign_detected(
    pdf_bytes: bytes,
    analysis: Analysis,
    profile: dict,
    nudges: Optional[Dict[str, dict]] = None,
) -> bytes:
    """Stamp mapped OCR fields (shifted by ``nudges``) and the best signature box."""
    book = NudgeBook({field_id: Nudge.model_validate(n) for field_id, n in (nudges or {}).items()})
    doc = open_pdf(pdf_bytes)
    try:
        signature_png = decode_signature(profile)
        stamps = build_detected_stamps(
            analysis, page_sizes(doc), nudges=book, with_signature=signature_png is not None,
        )
        draw_stamps(doc, stamps, signature_png)
        return save_pdf(doc)
    finally:
        doc.close()


def main() -> None:
    parser = argparse.ArgumentParser(description="Fill a PDF form from the company profile.")
    parser.add_argument("--pdf", required=True, help="Path to the blank form PDF")
    parser.add_argument("--profile", help="Company profile JSON (defaults to PROFILE_PATH)")
    parser.add_argument("--template-id", help="Stored template to use; matched by filename when omitted")
    parser.add_argument("--fixed-map", nargs="?", const="", default=None,
                        help="Use a hand-authored document map (optionally name it, e.g. SBD4)")
    parser.add_argument("--pdf-out", default="filled.pdf", help="Where to write the filled PDF")
    parser.add_argument("--layers-out", help="Also write the compiled layers as JSON")
    args = parser.parse_args()

    configure_logging()
    settings = get_settings()
    pdf_path = Path(args.pdf)
    pdf_bytes = pdf_path.read_bytes()
    profile = load_profile(Path(args.profile) if args.profile else settings.profile_path)

    if args.fixed_map is not None:
        out, form_type = fill_fixed_map(pdf_bytes, profile, args.fixed_map or None)
        print(f"Filled using fixed map {form_type}")
    else:
        store = TemplateStore(settings.templates_dir)
        template_id = resolve_template_id(pdf_path.name, args.template_id, store)
        template = store.load_mapping(template_id)
        layers, _ = compile_layers(pdf_bytes, template, profile, scale=settings.editor_scale)
        print(f"Compiled {len(layers)} layers from template {template_id}")
        if args.layers_out:
            Path(args.layers_out).write_text(
                json.dumps([layer.to_wire() for layer in layers], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        out = bake_layers(pdf_bytes, layers, profile, scale=settings.editor_scale)

    Path(args.pdf_out).parent.mkdir(parents=True, exist_ok=True)
    Path(args.pdf_out).write_bytes(out)
    print(f"Saved filled PDF to: {args.pdf_out}")


if __name__ == "__main__":
    main()
