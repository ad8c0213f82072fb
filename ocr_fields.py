"""Form fields and signature boxes detected by AWS Textract.

``analyze_with_textract`` is the only function that talks to AWS; the rest
works on the plain block list so it can run against stored analyses.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import Settings, get_settings
from coordinates import bbox_to_pdf_rect, nudge_offset
from errors import UpstreamServiceError
from field_data import resolve_detected_key
from layer_compiler import NudgeBook
from models import (
    Analysis,
    AnalysisWarnings,
    BoundingBox,
    DetectedField,
    DetectedSignature,
    LowConfidenceKey,
    MappedField,
)
from overlay_fill import Stamp
from text_fit import MeasureFn, fit_text, font_measure

logger = logging.getLogger(__name__)

BOX_PADDING = 2
MIN_BOX_WIDTH = 10


def _client(settings: Settings):
    if not (settings.aws_region and settings.aws_access_key_id and settings.aws_secret_access_key):
        raise UpstreamServiceError("Missing AWS credentials or region in environment variables")
    return boto3.client(
        "textract",
        region_name=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
    )


def analyze_with_textract(pdf_bytes: bytes, settings: Optional[Settings] = None) -> List[dict]:
    """Run FORMS + SIGNATURES analysis and return the raw block list."""
    client = _client(settings or get_settings())
    try:
        response = client.analyze_document(
            Document={"Bytes": pdf_bytes},
            FeatureTypes=["FORMS", "SIGNATURES"],
        )
    except (BotoCoreError, ClientError) as e:
        raise UpstreamServiceError(f"Textract analyze_document failed: {e}") from e
    return response.get("Blocks", [])


# --- block parsing -------------------------------------------------------
def _relationship_ids(block: dict, rel_type: str) -> List[str]:
    for rel in block.get("Relationships") or []:
        if rel.get("Type") == rel_type:
            return rel.get("Ids") or []
    return []


def text_from_block(block: dict, block_map: Dict[str, dict]) -> str:
    parts = []
    for child_id in _relationship_ids(block, "CHILD"):
        child = block_map.get(child_id)
        if not child:
            continue
        if child.get("BlockType") == "WORD" and child.get("Text"):
            parts.append(child["Text"])
        if child.get("BlockType") == "SELECTION_ELEMENT" and child.get("SelectionStatus") == "SELECTED":
            parts.append("X")
    return " ".join(parts).strip()


def _bounding_box(block: Optional[dict]) -> Optional[BoundingBox]:
    bbox = ((block or {}).get("Geometry") or {}).get("BoundingBox")
    if not bbox:
        return None
    return BoundingBox(
        left=bbox.get("Left") or 0,
        top=bbox.get("Top") or 0,
        width=bbox.get("Width") or 0,
        height=bbox.get("Height") or 0,
    )


def parse_textract_blocks(blocks: Sequence[dict]) -> Tuple[List[DetectedField], List[DetectedSignature]]:
    block_map = {b["Id"]: b for b in blocks if b.get("Id")}
    fields: List[DetectedField] = []
    signatures: List[DetectedSignature] = []

    for block in blocks:
        block_type = block.get("BlockType")

        if block_type == "KEY_VALUE_SET" and "KEY" in (block.get("EntityTypes") or []):
            key_text = text_from_block(block, block_map)
            value_ids = _relationship_ids(block, "VALUE")
            if not value_ids:
                continue
            value_block = block_map.get(value_ids[0])
            bbox = _bounding_box(value_block)
            if not key_text or bbox is None:
                continue
            fields.append(DetectedField(
                id=value_ids[0],
                page=value_block.get("Page") or block.get("Page") or 1,
                key_text=key_text,
                confidence=value_block.get("Confidence") or block.get("Confidence") or 0,
                bounding_box=bbox,
            ))

        elif block_type == "SIGNATURE":
            bbox = _bounding_box(block)
            if bbox is None or not block.get("Id"):
                continue
            signatures.append(DetectedSignature(
                id=block["Id"],
                page=block.get("Page") or 1,
                confidence=block.get("Confidence") or 0,
                bounding_box=bbox,
            ))

    return fields, signatures


# --- analysis ------------------------------------------------------------
def map_detected_fields(fields: Sequence[DetectedField], profile: dict) -> List[MappedField]:
    mapped = []
    for f in fields:
        resolved = resolve_detected_key(f.key_text, profile)
        if resolved is None:
            logger.debug("Dropping unmapped key: %r", f.key_text)
            continue
        field_key, value = resolved
        mapped.append(MappedField(**f.model_dump(), mapped_field_key=field_key, value=value))
    return mapped


def build_analysis(
    fields: Sequence[DetectedField],
    signatures: Sequence[DetectedSignature],
    profile: dict,
    *,
    source_filename: str = "source.pdf",
    low_confidence_threshold: float = 80,
    document_id: Optional[str] = None,
) -> Analysis:
    mapped = map_detected_fields(fields, profile)
    low = [f for f in mapped if (f.confidence or 0) < low_confidence_threshold]
    return Analysis(
        id=document_id or str(uuid.uuid4()),
        created_at=datetime.now(timezone.utc).isoformat(),
        source_filename=source_filename,
        mapped_fields=mapped,
        signatures=list(signatures),
        warnings=AnalysisWarnings(
            low_confidence_count=len(low),
            low_confidence_keys=[
                LowConfidenceKey(key_text=f.key_text, confidence=f.confidence, page=f.page) for f in low
            ],
        ),
    )


def best_signature(signatures: Sequence[DetectedSignature]) -> Optional[DetectedSignature]:
    if not signatures:
        return None
    return max(signatures, key=lambda s: s.confidence or 0)


def build_detected_stamps(
    analysis: Analysis,
    page_sizes: Sequence[Tuple[float, float]],
    *,
    nudges: Optional[NudgeBook] = None,
    with_signature: bool = True,
    measure: Optional[MeasureFn] = None,
) -> List[Stamp]:
    """Stamps for an analysed document; OCR pages are 1-based."""
    measure = measure or font_measure("helv")
    stamps: List[Stamp] = []

    for field in analysis.mapped_fields:
        page_index = max(0, (field.page or 1) - 1)
        if page_index >= len(page_sizes):
            logger.warning("Page %s not found for detected field: %s", field.page, field.id)
            continue
        text = (field.value or "").strip()
        if not text:
            continue

        page_width, page_height = page_sizes[page_index]
        bb = field.bounding_box
        box_x, y_bottom, box_w, _ = bbox_to_pdf_rect(bb.left, bb.top, bb.width, bb.height, page_width, page_height)

        nudge = nudges.get(field.id) if nudges else None
        offset = nudge_offset(nudge.dx_ratio, nudge.dy_ratio, page_width, page_height) if nudge else None
        dx, dy = offset if offset else (0.0, 0.0)

        fit = fit_text(text, max(MIN_BOX_WIDTH, box_w - 2 * BOX_PADDING), measure, initial_size=10, fallback_size=8)
        stamps.append(Stamp(
            page_index,
            box_x + BOX_PADDING + dx,
            y_bottom + BOX_PADDING - dy,
            text=fit.text,
            fontsize=fit.font_size,
        ))

    sig = best_signature(analysis.signatures) if with_signature else None
    if sig is not None:
        page_index = max(0, (sig.page or 1) - 1)
        if page_index < len(page_sizes):
            page_width, page_height = page_sizes[page_index]
            bb = sig.bounding_box
            box_x, y_bottom, box_w, box_h = bbox_to_pdf_rect(
                bb.left, bb.top, bb.width, bb.height, page_width, page_height,
            )
            stamps.append(Stamp(page_index, box_x, y_bottom, kind="signature", width=box_w, height=box_h))
        else:
            logger.warning("Page %s not found for signature block: %s", sig.page, sig.id)

    return stamps
