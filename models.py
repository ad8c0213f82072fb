"""Pydantic models shared by the compiler, compositor, stores and API.

Attribute names are snake_case; the JSON wire format (what the editor and
the stores exchange) is camelCase, so every model is populated and dumped by
alias.
"""

import math
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

FieldType = Literal["text", "checkbox", "date", "select", "radio", "signature", "symbol"]


def _finite_or_zero(value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    return value if math.isfinite(value) else 0.0


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# --- Templates -----------------------------------------------------------
class FieldMapping(WireModel):
    page: int = Field(ge=0)
    x_ratio: float = Field(alias="xRatio")
    y_ratio: float = Field(alias="yRatio")
    width_ratio: Optional[float] = Field(default=None, alias="widthRatio")
    height_ratio: Optional[float] = Field(default=None, alias="heightRatio")
    max_width_ratio: Optional[float] = Field(default=None, alias="maxWidthRatio")
    type: FieldType = "text"
    color: Optional[str] = None
    options: Optional[List[str]] = None
    required: Optional[bool] = None
    is_custom: bool = Field(default=False, alias="isCustom")
    custom_value: Optional[str] = Field(default=None, alias="customValue")

    @field_validator("x_ratio", "y_ratio", "width_ratio", "height_ratio", "max_width_ratio")
    @classmethod
    def _finite_ratio(cls, value):
        return value if value is None else _finite_or_zero(value)


class TemplateMapping(WireModel):
    template_id: str = Field(alias="templateId")
    page_size: str = Field(default="A4", alias="pageSize")
    fields: Dict[str, List[FieldMapping]] = Field(default_factory=dict)

    @field_validator("fields", mode="before")
    @classmethod
    def _single_mapping_to_list(cls, value):
        # Older templates stored one mapping object per field name.
        if not isinstance(value, dict):
            return value
        return {name: m if isinstance(m, list) else [m] for name, m in value.items()}


class TemplateSummary(WireModel):
    id: str
    name: str = ""
    page_size: str = Field(default="A4", alias="pageSize")
    field_count: int = Field(default=0, alias="fieldCount")
    fields: List[str] = Field(default_factory=list)
    created_at: Optional[str] = Field(default=None, alias="createdAt")


# --- Layers --------------------------------------------------------------
class TextLayer(WireModel):
    id: str
    text: str = ""
    x: float
    y: float
    font_size: float = Field(default=14, alias="fontSize")
    font_family: str = Field(default="Helvetica", alias="fontFamily")
    color: str = "#000000"
    bold: bool = False
    italic: bool = False
    page: int = 0
    type: str = "text"
    width: Optional[float] = None
    height: Optional[float] = None
    checked: bool = False

    @field_validator("x", "y", "font_size", "width", "height")
    @classmethod
    def _finite_coord(cls, value):
        return value if value is None else _finite_or_zero(value)


class Nudge(WireModel):
    dx_ratio: float = Field(default=0.0, alias="dxRatio")
    dy_ratio: float = Field(default=0.0, alias="dyRatio")

    @field_validator("dx_ratio", "dy_ratio", mode="before")
    @classmethod
    def _finite(cls, value):
        return _finite_or_zero(value)

    def __add__(self, other: "Nudge") -> "Nudge":
        return Nudge(dx_ratio=self.dx_ratio + other.dx_ratio, dy_ratio=self.dy_ratio + other.dy_ratio)


class LayerEdit(WireModel):
    """One entry of the ordered edit payload sent by the editor."""

    field_id: str = Field(alias="fieldId")
    layer: Optional[TextLayer] = None
    nudge: Optional[Nudge] = None


# --- OCR -----------------------------------------------------------------
class BoundingBox(WireModel):
    left: float = Field(default=0.0, alias="Left")
    top: float = Field(default=0.0, alias="Top")
    width: float = Field(default=0.0, alias="Width")
    height: float = Field(default=0.0, alias="Height")


class DetectedSignature(WireModel):
    id: str
    page: int = 1
    confidence: float = 0.0
    bounding_box: BoundingBox = Field(alias="boundingBox")


class DetectedField(DetectedSignature):
    key_text: str = Field(alias="keyText")


class MappedField(DetectedField):
    mapped_field_key: str = Field(alias="mappedFieldKey")
    value: str


class LowConfidenceKey(WireModel):
    key_text: str = Field(alias="keyText")
    confidence: float
    page: int


class AnalysisWarnings(WireModel):
    low_confidence_count: int = Field(default=0, alias="lowConfidenceCount")
    low_confidence_keys: List[LowConfidenceKey] = Field(default_factory=list, alias="lowConfidenceKeys")


class Analysis(WireModel):
    id: str
    created_at: str = Field(alias="createdAt")
    source_filename: str = Field(default="source.pdf", alias="sourceFilename")
    mapped_fields: List[MappedField] = Field(default_factory=list, alias="mappedFields")
    signatures: List[DetectedSignature] = Field(default_factory=list)
    warnings: AnalysisWarnings = Field(default_factory=AnalysisWarnings)
