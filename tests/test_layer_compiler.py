import pytest

from layer_compiler import (
    NudgeBook,
    apply_layer_edits,
    compile_field,
    compile_template,
    estimate_font_size,
)
from models import FieldMapping, LayerEdit, Nudge, TemplateMapping, TextLayer

PAGE = (600, 800)


def _mapping(**extra) -> FieldMapping:
    return FieldMapping.model_validate({"page": 0, "xRatio": 0.5, "yRatio": 0.25, **extra})


def test_text_layer_position_and_defaults() -> None:
    layer = compile_field("legalName", _mapping(), "Acme CC", *PAGE, scale=1.5)

    assert layer is not None
    assert (layer.x, layer.y) == (450, 900)
    assert layer.font_size == 14
    assert layer.bold
    assert layer.id == "legalName"


def test_non_finite_ratios_are_coerced_to_zero() -> None:
    mapping = _mapping(xRatio=float("nan"), widthRatio=float("inf"))
    assert (mapping.x_ratio, mapping.width_ratio) == (0.0, 0.0)

    layer = compile_field("legalName", mapping, "Acme CC", *PAGE, scale=1.5)
    assert (layer.x, layer.y) == (0, 900)

    edited = TextLayer.model_validate({"id": "a", "x": float("nan"), "y": float("-inf"), "fontSize": float("nan")})
    assert (edited.x, edited.y, edited.font_size) == (0.0, 0.0, 0.0)


def test_empty_value_produces_no_layer() -> None:
    assert compile_field("legalName", _mapping(), "", *PAGE, scale=1.5) is None


@pytest.mark.parametrize("field_name, glyph, size", [("dash", "—", 28), ("cancel", "—", 28), ("tick", "✓", 24), ("cross", "✗", 24)])
def test_symbol_fields_use_glyph_sizes(field_name: str, glyph: str, size: int) -> None:
    layer = compile_field(field_name, _mapping(type="symbol"), "yes", *PAGE, scale=1.5)
    assert layer.text == glyph
    assert layer.font_size == size


def test_estimate_font_size() -> None:
    assert estimate_font_size("short", 200) == 14
    assert estimate_font_size("x" * 12, 90) == 13
    assert estimate_font_size("x" * 40, 90) == 10


def test_max_width_ratio_shrinks_preview_size() -> None:
    layer = compile_field("legalName", _mapping(maxWidthRatio=0.1), "x" * 12, *PAGE, scale=1.5)
    assert layer.font_size == 13


def test_checkbox_and_signature_defaults() -> None:
    checked = compile_field("agree", _mapping(type="checkbox"), "Yes", *PAGE, scale=1.5)
    unchecked = compile_field("agree", _mapping(type="checkbox"), "No", *PAGE, scale=1.5)
    signature = compile_field("signature", _mapping(type="signature"), "Signature", *PAGE, scale=1.5)

    assert checked.checked and (checked.width, checked.height) == (20, 20)
    assert not unchecked.checked
    assert (signature.width, signature.height) == (150, 50)


def test_explicit_box_ratios_win() -> None:
    layer = compile_field("signature", _mapping(type="signature", widthRatio=0.2, heightRatio=0.05), "Signature",
                          *PAGE, scale=1.5)
    assert layer.width == pytest.approx(180)
    assert layer.height == pytest.approx(60)


def _template() -> TemplateMapping:
    return TemplateMapping.model_validate({
        "templateId": "SBD 4",
        "fields": {
            "legalName": [
                {"page": 0, "xRatio": 0.5, "yRatio": 0.25},
                {"page": 5, "xRatio": 0.1, "yRatio": 0.1},
            ],
            "vatNumber": {"page": 0, "xRatio": 0.1, "yRatio": 0.9},
        },
    })


def test_compile_template_skips_missing_pages_and_empty_values() -> None:
    layers = compile_template(_template(), {"legalName": "Acme CC", "vatNumber": ""}, [PAGE], scale=1.5)
    assert [layer.id for layer in layers] == ["legalName#0"]


def test_nudges_accumulate() -> None:
    book = NudgeBook()
    book.add("legalName#0", Nudge(dx_ratio=0.01))
    total = book.add("legalName#0", Nudge(dx_ratio=0.02, dy_ratio=float("nan")))

    assert total.dx_ratio == pytest.approx(0.03)
    assert total.dy_ratio == 0.0
    assert "legalName#0" in book
    assert len(book) == 1


def test_compile_template_applies_nudges() -> None:
    book = NudgeBook({"legalName#0": Nudge(dx_ratio=0.1, dy_ratio=0.05)})
    layers = compile_template(_template(), {"legalName": "Acme CC"}, [PAGE], scale=1.5, nudges=book)

    assert layers[0].x == pytest.approx(450 + 0.1 * 900)
    assert layers[0].y == pytest.approx(900 + 0.05 * 1200)


def test_apply_layer_edits() -> None:
    layers = compile_template(_template(), {"legalName": "Acme CC"}, [PAGE], scale=1.5)
    added = layers[0].model_copy(update={"text": "Extra", "id": "ignored"})
    edits = [
        LayerEdit(field_id="legalName#0", nudge=Nudge(dx_ratio=0.1)),
        LayerEdit(field_id="legalName#0", nudge=Nudge(dx_ratio=0.1)),
        LayerEdit(field_id="custom-1", layer=added),
    ]

    result = {layer.id: layer for layer in apply_layer_edits(layers, edits, [PAGE], scale=1.5)}

    assert result["legalName#0"].x == pytest.approx(450 + 0.2 * 900)
    assert result["custom-1"].text == "Extra"
    assert layers[0].x == 450
