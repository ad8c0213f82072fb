"""Shrink-then-truncate policy for stamped text.

Used at stamp time, where real font metrics are available. The layer compiler
has its own cheap width estimate for the editor preview.
"""

from typing import Callable, NamedTuple

import fitz  # PyMuPDF

ELLIPSIS = "..."

MeasureFn = Callable[[str, float], float]


class FitResult(NamedTuple):
    text: str
    font_size: float
    truncated: bool


def fit_text(
    text: str,
    max_width: float,
    measure: MeasureFn,
    initial_size: float = 10,
    fallback_size: float = 8,
) -> FitResult:
    """Return the text and size to draw so the result fits ``max_width``.

    1. keep ``initial_size`` if the whole string fits
    2. else keep ``fallback_size`` if the whole string fits there
    3. else drop trailing characters at ``fallback_size`` until
       ``text + "..."`` fits, and return that.

    An empty string (given or reached while trimming) yields ``"..."``.
    """
    if not text:
        return FitResult(ELLIPSIS, fallback_size, True)

    if measure(text, initial_size) <= max_width:
        return FitResult(text, initial_size, False)
    if measure(text, fallback_size) <= max_width:
        return FitResult(text, fallback_size, False)

    # Each pass removes one character, so this loop ends after len(text) steps.
    while text:
        text = text[:-1]
        if text and measure(text + ELLIPSIS, fallback_size) <= max_width:
            break
    return FitResult(text + ELLIPSIS, fallback_size, True)


def font_measure(fontname: str = "helv") -> MeasureFn:
    """Width function backed by the base-14 metrics PyMuPDF ships with."""

    def measure(text: str, fontsize: float) -> float:
        return fitz.get_text_length(text, fontname=fontname, fontsize=fontsize)

    return measure
