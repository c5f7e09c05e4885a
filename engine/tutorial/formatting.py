"""
Tutorial Engine — Value Formatting

Two small pure helpers:
  format_value   — apply one of the fixed numeric format codes used by StateValue
  display_value  — turn any raw value into the text a reader sees on the page

Numbers display the way the browser shows them: 5.0 reads as "5",
booleans as "true"/"false", missing values as nothing.
"""

from __future__ import annotations

import math
from typing import Any, Callable


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _round_half_up(value: float) -> int:
    # Math.round semantics: ties go towards +infinity (-2.5 → -2)
    return math.floor(value + 0.5)


def _fixed(value: float, digits: int) -> str:
    text = f"{value:.{digits}f}"
    # toFixed never prints negative zero
    if text.startswith("-") and float(text) == 0:
        text = text[1:]
    return text


def _signed(value: float) -> str:
    text = _fixed(value, 2)
    return text if text.startswith("-") else f"+{text}"


FORMATTERS: dict[str, Callable[[float], str]] = {
    ".0f": lambda v: str(_round_half_up(v)),
    ".1f": lambda v: _fixed(v, 1),
    ".2f": lambda v: _fixed(v, 2),
    ".0%": lambda v: f"{_fixed(v * 100, 0)}%",
    ".1%": lambda v: f"{_fixed(v * 100, 1)}%",
    "+.2f": _signed,
}


def format_value(value: Any, fmt: str | None) -> Any:
    """
    Apply a format code to a bound value.

    Unknown or absent codes, missing values, and non-numeric values
    are returned unchanged.
    """
    if not fmt or value is None:
        return value
    formatter = FORMATTERS.get(fmt)
    if formatter is None or not _is_number(value):
        return value
    if isinstance(value, float) and not math.isfinite(value):
        return value
    return formatter(value)


def display_value(value: Any) -> str:
    """Text shown for a raw value."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)
