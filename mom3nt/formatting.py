"""Presentation helpers for logged values; stored values are never altered."""

from __future__ import annotations

import math
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, localcontext

AXIS_INTEGER_THRESHOLD = 100
AXIS_ONE_DECIMAL_THRESHOLD = 10
# Enough digits to quantize the largest finite float (~1.8e308) to 0.01.
DECIMAL_PRECISION = 400


def format_axis_value(value: float) -> str:
    """
    Compact label for chart axes.

    Magnitudes of 100 and above round to whole numbers, below 10 keep one
    decimal, and the band in between keeps one decimal only when it is not zero.
    """
    if not math.isfinite(value):
        return ""
    magnitude = abs(value)
    if magnitude >= AXIS_INTEGER_THRESHOLD:
        return str(int(_quantize(value, "1", ROUND_HALF_UP)))
    rounded = _quantize(value, "0.1", ROUND_HALF_UP)
    if magnitude < AXIS_ONE_DECIMAL_THRESHOLD:
        return f"{rounded:.1f}"
    return _strip_zeros(f"{rounded:.1f}")


def format_exact_value(value: float) -> str:
    """Truncate (never round) to at most two decimals for tooltips."""
    if not math.isfinite(value):
        return ""
    truncated = _quantize(value, "0.01", ROUND_DOWN)
    text = _strip_zeros(f"{truncated:.2f}")
    return "0" if text in ("-0", "") else text


def format_value_with_unit(value: float, unit: str | None, *, exact: bool = True) -> str:
    text = format_exact_value(value) if exact else format_axis_value(value)
    unit_text = (unit or "").strip()
    return f"{text} {unit_text}" if unit_text else text


def _quantize(value: float, quantum: str, rounding: str) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = DECIMAL_PRECISION
        return Decimal(repr(float(value))).quantize(Decimal(quantum), rounding=rounding)


def _strip_zeros(text: str) -> str:
    if "." not in text:
        return text
    return text.rstrip("0").rstrip(".")
