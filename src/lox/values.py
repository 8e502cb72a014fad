"""Value rules common to both tracks: truthiness, equality, arithmetic, text.

Primitive Lox values are plain Python objects on both tracks: `None` is nil,
`bool` is a boolean, `float` is a number. Every other value is a track-specific
object that knows how to print itself through `to_string()`.
"""

from __future__ import annotations

from decimal import Decimal
import math


def is_falsey(value: object) -> bool:
    """Only nil and false are falsey."""
    return value is None or value is False


def is_number(value: object) -> bool:
    return isinstance(value, float)


def values_equal(a: object, b: object) -> bool:
    if a is None or b is None:
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if isinstance(a, float) and isinstance(b, float):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def divide(a: float, b: float) -> float:
    """IEEE division; Python raises on a zero divisor where Lox yields inf/nan."""
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def format_number(value: float) -> str:
    """Shortest round-trip digits, always positional, never exponent form."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def stringify(value: object) -> str:
    if value is None:
        return "nil"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, float):
        return format_number(value)
    if isinstance(value, str):
        return value
    return value.to_string()  # type: ignore[attr-defined]
