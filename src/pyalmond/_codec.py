"""Value codec for the hub's all-strings wire encoding.

The Almond+ API sends and expects every scalar as a JSON string
(``"true"``, ``"42"``, ``"Kitchen"``).  This module is the only place that
converts between that encoding and typed Python values.  Both directions
return new containers and never touch their input.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

WireValue = str | dict[str, Any] | list[Any]


def _number_text(number: int | float) -> str:
    """Canonical hub text for a number.

    Integral floats drop their ``.0`` and exponent notation is only used
    below ``1e-6`` and from ``1e21`` up, with an explicit sign
    (``1e+21``, ``1.5e-7``).
    """
    if isinstance(number, int) or not math.isfinite(number):
        return str(number)
    if number == 0:
        return "0"
    text = repr(number)
    if "e" not in text:
        return text[:-2] if text.endswith(".0") else text
    mantissa, _, exp = text.partition("e")
    exponent = int(exp)
    if -7 < exponent < 21:
        sign = "-" if mantissa.startswith("-") else ""
        digits = mantissa.lstrip("-").replace(".", "")
        if exponent < 0:
            return f"{sign}0.{'0' * (-exponent - 1)}{digits}"
        return f"{sign}{digits.ljust(exponent + 1, '0')}"
    return f"{mantissa}e{'+' if exponent > 0 else '-'}{abs(exponent)}"


def _parse_number(text: str) -> int | float | None:
    """Parse *text* only if it re-formats to exactly the same text.

    This rejects leading zeros, whitespace, ``+`` signs, underscores,
    trailing ``.0`` and non-canonical exponent forms, so identifiers such
    as ``"007"`` stay strings.
    """
    try:
        number: int | float = int(text)
    except ValueError:
        try:
            number = float(text)
        except ValueError:
            return None
        if not math.isfinite(number):
            return None
    if _number_text(number) != text:
        return None
    return number


def decode_value(value: Any) -> Any:
    """Convert a single wire scalar to its typed value."""
    if not isinstance(value, str):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    number = _parse_number(value)
    return value if number is None else number


def decode_tree(value: Any) -> Any:
    """Recursively decode every leaf of a parsed JSON structure."""
    if isinstance(value, Mapping):
        return {key: decode_tree(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_tree(item) for item in value]
    return decode_value(value)


def encode_value(value: Any) -> str:
    """Convert a single typed value to its wire string."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return _number_text(value)
    return str(value)


def encode_tree(value: Any) -> WireValue:
    """Recursively stringify every leaf, returning a new structure."""
    if isinstance(value, Mapping):
        return {str(key): encode_tree(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_tree(item) for item in value]
    return encode_value(value)
