"""SCPI number parsing utilities.

Handles NR1 (integer), NR2 (fixed-point), and NR3 (scientific notation)
numeric formats as well as the special values defined by SCPI (NAN, INF,
NINF).

Two flavours are provided. :func:`parse_number` is strict and raises on
anything that is not a number. :func:`parse_float_prefix` behaves like C
``strtod``: it uses the longest leading numeric prefix and falls
back to zero, which is what the meter driver wants for readings that may
carry trailing junk or arrive empty.
"""

from __future__ import annotations

import re

_SPECIAL_FLOAT_MAP: dict[str, float] = {
    "NAN": float("nan"),
    "INF": float("inf"),
    "+INF": float("inf"),
    "NINF": float("-inf"),
    "-INF": float("-inf"),
}

_FLOAT_PREFIX_RE = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_number(text: str) -> float:
    """Parse a SCPI numeric response into a float.

    Accepts NR1 (``"42"``), NR2 (``"1.23"``), NR3 (``"1.23E+4"``),
    and the special tokens ``NAN``, ``INF``, ``NINF``, and ``-INF``.

    Args:
        text: The raw response string (leading/trailing whitespace is stripped).

    Returns:
        The parsed float value.

    Raises:
        ValueError: If *text* cannot be parsed as a SCPI number.
    """
    token = text.strip().upper()
    special = _SPECIAL_FLOAT_MAP.get(token)
    if special is not None:
        return special
    try:
        return float(token)
    except ValueError:
        raise ValueError(f"Invalid SCPI number: {text!r}") from None


def parse_float_prefix(text: str) -> float:
    """Parse the leading number of *text*, returning 0.0 if there is none.

    Args:
        text: The raw response string.

    Returns:
        The parsed float, or ``0.0`` for malformed input.
    """
    match = _FLOAT_PREFIX_RE.match(text)
    if match is not None:
        return float(match.group(1))
    try:
        return parse_number(text)
    except ValueError:
        return 0.0
