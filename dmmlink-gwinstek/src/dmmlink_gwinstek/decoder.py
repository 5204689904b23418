"""Decode raw meter responses into display text.

:func:`decode` is a pure function of a :class:`RawReading` (plus an optional
continuity threshold override). It never raises for odd instrument output:
malformed numbers read as zero, and a range code missing from a mode's table
yields the unscaled value with the raw range code as its label.
"""

from __future__ import annotations

import math

from dmmlink_scpi.number import parse_float_prefix

from dmmlink_gwinstek.models import DecodedMeasurement, RawReading
from dmmlink_gwinstek.modes import MODE_CONT, MODE_DIOD, MODES, OHM, OVERLOAD_TEXT, ModeDescriptor

DEFAULT_CONTINUITY_THRESHOLD = 20
"""Continuity threshold in ohms when neither the meter nor config supplies one."""

CONTINUITY_DISPLAY_CAP = 999.9
DIODE_OPEN_LIMIT = 9.999


def decode(reading: RawReading, *, threshold_override: int | None = None) -> DecodedMeasurement:
    """Turn one cycle's raw responses into a :class:`DecodedMeasurement`.

    Args:
        reading: Responses collected by the measurement session.
        threshold_override: Continuity threshold in ohms that takes precedence
            over the meter's ``SENS:CONT:THR?`` answer.

    Returns:
        The decoded measurement.
    """
    if not 0 <= reading.mode_index < len(MODES):
        return DecodedMeasurement("---", reading.raw_range, "Unknown mode")

    mode = MODES[reading.mode_index]
    value = parse_float_prefix(reading.raw_value)

    if reading.mode_index == MODE_CONT:
        threshold = resolve_threshold(reading.raw_threshold, threshold_override)
        text, label = _decode_continuity(value, threshold)
    elif reading.mode_index == MODE_DIOD:
        text, label = _decode_diode(value)
    else:
        text, label = _decode_ranged(mode, value, reading.raw_range)
        if mode.overload_limit is not None and value >= mode.overload_limit:
            text = OVERLOAD_TEXT

    return DecodedMeasurement(text, label, mode.label, mode.log_tag)


def resolve_threshold(raw_threshold: str | None, override: int | None = None) -> int:
    """Pick the continuity threshold: override, then meter answer, then default."""
    if override is not None:
        return override
    if raw_threshold is None:
        return DEFAULT_CONTINUITY_THRESHOLD
    value = parse_float_prefix(raw_threshold)
    if math.isfinite(value):
        return int(value)
    return DEFAULT_CONTINUITY_THRESHOLD


def format_unscaled(mode: ModeDescriptor, value: float) -> str:
    """Format *value* without range scaling, in the mode's base units."""
    return "%f %s" % (value, mode.units)


def _decode_ranged(mode: ModeDescriptor, value: float, raw_range: str) -> tuple[str, str]:
    rule = mode.ranges.get(raw_range)
    if rule is None:
        # Unknown range code or a mode without a table.
        return format_unscaled(mode, value), raw_range
    template = rule.value_format or mode.value_format
    number = template.format(precision=rule.precision) % (value * rule.scale)
    return f"{number} {rule.unit}{mode.suffix}", rule.label


def _decode_continuity(value: float, threshold: int) -> tuple[str, str]:
    if value > threshold:
        shown = CONTINUITY_DISPLAY_CAP if value > 1000 else value
        text = "OPEN [%05.1f%s]" % (shown, OHM)
    else:
        text = "SHORT [%05.1f%s]" % (value, OHM)
    return text, f"Threshold: {threshold}{OHM}"


def _decode_diode(value: float) -> tuple[str, str]:
    if value > DIODE_OPEN_LIMIT:
        return "OL / OPEN", "None"
    return "%06.4f V" % value, "None"
