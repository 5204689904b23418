"""Data types passed between the measurement session and the decoder."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RawReading:
    """Undecoded responses collected during one measurement cycle.

    Attributes:
        mode_index: Index into :data:`~dmmlink_gwinstek.modes.MODES`.
        raw_value: ``VAL1?`` response line.
        raw_range: ``CONF:RANG?`` response line, verbatim.
        raw_threshold: ``SENS:CONT:THR?`` response line (continuity only).
    """

    mode_index: int
    raw_value: str
    raw_range: str
    raw_threshold: str | None = None


@dataclass(frozen=True)
class DecodedMeasurement:
    """Human-readable measurement ready for display.

    Attributes:
        display_value: Scaled value with units (e.g. ``" 1.2345 V DC"``).
        display_range_label: Range name, continuity threshold, or raw range.
        mode_label: Measurement function label (e.g. ``"Volts DC"``).
        mode_tag: Machine-readable mode tag for published output.
    """

    display_value: str
    display_range_label: str
    mode_label: str
    mode_tag: str = ""

    @property
    def detail(self) -> str:
        """Secondary display line: mode label and range."""
        return f"{self.mode_label}, {self.display_range_label}"

    def __str__(self) -> str:
        return f"{self.display_value} ({self.detail})"
