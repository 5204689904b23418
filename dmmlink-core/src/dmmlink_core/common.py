"""Common types used across dmmlink modules.

Classes:
    InstrumentIdentity: Instrument identification metadata.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class InstrumentIdentity:
    """Instrument identification metadata.

    Represents the four standard fields returned by the SCPI ``*IDN?`` query.
    Used by port discovery to report which instrument was selected.

    Attributes:
        manufacturer: Instrument manufacturer name (e.g., "GW Instek").
        model: Instrument model number or name (e.g., "GDM8341").
        serial: Serial number string.
        firmware: Firmware or hardware version string.

    Example:
        >>> identity = InstrumentIdentity(
        ...     manufacturer="GW.Inc",
        ...     model="GDM8341",
        ...     serial="GEW123456",
        ...     firmware="1.00"
        ... )
    """

    manufacturer: str
    model: str
    serial: str
    firmware: str

    def __str__(self) -> str:
        return f"{self.manufacturer} {self.model} (S/N {self.serial}, FW {self.firmware})"
