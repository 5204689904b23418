"""Measurement mode registry for the GW Instek GDM-8341 family.

Each measurement function the meter supports is described by one immutable
:class:`ModeDescriptor`: the token the meter reports for ``SENS:FUNC1?``, a
display label, the ``MEAS`` query that selects the function, and the rules
for turning a ``CONF:RANG?`` range code into a scaled display value.

The registry is a tuple indexed by the ``MODE_*`` constants; the index is
what a :class:`~dmmlink_gwinstek.models.RawReading` carries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

OHM = "Ω"
MICRO = "µ"
DEGREE = "°"

OVERLOAD_LIMIT = 51_000_000_000_000.0
"""Readings at or above this value are shown as overload."""

OVERLOAD_TEXT = "OL"


@dataclass(frozen=True)
class RangeRule:
    """How to display a reading taken on one instrument range.

    Attributes:
        scale: Multiplier applied to the raw value (``1e3`` for mV, ``1e-3`` for kΩ).
        unit: Unit text printed after the value (e.g. ``"mV"``).
        precision: Decimal places printed.
        label: Human-readable range name (e.g. ``"500mV"``).
        value_format: printf template overriding the mode's, or ``None``.
    """

    scale: float
    unit: str
    precision: int
    label: str
    value_format: str | None = None


@dataclass(frozen=True)
class ModeDescriptor:
    """Static description of one measurement function.

    Attributes:
        scpi_token: Token returned by ``SENS:FUNC1?`` (exact match).
        label: Display label (e.g. ``"Volts DC"``).
        query_command: ``MEAS`` query that selects this function.
        units: Base unit text used when a reading cannot be scaled.
        log_tag: Machine-readable tag written alongside published readings.
        value_format: printf template for the number, taking the precision.
        suffix: Text appended after the unit (e.g. ``" DC"``).
        ranges: Known range codes mapped to their display rules.
        overload_limit: Raw value at or above which ``OL`` is shown.
    """

    scpi_token: str
    label: str
    query_command: str
    units: str
    log_tag: str = ""
    value_format: str = "%06.{precision}f"
    suffix: str = ""
    ranges: Mapping[str, RangeRule] = field(default_factory=lambda: MappingProxyType({}))
    overload_limit: float | None = None

    @property
    def has_range_table(self) -> bool:
        """Return True if this mode scales readings by range code."""
        return bool(self.ranges)


def _table(*rules: tuple) -> Mapping[str, RangeRule]:
    return MappingProxyType({code: RangeRule(*rule) for code, *rule in rules})


_VOLT_DC_RANGES = _table(
    ("0.5", 1e3, "mV", 2, "500mV"),
    ("5", 1.0, "V", 4, "5V"),
    ("50", 1.0, "V", 3, "50V"),
    ("500", 1.0, "V", 2, "500V"),
    ("1000", 1.0, "V", 1, "1000V"),
)

_VOLT_AC_RANGES = _table(
    ("0.5", 1e3, "mV", 2, "500mV"),
    ("5", 1.0, "V", 4, "5V"),
    ("50", 1.0, "V", 3, "50V"),
    ("500", 1.0, "V", 2, "500V"),
    ("750", 1.0, "V", 1, "750V"),
)

_CURRENT_RANGES = _table(
    ("0.0005", 1e6, f"{MICRO}A", 2, f"500{MICRO}A"),
    ("0.005", 1e3, "mA", 4, "5mA"),
    ("0.05", 1e3, "mA", 3, "50mA"),
    ("0.5", 1e3, "mA", 2, "500mA"),
    ("5", 1.0, "A", 1, "5A"),
    ("10", 1.0, "A", 3, "10A"),
)

_RESISTANCE_RANGES = _table(
    ("50E+1", 1.0, OHM, 2, f"500{OHM}"),
    ("50E+2", 1e-3, f"k{OHM}", 4, f"5K{OHM}"),
    ("50E+3", 1e-3, f"k{OHM}", 3, f"50K{OHM}"),
    ("50E+4", 1e-3, f"k{OHM}", 2, f"500K{OHM}"),
    ("50E+5", 1e-6, f"M{OHM}", 4, f"5M{OHM}"),
    ("50E+6", 1e-6, f"M{OHM}", 3, f"50M{OHM}"),
)

_CAPACITANCE_RANGES = _table(
    ("5E-9", 1e9, "nF", 3, "5nF", "% 6.{precision}f"),
    ("5E-8", 1e9, "nF", 2, "50nF"),
    ("5E-7", 1e9, "nF", 1, "500nF"),
    ("5E-6", 1e6, f"{MICRO}F", 3, f"5{MICRO}F"),
    ("5E-5", 1e6, f"{MICRO}F", 2, f"50{MICRO}F"),
)

_VOLT_FORMAT = "% 07.{precision}f"

MODES: tuple[ModeDescriptor, ...] = (
    ModeDescriptor(
        "VOLT", "Volts DC", "MEAS:VOLT:DC?", "V DC", "VOLTSDC",
        _VOLT_FORMAT, " DC", _VOLT_DC_RANGES,
    ),
    ModeDescriptor(
        "VOLT:AC", "Volts AC", "MEAS:VOLT:AC?", "V AC", "VOLTSAC",
        _VOLT_FORMAT, " AC", _VOLT_AC_RANGES,
    ),
    ModeDescriptor(
        "VOLT:DCAC", "Volts DC/AC", "MEAS:VOLT:DCAC?", "V DC/AC", "VOLTSDC",
        _VOLT_FORMAT, " DC/AC", _VOLT_AC_RANGES,
    ),
    ModeDescriptor(
        "CURR", "Current DC", "MEAS:CURR:DC?", "A DC", "AMPSDC",
        suffix=" DC", ranges=_CURRENT_RANGES,
    ),
    ModeDescriptor(
        "CURR:AC", "Current AC", "MEAS:CURR:AC?", "A AC", "AMPSAC",
        suffix=" AC", ranges=_CURRENT_RANGES,
    ),
    ModeDescriptor(
        "CURR:DCAC", "Current DC/AC", "MEAS:CURR:DCAC?", "A DC/AC", "AMPSDC",
        suffix=" DC/AC", ranges=_CURRENT_RANGES,
    ),
    ModeDescriptor(
        "RES", "Resistance", "MEAS:RES?", OHM, "OHMS",
        ranges=_RESISTANCE_RANGES, overload_limit=OVERLOAD_LIMIT,
    ),
    ModeDescriptor("FREQ", "Frequency", "MEAS:FREQ?", "Hz", "FREQ"),
    ModeDescriptor("PER", "Period", "MEAS:PER?", "s"),
    ModeDescriptor("TEMP", "Temperature", "MEAS:TEMP:TCO?", f"{DEGREE}C", "TEMP"),
    ModeDescriptor("DIOD", "Diode", "MEAS:DIOD?", "V", "DIODE"),
    ModeDescriptor("CONT", "Continuity", "MEAS:CONT?", OHM, "OHMS"),
    ModeDescriptor(
        "CAP", "Capacitance", "MEAS:CAP?", "F", "CAP",
        "% 06.{precision}f", ranges=_CAPACITANCE_RANGES, overload_limit=OVERLOAD_LIMIT,
    ),
)

MODE_VOLT_DC = 0
MODE_VOLT_AC = 1
MODE_VOLT_DCAC = 2
MODE_CURR_DC = 3
MODE_CURR_AC = 4
MODE_CURR_DCAC = 5
MODE_RES = 6
MODE_FREQ = 7
MODE_PER = 8
MODE_TEMP = 9
MODE_DIOD = 10
MODE_CONT = 11
MODE_CAP = 12

_TOKEN_INDEX: Mapping[str, int] = MappingProxyType(
    {mode.scpi_token: index for index, mode in enumerate(MODES)}
)

if len(_TOKEN_INDEX) != len(MODES):  # pragma: no cover
    raise RuntimeError("Duplicate SCPI token in mode registry")


def lookup_token(token: str) -> int | None:
    """Return the mode index whose ``scpi_token`` equals *token* exactly.

    Args:
        token: A ``SENS:FUNC1?`` response line.

    Returns:
        The mode index, or ``None`` if the token is not registered.
    """
    return _TOKEN_INDEX.get(token)


def find_mode(name: str) -> int:
    """Resolve a mode by SCPI token or label, case-insensitively.

    Convenience for callers that select a mode by name (``"res"``,
    ``"Resistance"``, ``"VOLT:AC"``).

    Args:
        name: Token or label.

    Returns:
        The mode index.

    Raises:
        KeyError: If nothing matches.
    """
    wanted = name.strip().upper()
    for index, mode in enumerate(MODES):
        if wanted in (mode.scpi_token, mode.label.upper()):
            return index
    raise KeyError(f"Unknown measurement mode: {name!r}")
