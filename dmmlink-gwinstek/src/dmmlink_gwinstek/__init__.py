"""GW Instek GDM-8341 multimeter driver and emulator for dmmlink.

This package polls a GDM-8341 over its USB virtual serial port (or a VISA
resource), decodes each reading into display text, and recovers from a
meter that stops answering by re-probing candidate ports.

Modules:
    modes: Measurement mode registry and range tables.
    decoder: Turns raw readings into display text.
    session: Tick-driven query sequence for one measurement cycle.
    recovery: Failure counting and port re-acquisition policy.
    discovery: Port probing by identity query.
    meter: High-level driver tying the above together.
    emulator: In-process SCPI emulator for testing without hardware.

Example:
    Poll a meter on a known port::

        from dmmlink_gwinstek import create_instrument

        meter = create_instrument("/dev/ttyUSB0", baud=38400)
        while True:
            measurement = meter.poll()
            if measurement is not None:
                print(measurement)

    Use an emulator for testing::

        from dmmlink_gwinstek import Gdm8341, make_gdm8341_emulator

        emulator = make_gdm8341_emulator()
        emulator.set_mode("RES")
        emulator.set_reading("+1.234500E+04", "50E+3")
        meter = Gdm8341(emulator, device="emulator")
"""

from dmmlink_gwinstek.config import MonitorConfig, load_config
from dmmlink_gwinstek.decoder import decode
from dmmlink_gwinstek.discovery import DiscoveredPort, find_instrument, probe_port
from dmmlink_gwinstek.emulator import (
    Gdm8341Emulator,
    Gdm8341EmulatorConfig,
    make_gdm8341_emulator,
)
from dmmlink_gwinstek.meter import Gdm8341, create_instrument
from dmmlink_gwinstek.models import DecodedMeasurement, RawReading
from dmmlink_gwinstek.modes import MODES, ModeDescriptor, RangeRule
from dmmlink_gwinstek.publish import publish_measurement
from dmmlink_gwinstek.recovery import RecoveryPolicy
from dmmlink_gwinstek.session import (
    CycleOutcome,
    MeasurementSession,
    SessionState,
    TickResult,
)

__all__ = [
    # Driver
    "Gdm8341",
    "create_instrument",
    # Decoding
    "MODES",
    "ModeDescriptor",
    "RangeRule",
    "RawReading",
    "DecodedMeasurement",
    "decode",
    # Session
    "MeasurementSession",
    "SessionState",
    "CycleOutcome",
    "TickResult",
    # Recovery and discovery
    "RecoveryPolicy",
    "DiscoveredPort",
    "probe_port",
    "find_instrument",
    # Emulator
    "Gdm8341Emulator",
    "Gdm8341EmulatorConfig",
    "make_gdm8341_emulator",
    # Monitor
    "MonitorConfig",
    "load_config",
    "publish_measurement",
]
