"""GW Instek GDM-8341 emulator.

Provides an in-process meter implementing the ``ByteTransport`` protocol.
It answers the queries the measurement session and port discovery use, can
split replies across several reads, can go silent, and can emit unsolicited
bytes, which covers the transport behaviours the driver has to survive.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from dmmlink_scpi.errors import TransportError

from dmmlink_gwinstek.modes import MODE_VOLT_DC, MODES, find_mode

logger = logging.getLogger(__name__)

# Range reported by CONF:RANG? for modes without a range table
_DEFAULT_RANGE = "AUTO"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Gdm8341EmulatorConfig:
    """Configuration for a GDM-8341 emulator instance.

    Args:
        identity: ``*IDN?`` response string.
        chunk_size: Maximum bytes returned per read (0 returns everything).
        threshold: ``SENS:CONT:THR?`` response.
    """

    identity: str
    chunk_size: int = 0
    threshold: str = "20"

    def __post_init__(self) -> None:
        if not self.identity:
            raise ValueError("identity must be non-empty")
        if self.chunk_size < 0:
            raise ValueError("chunk_size must be >= 0")


# ---------------------------------------------------------------------------
# Emulator
# ---------------------------------------------------------------------------


class Gdm8341Emulator:
    """In-process GDM-8341 emulator implementing ``ByteTransport``.

    Attributes:
        commands: Every command received, in order, without terminators.
        silent: When True the emulator records commands but never answers.
        local: True after ``SYST:LOC`` has been received.

    Args:
        config: Emulator configuration.
        sleep: Called with the read timeout when there is nothing to return.
    """

    def __init__(
        self,
        config: Gdm8341EmulatorConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._sleep = sleep
        self._open = True
        self._inbox = bytearray()
        self._outbox = bytearray()
        self._mode_index = MODE_VOLT_DC
        self._value = "+0.00000E+00"
        self._range = self._default_range(MODE_VOLT_DC)
        self._threshold = config.threshold
        self.commands: list[str] = []
        self.silent = False
        self.local = False

        self._query_handlers: dict[str, Callable[[], str]] = {
            "*IDN?": lambda: self._config.identity,
            "SENS:FUNC1?": lambda: MODES[self._mode_index].scpi_token,
            "VAL1?": lambda: self._value,
            "CONF:RANG?": lambda: self._range,
            "SENS:CONT:THR?": lambda: self._threshold,
        }
        self._meas_queries: dict[str, int] = {
            mode.query_command: index for index, mode in enumerate(MODES)
        }

    # -- Transport interface ------------------------------------------------

    @property
    def is_open(self) -> bool:
        """Return True until :meth:`close` is called."""
        return self._open

    def read(self, timeout: float) -> bytes:
        """Return buffered reply bytes, or wait *timeout* and return nothing."""
        self._require_open()
        if not self._outbox:
            self._sleep(timeout)
            return b""
        size = self._config.chunk_size or len(self._outbox)
        chunk = bytes(self._outbox[:size])
        del self._outbox[:size]
        return chunk

    def write(self, data: bytes) -> int:
        """Accept command bytes, answering each complete line."""
        self._require_open()
        self._inbox.extend(data)
        while True:
            newline = self._inbox.find(b"\n")
            if newline < 0:
                break
            line = self._inbox[:newline].decode("ascii", errors="replace").strip()
            del self._inbox[: newline + 1]
            if line:
                self._process(line)
        return len(data)

    def discard_input(self) -> None:
        """Drop reply bytes the host has not read yet."""
        self._require_open()
        self._outbox.clear()

    def close(self) -> None:
        """Close the emulator; later reads and writes fail."""
        self._open = False

    # -- Test helpers -------------------------------------------------------

    def set_mode(self, mode: int | str) -> None:
        """Select the measurement function reported by ``SENS:FUNC1?``.

        Args:
            mode: Mode index, SCPI token or label.
        """
        self._mode_index = mode if isinstance(mode, int) else find_mode(mode)
        self._range = self._default_range(self._mode_index)

    def set_reading(self, value: str, range_code: str | None = None) -> None:
        """Set the ``VAL1?`` (and optionally ``CONF:RANG?``) responses.

        Args:
            value: Reading text exactly as the meter would send it.
            range_code: Range code text, left unchanged if ``None``.
        """
        self._value = value
        if range_code is not None:
            self._range = range_code

    def set_threshold(self, threshold: str) -> None:
        """Set the ``SENS:CONT:THR?`` response."""
        self._threshold = threshold

    def inject(self, data: bytes) -> None:
        """Queue bytes the host will read without having asked for them."""
        self._outbox.extend(data)

    # -- Private helpers ----------------------------------------------------

    def _require_open(self) -> None:
        if not self._open:
            raise TransportError("Emulator is closed", "emulator")

    def _process(self, line: str) -> None:
        self.commands.append(line)
        header = line.upper()
        if self.silent:
            return
        if header == "SYST:LOC":
            self.local = True
            return
        self.local = False
        handler = self._query_handlers.get(header)
        if handler is not None:
            self._respond(handler())
            return
        mode_index = self._meas_queries.get(header)
        if mode_index is not None:
            self.set_mode(mode_index)
            self._respond(self._value)
            return
        logger.debug("Emulator ignoring %r", line)

    def _respond(self, text: str) -> None:
        self._outbox.extend(f"{text}\r\n".encode("ascii"))

    @staticmethod
    def _default_range(mode_index: int) -> str:
        ranges = MODES[mode_index].ranges
        return next(iter(ranges), _DEFAULT_RANGE)


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_gdm8341_emulator(
    serial: str = "GEW000001",
    *,
    chunk_size: int = 0,
    sleep: Callable[[float], None] = time.sleep,
) -> Gdm8341Emulator:
    """Create a GDM-8341 emulator.

    Args:
        serial: Serial number for the ``*IDN?`` response.
        chunk_size: Maximum bytes per read (0 for whole replies).
        sleep: Called with the read timeout when there is nothing to return.

    Returns:
        Configured emulator instance.
    """
    config = Gdm8341EmulatorConfig(
        identity=f"GW.Inc,GDM8341,{serial},1.00",
        chunk_size=chunk_size,
    )
    return Gdm8341Emulator(config, sleep=sleep)
