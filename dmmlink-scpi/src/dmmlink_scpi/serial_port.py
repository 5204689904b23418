"""pyserial transport for RS-232 and USB-serial instruments.

This module provides the serial line implementation of
:class:`~dmmlink_scpi.transport.ByteTransport`. The line is always configured
8N1 with no software or hardware flow control, at one of the fixed baud
rates in :data:`SUPPORTED_BAUD_RATES`. The port is opened with pyserial's
``exclusive`` flag, which takes a non-blocking ``flock(LOCK_EX)`` on POSIX,
so a second process (or a second handle in this one) gets
:class:`DeviceBusyError` instead of interleaving with our traffic.
"""

from __future__ import annotations

import errno
import logging
from types import TracebackType
from typing import Any

import serial

from dmmlink_scpi.errors import (
    DeviceBusyError,
    DeviceNotFoundError,
    TransportConfigError,
    TransportError,
)

logger = logging.getLogger(__name__)

SUPPORTED_BAUD_RATES: tuple[int, ...] = (9600, 19200, 38400, 57600, 115200)
"""Baud rates the instrument family accepts."""

DEFAULT_BAUD_RATE = 115200

_LOCK_ERRNOS = frozenset({errno.EAGAIN, errno.EWOULDBLOCK})


class SerialPort:
    """Serial line transport backed by pyserial.

    Attributes:
        path: The device node (e.g. ``/dev/ttyUSB0``).
        baud: Configured baud rate.
        is_open: Whether the port is currently open.

    Args:
        path: Device node path.
        baud: Baud rate; must be in :data:`SUPPORTED_BAUD_RATES`.
        write_timeout: Seconds a write may block before failing.

    Example:
        >>> with SerialPort("/dev/ttyUSB0", baud=115200) as port:
        ...     port.write(b"*IDN?\\r\\n")
        ...     print(port.read(0.5))
    """

    def __init__(
        self,
        path: str,
        *,
        baud: int = DEFAULT_BAUD_RATE,
        write_timeout: float = 1.0,
    ) -> None:
        self._path = path
        self._baud = baud
        self._write_timeout = write_timeout
        self._serial: Any = None
        self._read_timeout: float | None = None

    # -- Properties ----------------------------------------------------------

    @property
    def path(self) -> str:
        """The device node path."""
        return self._path

    @property
    def baud(self) -> int:
        """The configured baud rate."""
        return self._baud

    @property
    def is_open(self) -> bool:
        """Return True if the port is currently open."""
        return self._serial is not None

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        """Open, lock and configure the port.

        Raises:
            TransportConfigError: If the baud rate is unsupported or the
                line settings cannot be applied.
            DeviceBusyError: If another handle holds the exclusive lock.
            DeviceNotFoundError: If the device node cannot be opened.
        """
        if self._serial is not None:
            return

        if self._baud not in SUPPORTED_BAUD_RATES:
            raise TransportConfigError(
                f"Unsupported baud rate {self._baud}; expected one of {SUPPORTED_BAUD_RATES}",
                self._path,
            )

        logger.debug("Opening %s at %d baud", self._path, self._baud)
        try:
            self._serial = serial.Serial(
                port=self._path,
                baudrate=self._baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=0,
                write_timeout=self._write_timeout,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
                exclusive=True,
            )
        except serial.SerialException as exc:
            self._serial = None
            raise self._classify_open_error(exc) from exc
        except ValueError as exc:
            self._serial = None
            raise TransportConfigError(
                f"Failed to configure {self._path}: {exc}", self._path
            ) from exc
        self._read_timeout = 0.0

    def close(self) -> None:
        """Close the port, releasing the lock.

        Safe to call multiple times.
        """
        if self._serial is None:
            return
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as exc:
            logger.warning("Error closing %s: %s", self._path, exc)
        finally:
            self._serial = None
            self._read_timeout = None
        logger.debug("Closed %s", self._path)

    def __enter__(self) -> SerialPort:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- Transport interface -------------------------------------------------

    def read(self, timeout: float) -> bytes:
        """Wait up to *timeout* seconds for data and return what is buffered.

        Args:
            timeout: Readiness wait in seconds.

        Returns:
            Available bytes, possibly a partial line; ``b""`` on timeout.

        Raises:
            TransportError: If the port is closed or the device failed.
        """
        port = self._require_open()
        try:
            if self._read_timeout != timeout:
                port.timeout = timeout
                self._read_timeout = timeout
            data = bytes(port.read(1))
            if data:
                waiting = port.in_waiting
                if waiting:
                    data += bytes(port.read(waiting))
        except (serial.SerialException, OSError) as exc:
            self.close()
            raise TransportError(f"Read from {self._path} failed: {exc}", self._path) from exc
        return data

    def write(self, data: bytes) -> int:
        """Write *data* to the port.

        Args:
            data: Encoded command bytes.

        Returns:
            Number of bytes written.

        Raises:
            TransportError: If the port is closed or the write failed.
        """
        port = self._require_open()
        try:
            written = port.write(data)
        except (serial.SerialException, OSError) as exc:
            self.close()
            raise TransportError(f"Write to {self._path} failed: {exc}", self._path) from exc
        if written is None:
            return len(data)
        if written < len(data):
            logger.debug("Short write on %s: %d of %d bytes", self._path, written, len(data))
        return int(written)

    def discard_input(self) -> None:
        """Flush the driver's receive buffer.

        Raises:
            TransportError: If the port is closed or the flush failed.
        """
        port = self._require_open()
        try:
            port.reset_input_buffer()
        except (serial.SerialException, OSError) as exc:
            self.close()
            raise TransportError(f"Flush of {self._path} failed: {exc}", self._path) from exc

    # -- Private helpers -----------------------------------------------------

    def _require_open(self) -> Any:
        if self._serial is None:
            raise TransportError(f"Serial port {self._path} is not open", self._path)
        return self._serial

    def _classify_open_error(self, exc: serial.SerialException) -> TransportError:
        """Map a pyserial open failure onto the transport error taxonomy."""
        code = getattr(exc, "errno", None)
        if code in _LOCK_ERRNOS:
            return DeviceBusyError(f"{self._path} is locked by another process", self._path)
        if code is not None:
            return DeviceNotFoundError(f"Cannot open {self._path}: {exc}", self._path)
        return TransportConfigError(f"Failed to configure {self._path}: {exc}", self._path)
