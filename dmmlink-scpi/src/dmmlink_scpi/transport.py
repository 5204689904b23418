"""Byte transport protocol definition.

This module defines the :class:`ByteTransport` protocol, which specifies the
interface that all transport implementations must provide. Transports own
one open device handle and move raw bytes; line framing lives in
:mod:`dmmlink_scpi.connection`.

Implementations include:
- :class:`dmmlink_scpi.SerialPort`: pyserial-backed RS-232/USB-serial line
- :class:`dmmlink_scpi.VisaPort`: PyVISA-backed USB-TMC resource
- Emulator transports in instrument packages (e.g., dmmlink-gwinstek)
"""

from __future__ import annotations

from typing import Protocol


class ByteTransport(Protocol):
    """Protocol for non-blocking, timeout-bounded byte transport.

    This is a structural subtyping protocol (duck typing). Any class that
    implements ``read()``, ``write()``, ``discard_input()``, ``close()`` and
    ``is_open`` with the correct signatures is considered a valid transport.

    Example:
        >>> class MyTransport:
        ...     is_open = True
        ...     def read(self, timeout: float) -> bytes:
        ...         return b""
        ...     def write(self, data: bytes) -> int:
        ...         return len(data)
        ...     def discard_input(self) -> None:
        ...         pass
        ...     def close(self) -> None:
        ...         pass
        ...
        >>> transport: ByteTransport = MyTransport()  # Type checks OK
    """

    @property
    def is_open(self) -> bool:
        """Return True while the handle is usable."""
        ...

    def read(self, timeout: float) -> bytes:
        """Perform one read attempt.

        Waits at most *timeout* seconds for data to become available and
        returns whatever is buffered, which may be a partial line.

        Args:
            timeout: Readiness wait in seconds.

        Returns:
            The bytes read, or ``b""`` when nothing arrived in time.

        Raises:
            TransportError: If the device failed.
        """
        ...

    def write(self, data: bytes) -> int:
        """Write bytes to the device.

        Args:
            data: Encoded command bytes.

        Returns:
            Number of bytes written. Short writes are not an error.

        Raises:
            TransportError: If the write failed.
        """
        ...

    def discard_input(self) -> None:
        """Drop any received bytes not yet read.

        Called before a new query when the previous one was abandoned, so a
        late reply cannot be taken as the answer to the next query.

        Raises:
            TransportError: If the device failed.
        """
        ...

    def close(self) -> None:
        """Release the lock and the descriptor. Safe to call repeatedly."""
        ...
