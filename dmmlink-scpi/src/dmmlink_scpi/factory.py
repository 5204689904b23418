"""Transport selection by device address."""

from __future__ import annotations

from dmmlink_scpi.serial_port import DEFAULT_BAUD_RATE, SerialPort
from dmmlink_scpi.transport import ByteTransport
from dmmlink_scpi.visa import VisaPort


def is_visa_address(path: str) -> bool:
    """Return True if *path* looks like a VISA resource string."""
    return "::" in path


def open_transport(path: str, baud: int = DEFAULT_BAUD_RATE) -> ByteTransport:
    """Open the transport appropriate for *path*.

    VISA resource strings (``USB0::...::INSTR``) open a :class:`VisaPort`;
    anything else is treated as a serial device node and opens a
    :class:`SerialPort` at *baud*.

    Args:
        path: Device node or VISA resource string.
        baud: Baud rate for serial lines (ignored for VISA).

    Returns:
        An open transport.

    Raises:
        TransportError: If the device cannot be opened or configured.
    """
    port: SerialPort | VisaPort
    if is_visa_address(path):
        port = VisaPort(path)
    else:
        port = SerialPort(path, baud=baud)
    port.open()
    return port
