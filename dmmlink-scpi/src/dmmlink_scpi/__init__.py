"""SCPI line transport library for dmmlink instrument drivers.

This package provides the byte transport and line protocol layers used to
talk to bench instruments with a SCPI-style text dialect. It includes:

- Transport protocol for non-blocking, timeout-bounded byte I/O
- pyserial-backed transport for serial and USB-serial lines
- PyVISA-backed transport for USB-TMC instruments
- Line framing and a strictly alternating query/response channel
- Number parsing utilities for SCPI responses
- Custom exception types for transport and protocol errors

Typical usage::

    from dmmlink_scpi import LineChannel, open_transport, parse_idn_response

    channel = LineChannel(open_transport("/dev/ttyUSB0", 115200))
    identity = parse_idn_response(channel.query("*IDN?"))
    print(f"Connected to {identity.manufacturer} {identity.model}")
    channel.close()
"""

from dmmlink_scpi.connection import LineBuffer, LineChannel, parse_idn_response
from dmmlink_scpi.errors import (
    DeviceBusyError,
    DeviceNotFoundError,
    ScpiError,
    ScpiProtocolError,
    ScpiTimeoutError,
    TransportConfigError,
    TransportError,
)
from dmmlink_scpi.factory import is_visa_address, open_transport
from dmmlink_scpi.number import parse_float_prefix, parse_number
from dmmlink_scpi.serial_port import DEFAULT_BAUD_RATE, SUPPORTED_BAUD_RATES, SerialPort
from dmmlink_scpi.transport import ByteTransport
from dmmlink_scpi.visa import VisaPort

__all__ = [
    # Connection
    "LineBuffer",
    "LineChannel",
    "parse_idn_response",
    # Errors
    "DeviceBusyError",
    "DeviceNotFoundError",
    "ScpiError",
    "ScpiProtocolError",
    "ScpiTimeoutError",
    "TransportConfigError",
    "TransportError",
    # Factory
    "is_visa_address",
    "open_transport",
    # Number parsing
    "parse_float_prefix",
    "parse_number",
    # Serial
    "DEFAULT_BAUD_RATE",
    "SUPPORTED_BAUD_RATES",
    "SerialPort",
    # Transport
    "ByteTransport",
    # VISA
    "VisaPort",
]
