"""Find a GDM-8341 among candidate serial ports.

A candidate is accepted only if it stays silent until spoken to and then
answers ``*IDN?`` with the expected model token. Devices that stream data on
their own (GPS receivers, other meters, consoles) are rejected before any
command is sent to them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable

from dmmlink_scpi.connection import LineChannel, parse_idn_response
from dmmlink_scpi.errors import DeviceNotFoundError, ScpiTimeoutError, TransportError
from dmmlink_scpi.factory import open_transport
from dmmlink_scpi.serial_port import DEFAULT_BAUD_RATE
from dmmlink_scpi.transport import ByteTransport

logger = logging.getLogger(__name__)

DEFAULT_CANDIDATES: tuple[str, ...] = tuple(f"/dev/ttyUSB{n}" for n in range(10))
MODEL_TOKEN = "GDM8341"
SCPI_IDN = "*IDN?"

Opener = Callable[[str, int], ByteTransport]


@dataclass(frozen=True)
class DiscoveredPort:
    """An opened port that identified itself as the expected meter.

    Attributes:
        path: Device path or resource string.
        transport: The open, locked transport.
        response: The raw ``*IDN?`` response.
    """

    path: str
    transport: ByteTransport
    response: str


def probe_port(
    path: str,
    baud: int = DEFAULT_BAUD_RATE,
    *,
    opener: Opener = open_transport,
    model_token: str = MODEL_TOKEN,
    quiet_window: float = 0.3,
    idn_timeout: float = 1.0,
) -> DiscoveredPort | None:
    """Open *path* and check that a matching meter is attached.

    The port is closed again on every rejection.

    Args:
        path: Device path or VISA resource string.
        baud: Serial baud rate.
        opener: Transport factory.
        model_token: Substring the ``*IDN?`` response must contain.
        quiet_window: Seconds the device must stay silent before the query.
        idn_timeout: Seconds allowed for the ``*IDN?`` response.

    Returns:
        The discovered port, or ``None`` if it is absent or not our meter.
    """
    try:
        transport = opener(path, baud)
    except TransportError as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return None

    accepted = False
    try:
        unsolicited = transport.read(quiet_window)
        if unsolicited:
            logger.info("%s sent %d unsolicited bytes; not our meter", path, len(unsolicited))
            return None
        channel = LineChannel(transport, read_timeout=idn_timeout, step_timeout=idn_timeout)
        response = channel.query(SCPI_IDN)
        if model_token not in response:
            logger.info("%s identified as %r; not our meter", path, response)
            return None
        accepted = True
    except (ScpiTimeoutError, TransportError) as exc:
        logger.debug("Probe of %s failed: %s", path, exc)
        return None
    finally:
        if not accepted:
            transport.close()

    try:
        logger.info("Port %s selected: %s", path, parse_idn_response(response))
    except ValueError:
        logger.info("Port %s selected: %r", path, response)
    return DiscoveredPort(path, transport, response)


def find_instrument(
    candidates: Iterable[str] = DEFAULT_CANDIDATES,
    baud: int = DEFAULT_BAUD_RATE,
    **probe_kwargs: object,
) -> DiscoveredPort:
    """Probe *candidates* in order and return the first matching meter.

    Args:
        candidates: Device paths to try.
        baud: Serial baud rate.
        **probe_kwargs: Passed through to :func:`probe_port`.

    Returns:
        The first discovered port.

    Raises:
        DeviceNotFoundError: If no candidate answers correctly.
    """
    tried: list[str] = []
    for path in candidates:
        tried.append(path)
        logger.debug("Testing port %s", path)
        found = probe_port(path, baud, **probe_kwargs)  # type: ignore[arg-type]
        if found is not None:
            return found
    raise DeviceNotFoundError(f"No {MODEL_TOKEN} found on {', '.join(tried) or 'any port'}")
