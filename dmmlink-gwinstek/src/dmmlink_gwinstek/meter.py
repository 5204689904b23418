"""GW Instek GDM-8341 multimeter driver.

Ties the layers together for a polling loop: a transport, the line channel
on top of it, the measurement session, the decoder and the recovery policy.
Each :meth:`Gdm8341.poll` is one session tick; a completed cycle comes back
as a :class:`DecodedMeasurement`.

Typical usage::

    from dmmlink_gwinstek import create_instrument

    meter = create_instrument("/dev/ttyUSB0", baud=115200)
    try:
        while True:
            measurement = meter.poll()
            if measurement is not None:
                print(measurement.display_value, measurement.detail)
    finally:
        meter.close()
"""

from __future__ import annotations

import logging
import time
from types import TracebackType
from typing import Any, Callable, Sequence

from dmmlink_core.errors import StateError
from dmmlink_scpi.connection import LineChannel
from dmmlink_scpi.errors import TransportError
from dmmlink_scpi.factory import open_transport
from dmmlink_scpi.serial_port import DEFAULT_BAUD_RATE
from dmmlink_scpi.transport import ByteTransport

from dmmlink_gwinstek.decoder import decode
from dmmlink_gwinstek.discovery import DEFAULT_CANDIDATES, Opener, find_instrument, probe_port
from dmmlink_gwinstek.models import DecodedMeasurement
from dmmlink_gwinstek.modes import find_mode
from dmmlink_gwinstek.recovery import RecoveryPolicy
from dmmlink_gwinstek.session import CycleOutcome, MeasurementSession, TickResult

logger = logging.getLogger(__name__)


class Gdm8341:
    """High-level driver for the GDM-8341 bench multimeter.

    Args:
        transport: An open transport, or ``None`` to start disconnected and
            let the first :meth:`poll` probe for the meter.
        device: Device path tried first when re-acquiring.
        baud: Serial baud rate.
        read_timeout: Readiness wait for each transport read, in seconds.
        step_timeout: Time allowed for each response line, in seconds.
        continuity_threshold: Override for the meter's continuity threshold.
        recovery: Recovery policy; a default one is created if omitted.
        candidates: Ports probed when re-acquiring.
        opener: Transport factory used when re-acquiring.
        clock: Monotonic time source for step deadlines.
    """

    def __init__(
        self,
        transport: ByteTransport | None,
        *,
        device: str | None = None,
        baud: int = DEFAULT_BAUD_RATE,
        read_timeout: float = 0.5,
        step_timeout: float = 2.0,
        continuity_threshold: int | None = None,
        recovery: RecoveryPolicy | None = None,
        candidates: Sequence[str] = DEFAULT_CANDIDATES,
        opener: Opener = open_transport,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._device = device
        self._baud = baud
        self._read_timeout = read_timeout
        self._step_timeout = step_timeout
        self._continuity_threshold = continuity_threshold
        self._recovery = recovery if recovery is not None else RecoveryPolicy()
        self._candidates = tuple(candidates)
        self._opener = opener
        self._clock = clock
        self._session: MeasurementSession | None = None
        self._last: DecodedMeasurement | None = None
        if transport is not None:
            self._attach(transport)

    # -- Properties ----------------------------------------------------------

    @property
    def connected(self) -> bool:
        """Return True while a transport is attached."""
        return self._session is not None

    @property
    def device(self) -> str | None:
        """Path of the attached (or preferred) device."""
        return self._device

    @property
    def session(self) -> MeasurementSession | None:
        """The active measurement session, if connected."""
        return self._session

    @property
    def recovery(self) -> RecoveryPolicy:
        """The recovery policy in use."""
        return self._recovery

    @property
    def last_measurement(self) -> DecodedMeasurement | None:
        """The most recent decoded measurement."""
        return self._last

    # -- Polling -------------------------------------------------------------

    def poll(self) -> DecodedMeasurement | None:
        """Advance the measurement cycle by one tick.

        When disconnected, runs one re-acquisition attempt instead.

        Returns:
            A measurement when this tick completed a cycle, else ``None``.
        """
        if self._session is None:
            self._recovery.recover(self._reacquire)
            return None

        try:
            result = self._session.tick()
        except TransportError as exc:
            logger.error("Transport failure on %s: %s", self._device or "meter", exc)
            self._detach()
            return None
        return self._handle(result)

    def request_mode(self, mode: int | str) -> None:
        """Switch the meter's function before the next cycle.

        Args:
            mode: Mode index, SCPI token or label (e.g. ``"RES"``).

        Raises:
            StateError: If the meter is not connected.
            KeyError: If *mode* names no known function.
        """
        if self._session is None:
            raise StateError("Meter is not connected")
        index = mode if isinstance(mode, int) else find_mode(mode)
        self._session.request_override(index)

    def release(self) -> None:
        """Return the meter to front-panel control (``SYST:LOC``)."""
        if self._session is None:
            return
        try:
            self._session.release()
        except TransportError as exc:
            logger.warning("Could not return %s to local: %s", self._device or "meter", exc)
            self._detach()

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Return the meter to local control and close the transport."""
        self.release()
        self._detach()

    def __enter__(self) -> Gdm8341:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- Private helpers -----------------------------------------------------

    def _handle(self, result: TickResult) -> DecodedMeasurement | None:
        if result.outcome is CycleOutcome.COMPLETED:
            if result.reading is None:
                raise StateError("Completed cycle carried no reading")
            self._recovery.record_success()
            measurement = decode(result.reading, threshold_override=self._continuity_threshold)
            logger.debug("Decoded %s", measurement)
            self._last = measurement
            return measurement
        if result.outcome is CycleOutcome.TIMED_OUT:
            self._recovery.record_failure()
            if self._recovery.should_recover:
                self._recovery.recover(self._reacquire)
        return None

    def _attach(self, transport: ByteTransport) -> None:
        channel = LineChannel(
            transport,
            read_timeout=self._read_timeout,
            step_timeout=self._step_timeout,
            clock=self._clock,
        )
        self._session = MeasurementSession(channel)

    def _detach(self) -> None:
        if self._session is None:
            return
        session, self._session = self._session, None
        session.abort()
        session.channel.close()

    def _reacquire(self) -> bool:
        self._detach()
        paths = list(self._candidates)
        if self._device is not None:
            paths = [self._device] + [p for p in paths if p != self._device]
        for path in paths:
            found = probe_port(path, self._baud, opener=self._opener)
            if found is not None:
                self._device = found.path
                self._attach(found.transport)
                return True
        return False


def create_instrument(
    device: str | None = None,
    baud: int = DEFAULT_BAUD_RATE,
    *,
    candidates: Sequence[str] = DEFAULT_CANDIDATES,
    opener: Opener = open_transport,
    **kwargs: Any,
) -> Gdm8341:
    """Create a GDM-8341 driver.

    Standard factory entry point. An explicit *device* is opened directly;
    without one, *candidates* are probed for the meter.

    Args:
        device: Serial device node or VISA resource string.
        baud: Serial baud rate.
        candidates: Ports probed when *device* is not given.
        opener: Transport factory.
        **kwargs: Passed through to :class:`Gdm8341`.

    Returns:
        Connected driver instance.

    Raises:
        TransportError: If the device cannot be opened or no meter is found.
    """
    if device is not None:
        transport = opener(device, baud)
    else:
        found = find_instrument(candidates, baud, opener=opener)
        device, transport = found.path, found.transport
    return Gdm8341(
        transport, device=device, baud=baud, candidates=candidates, opener=opener, **kwargs
    )
