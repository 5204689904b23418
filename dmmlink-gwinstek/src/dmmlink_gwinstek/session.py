"""Measurement session state machine.

One measurement takes a fixed series of queries, each answered by exactly
one line::

    IDLE --SENS:FUNC1?--> AWAITING_MODE --VAL1?--> AWAITING_VALUE
         --CONF:RANG?--> AWAITING_RANGE [--SENS:CONT:THR?--> AWAITING_THRESHOLD]
         --> COMPLETE --> IDLE

:meth:`MeasurementSession.tick` advances by at most one transport operation
(a write when idle, otherwise one bounded read), so the enclosing loop keeps
control between steps and may abandon a cycle at any tick boundary.

A step that times out, or a mode token the registry does not know, sends the
session back to ``IDLE`` with its partial input dropped; the next tick starts
a fresh cycle. Transport errors propagate to the caller after the same reset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from dmmlink_core.errors import StateError
from dmmlink_scpi.connection import LineChannel
from dmmlink_scpi.errors import ScpiProtocolError, ScpiTimeoutError, TransportError

from dmmlink_gwinstek.models import RawReading
from dmmlink_gwinstek.modes import MODE_CONT, MODES, lookup_token

logger = logging.getLogger(__name__)

SCPI_FUNC = "SENS:FUNC1?"
SCPI_VAL1 = "VAL1?"
SCPI_RANGE = "CONF:RANG?"
SCPI_CONT_THRESHOLD = "SENS:CONT:THR?"
SCPI_LOCAL = "SYST:LOC"


class SessionState(Enum):
    """Protocol position within one measurement cycle."""

    IDLE = "idle"
    AWAITING_MODE = "awaiting_mode"
    AWAITING_VALUE = "awaiting_value"
    AWAITING_RANGE = "awaiting_range"
    AWAITING_THRESHOLD = "awaiting_threshold"
    AWAITING_OVERRIDE = "awaiting_override"
    COMPLETE = "complete"


class CycleOutcome(Enum):
    """What a single tick achieved.

    Attributes:
        PENDING: The cycle is still in progress.
        COMPLETED: A full :class:`RawReading` was assembled.
        TIMED_OUT: A step got no response in time; the cycle was abandoned.
        UNKNOWN_MODE: The mode token was not in the registry; cycle abandoned.
        OVERRIDDEN: A mode override query was answered and its reply discarded.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    UNKNOWN_MODE = "unknown_mode"
    OVERRIDDEN = "overridden"


@dataclass(frozen=True)
class TickResult:
    """Result of one :meth:`MeasurementSession.tick`.

    Attributes:
        outcome: What the tick achieved.
        state: Session state after the tick.
        reading: The assembled reading when ``outcome`` is ``COMPLETED``.
    """

    outcome: CycleOutcome
    state: SessionState
    reading: RawReading | None = None


TransitionHook = Callable[[SessionState, SessionState], None]


class MeasurementSession:
    """Drives the query sequence for one meter over a :class:`LineChannel`.

    Args:
        channel: Line channel bound to the meter's transport.
        on_transition: Optional callback invoked with ``(old, new)`` on every
            state change.
    """

    def __init__(self, channel: LineChannel, *, on_transition: TransitionHook | None = None) -> None:
        self._channel = channel
        self._on_transition = on_transition
        self._state = SessionState.IDLE
        self._mode_index: int | None = None
        self._raw_value = ""
        self._raw_range = ""
        self._override: str | None = None

    # -- Properties ----------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Current protocol state."""
        return self._state

    @property
    def channel(self) -> LineChannel:
        """The line channel this session drives."""
        return self._channel

    @property
    def override_pending(self) -> bool:
        """Return True if a mode override is queued for the next idle tick."""
        return self._override is not None

    # -- Public operations ---------------------------------------------------

    def tick(self) -> TickResult:
        """Advance the cycle by one transport operation.

        Returns:
            The tick outcome, with the reading when a cycle completed.

        Raises:
            TransportError: If the transport failed. The session is reset to
                ``IDLE`` first.
        """
        try:
            if self._state in (SessionState.IDLE, SessionState.COMPLETE):
                self._start_cycle()
                return TickResult(CycleOutcome.PENDING, self._state)
            try:
                line = self._channel.poll()
            except ScpiTimeoutError as exc:
                logger.warning("Timed out in %s: %s", self._state.value, exc)
                self._to_idle()
                return TickResult(CycleOutcome.TIMED_OUT, self._state)
            if line is None:
                return TickResult(CycleOutcome.PENDING, self._state)
            try:
                return self._advance(line)
            except ScpiProtocolError as exc:
                logger.warning("%s", exc)
                self._to_idle()
                return TickResult(CycleOutcome.UNKNOWN_MODE, self._state)
        except TransportError:
            self._to_idle()
            raise

    def request_override(self, mode_index: int) -> None:
        """Queue the ``MEAS`` query for *mode_index* in place of the next cycle.

        The query switches the meter's function. It is sent at the next idle
        tick and its reply is consumed and discarded before normal cycling
        resumes, so command/response pairing stays aligned.

        Args:
            mode_index: Index into :data:`MODES`.

        Raises:
            IndexError: If *mode_index* is out of range.
        """
        if not 0 <= mode_index < len(MODES):
            raise IndexError(f"Mode index {mode_index} out of range (0-{len(MODES) - 1})")
        self._override = MODES[mode_index].query_command
        logger.info("Queued mode override %s", self._override)

    def abort(self) -> None:
        """Abandon the current cycle and return to ``IDLE``."""
        if self._state is not SessionState.IDLE:
            logger.debug("Aborting cycle in %s", self._state.value)
        self._to_idle()

    def release(self) -> None:
        """Abandon the current cycle and return the meter to local control.

        Raises:
            TransportError: If the ``SYST:LOC`` write failed.
        """
        self._to_idle()
        self._channel.command(SCPI_LOCAL)

    # -- Private helpers -----------------------------------------------------

    def _start_cycle(self) -> None:
        if self._state is SessionState.COMPLETE:
            self._set_state(SessionState.IDLE)
        if self._override is not None:
            command, self._override = self._override, None
            self._channel.send(command)
            self._set_state(SessionState.AWAITING_OVERRIDE)
        else:
            self._channel.send(SCPI_FUNC)
            self._set_state(SessionState.AWAITING_MODE)

    def _advance(self, line: str) -> TickResult:
        state = self._state
        if state is SessionState.AWAITING_MODE:
            mode_index = lookup_token(line)
            if mode_index is None:
                raise ScpiProtocolError(f"Unknown mode {line!r}", line)
            self._mode_index = mode_index
            self._channel.send(SCPI_VAL1)
            self._set_state(SessionState.AWAITING_VALUE)

        elif state is SessionState.AWAITING_VALUE:
            self._raw_value = line
            self._channel.send(SCPI_RANGE)
            self._set_state(SessionState.AWAITING_RANGE)

        elif state is SessionState.AWAITING_RANGE:
            self._raw_range = line
            if self._mode_index == MODE_CONT:
                self._channel.send(SCPI_CONT_THRESHOLD)
                self._set_state(SessionState.AWAITING_THRESHOLD)
            else:
                return self._complete(None)

        elif state is SessionState.AWAITING_THRESHOLD:
            return self._complete(line)

        elif state is SessionState.AWAITING_OVERRIDE:
            logger.debug("Discarding override reply %r", line)
            self._to_idle()
            return TickResult(CycleOutcome.OVERRIDDEN, self._state)

        return TickResult(CycleOutcome.PENDING, self._state)

    def _complete(self, raw_threshold: str | None) -> TickResult:
        if self._mode_index is None:
            raise StateError("Cycle completed without a mode")
        reading = RawReading(
            mode_index=self._mode_index,
            raw_value=self._raw_value,
            raw_range=self._raw_range,
            raw_threshold=raw_threshold,
        )
        self._set_state(SessionState.COMPLETE)
        self._to_idle()
        return TickResult(CycleOutcome.COMPLETED, self._state, reading)

    def _to_idle(self) -> None:
        self._channel.reset()
        self._mode_index = None
        self._raw_value = ""
        self._raw_range = ""
        self._set_state(SessionState.IDLE)

    def _set_state(self, new: SessionState) -> None:
        old = self._state
        if old is new:
            return
        self._state = new
        logger.debug("Session %s -> %s", old.value, new.value)
        if self._on_transition is not None:
            self._on_transition(old, new)
