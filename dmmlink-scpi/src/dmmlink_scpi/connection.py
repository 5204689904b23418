"""Line framing and strictly alternating query/response over a byte transport.

This module provides :class:`LineBuffer`, which frames raw bytes into
LF-terminated text lines, and :class:`LineChannel`, which wraps a
:class:`~dmmlink_scpi.transport.ByteTransport` to issue one query at a time
and collect exactly one response line within a per-step timeout.

:class:`LineChannel` is poll-driven: :meth:`LineChannel.poll` performs at most
one bounded transport read and returns, so it can sit inside a cooperative
loop that also services a UI. :meth:`LineChannel.query` is the blocking
convenience used where nothing else needs the thread (port discovery).

Typical usage::

    from dmmlink_scpi import LineChannel, open_transport

    channel = LineChannel(open_transport("/dev/ttyUSB0", 115200))
    identity = parse_idn_response(channel.query("*IDN?"))
    channel.close()
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from dmmlink_core.common import InstrumentIdentity
from dmmlink_core.errors import StateError

from dmmlink_scpi.errors import ScpiTimeoutError

if TYPE_CHECKING:
    from dmmlink_scpi.transport import ByteTransport

logger = logging.getLogger(__name__)

TERMINATOR = "\r\n"
MAX_LINE_BYTES = 4096


def parse_idn_response(response: str) -> InstrumentIdentity:
    """Parse a SCPI ``*IDN?`` response into an :class:`InstrumentIdentity`.

    The standard ``*IDN?`` response format is four comma-separated fields::

        manufacturer,model,serial_number,firmware_version

    If the response contains more than four comma-separated fields, the
    extra fields are joined into the firmware string.

    Args:
        response: The raw ``*IDN?`` response string.

    Returns:
        Parsed identity with manufacturer, model, serial, and firmware.

    Raises:
        ValueError: If the response has fewer than four fields.
    """
    parts = [p.strip() for p in response.split(",")]
    if len(parts) < 4:
        raise ValueError(
            f"Expected at least 4 comma-separated fields in *IDN? response, "
            f"got {len(parts)}: {response!r}"
        )
    return InstrumentIdentity(
        manufacturer=parts[0],
        model=parts[1],
        serial=parts[2],
        firmware=",".join(parts[3:]),
    )


class LineBuffer:
    """Accumulates raw bytes until a complete ``\\n``-terminated line arrives.

    One trailing ``\\r`` and surrounding whitespace are stripped from the
    line. Anything received after the terminator is discarded, since the
    instrument answers exactly one line per query. A buffer that grows past
    *limit* bytes without a terminator is dropped.

    Args:
        limit: Maximum bytes held while waiting for a terminator.
    """

    def __init__(self, limit: int = MAX_LINE_BYTES) -> None:
        self._limit = limit
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    @property
    def pending(self) -> bytes:
        """Bytes received so far without a terminator."""
        return bytes(self._data)

    def feed(self, chunk: bytes) -> str | None:
        """Append *chunk* and return the completed line, if any.

        Args:
            chunk: Raw bytes from the transport.

        Returns:
            The decoded line once a terminator has been seen, else ``None``.
        """
        self._data.extend(chunk)
        newline = self._data.find(b"\n")
        if newline < 0:
            if len(self._data) > self._limit:
                logger.warning("Dropping %d bytes without a line terminator", len(self._data))
                self._data.clear()
            return None
        raw = bytes(self._data[:newline])
        trailing = len(self._data) - newline - 1
        if trailing:
            logger.debug("Discarding %d bytes after line terminator", trailing)
        self._data.clear()
        return raw.decode("ascii", errors="replace").strip()

    def clear(self) -> None:
        """Drop any partial line."""
        self._data.clear()


class LineChannel:
    """Strictly alternating command/response channel over a byte transport.

    At most one query may be outstanding. Sending a second query before the
    first response has been consumed (or :meth:`reset` called) raises
    :class:`StateError`. After a query is abandoned by timeout or reset, the
    next :meth:`send` flushes the transport input first, so a late reply is
    never paired with the following query.

    Attributes:
        transport: The underlying transport.
        pending_command: The outstanding query, or ``None``.

    Args:
        transport: An open :class:`ByteTransport`.
        read_timeout: Readiness wait for each individual transport read.
        step_timeout: Overall time allowed for one response line.
        clock: Monotonic time source, replaceable for tests.
    """

    def __init__(
        self,
        transport: ByteTransport,
        *,
        read_timeout: float = 0.5,
        step_timeout: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._read_timeout = read_timeout
        self._step_timeout = step_timeout
        self._clock = clock
        self._buffer = LineBuffer()
        self._pending: str | None = None
        self._deadline = 0.0
        self._stale = False

    # -- Properties ----------------------------------------------------------

    @property
    def transport(self) -> ByteTransport:
        """The underlying transport."""
        return self._transport

    @property
    def pending_command(self) -> str | None:
        """The query awaiting a response, or ``None``."""
        return self._pending

    # -- Core operations -----------------------------------------------------

    def send(self, query: str) -> None:
        """Send a query and arm the response deadline.

        Args:
            query: The SCPI query; ``\\r\\n`` is appended if missing.

        Raises:
            StateError: If another query is still awaiting its response.
            TransportError: If the write failed.
        """
        if self._pending is not None:
            raise StateError(
                f"Cannot send {query.strip()!r} while {self._pending!r} is outstanding"
            )
        if self._stale:
            logger.debug("Discarding unread input before %r", query.strip())
            self._transport.discard_input()
            self._stale = False
        self._buffer.clear()
        self._write(query)
        self._pending = query.strip()
        self._deadline = self._clock() + self._step_timeout

    def command(self, cmd: str) -> None:
        """Send a command that produces no response (e.g. ``SYST:LOC``).

        Args:
            cmd: The SCPI command; ``\\r\\n`` is appended if missing.

        Raises:
            StateError: If a query is still awaiting its response.
            TransportError: If the write failed.
        """
        if self._pending is not None:
            raise StateError(
                f"Cannot send {cmd.strip()!r} while {self._pending!r} is outstanding"
            )
        self._write(cmd)

    def poll(self) -> str | None:
        """Perform one bounded read toward the outstanding response.

        Returns:
            The response line once complete, else ``None``.

        Raises:
            StateError: If no query is outstanding.
            ScpiTimeoutError: If the step deadline passed without a full line.
                The partial line is dropped and the channel is reset.
            TransportError: If the read failed.
        """
        if self._pending is None:
            raise StateError("No query outstanding")
        remaining = self._deadline - self._clock()
        if remaining <= 0:
            self._expire()
        chunk = self._transport.read(min(self._read_timeout, remaining))
        if chunk:
            line = self._buffer.feed(chunk)
            if line is not None:
                logger.debug("Received %r for %r", line, self._pending)
                self._pending = None
                return line
        if self._clock() >= self._deadline:
            self._expire()
        return None

    def query(self, query: str) -> str:
        """Send a query and block until its response line arrives.

        Args:
            query: The SCPI query.

        Returns:
            The response line.

        Raises:
            ScpiTimeoutError: If no line arrives within the step timeout.
            TransportError: If the transport failed.
        """
        self.send(query)
        while True:
            line = self.poll()
            if line is not None:
                return line

    def reset(self) -> None:
        """Forget the outstanding query and any partial line.

        If a query was still outstanding, its reply may yet arrive, so the
        transport input is discarded before the next :meth:`send`.
        """
        if self._pending is not None:
            self._stale = True
        self._pending = None
        self._buffer.clear()

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Reset the channel and close the underlying transport."""
        self.reset()
        self._transport.close()

    # -- Private helpers -----------------------------------------------------

    def _write(self, text: str) -> None:
        if not text.endswith(TERMINATOR):
            text = text.rstrip("\r\n") + TERMINATOR
        logger.debug("Sending %r", text)
        self._transport.write(text.encode("ascii"))

    def _expire(self) -> None:
        command = self._pending or ""
        partial = self._buffer.pending
        self.reset()
        raise ScpiTimeoutError(command, partial)
