"""Tests for LineBuffer and LineChannel using a scripted transport."""

from __future__ import annotations

from collections import deque

import pytest

from dmmlink_core.common import InstrumentIdentity
from dmmlink_core.errors import StateError

from dmmlink_scpi.connection import MAX_LINE_BYTES, LineBuffer, LineChannel, parse_idn_response
from dmmlink_scpi.errors import ScpiTimeoutError, TransportError

# ---------------------------------------------------------------------------
# Scripted transport
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedTransport:
    """Transport that replays pre-loaded chunks.

    An empty read consumes the whole timeout on the fake clock. Chunks model
    bytes still to arrive, so :meth:`discard_input` only counts the call.
    """

    def __init__(self, clock: FakeClock, chunks: list[bytes] | None = None) -> None:
        self.clock = clock
        self.chunks: deque[bytes] = deque(chunks or [])
        self.written: list[bytes] = []
        self.timeouts: list[float] = []
        self.discards = 0
        self.closed = False

    @property
    def is_open(self) -> bool:
        return not self.closed

    def read(self, timeout: float) -> bytes:
        self.timeouts.append(timeout)
        chunk = self.chunks.popleft() if self.chunks else b""
        if not chunk:
            self.clock.advance(timeout)
        return chunk

    def write(self, data: bytes) -> int:
        self.written.append(data)
        return len(data)

    def discard_input(self) -> None:
        self.discards += 1

    def close(self) -> None:
        self.closed = True


def _channel(
    chunks: list[bytes] | None = None,
    *,
    read_timeout: float = 0.5,
    step_timeout: float = 2.0,
) -> tuple[LineChannel, ScriptedTransport]:
    clock = FakeClock()
    transport = ScriptedTransport(clock, chunks)
    channel = LineChannel(
        transport, read_timeout=read_timeout, step_timeout=step_timeout, clock=clock
    )
    return channel, transport


# ---------------------------------------------------------------------------
# LineBuffer
# ---------------------------------------------------------------------------


class TestLineBuffer:
    """Tests for LineBuffer framing."""

    def test_incomplete_line_returns_none(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"+1.23") is None
        assert buf.pending == b"+1.23"
        assert len(buf) == 5

    def test_line_across_chunks(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"+1.23") is None
        assert buf.feed(b"45E+00\r") is None
        assert buf.feed(b"\n") == "+1.2345E+00"
        assert len(buf) == 0

    def test_strips_carriage_return_and_whitespace(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"  VOLT \r\n") == "VOLT"

    def test_bare_newline_terminates(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"RES\n") == "RES"

    def test_bytes_after_terminator_discarded(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"VOLT\r\nstale\r\n") == "VOLT"
        assert buf.pending == b""

    def test_non_ascii_replaced(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"\xff1\r\n") == "�1"

    def test_overflow_drops_buffer(self) -> None:
        buf = LineBuffer(limit=8)
        assert buf.feed(b"123456789") is None
        assert len(buf) == 0
        assert buf.feed(b"OK\n") == "OK"

    def test_default_limit(self) -> None:
        buf = LineBuffer()
        assert buf.feed(b"x" * MAX_LINE_BYTES) is None
        assert len(buf) == MAX_LINE_BYTES

    def test_clear(self) -> None:
        buf = LineBuffer()
        buf.feed(b"partial")
        buf.clear()
        assert buf.pending == b""


# ---------------------------------------------------------------------------
# send / command
# ---------------------------------------------------------------------------


class TestSend:
    """Tests for LineChannel.send and LineChannel.command."""

    def test_send_appends_terminator(self) -> None:
        channel, transport = _channel()
        channel.send("SENS:FUNC1?")
        assert transport.written == [b"SENS:FUNC1?\r\n"]
        assert channel.pending_command == "SENS:FUNC1?"

    def test_send_keeps_existing_terminator(self) -> None:
        channel, transport = _channel()
        channel.send("VAL1?\r\n")
        assert transport.written == [b"VAL1?\r\n"]
        assert channel.pending_command == "VAL1?"

    def test_second_send_while_pending_raises(self) -> None:
        channel, transport = _channel()
        channel.send("SENS:FUNC1?")
        with pytest.raises(StateError, match="outstanding"):
            channel.send("VAL1?")
        assert transport.written == [b"SENS:FUNC1?\r\n"]

    def test_command_writes_without_pending(self) -> None:
        channel, transport = _channel()
        channel.command("SYST:LOC")
        assert transport.written == [b"SYST:LOC\r\n"]
        assert channel.pending_command is None

    def test_command_while_pending_raises(self) -> None:
        channel, _ = _channel()
        channel.send("VAL1?")
        with pytest.raises(StateError):
            channel.command("SYST:LOC")

    def test_send_after_reset_allowed(self) -> None:
        channel, transport = _channel()
        channel.send("VAL1?")
        channel.reset()
        channel.send("CONF:RANG?")
        assert transport.written[-1] == b"CONF:RANG?\r\n"

    def test_normal_send_does_not_discard_input(self) -> None:
        channel, transport = _channel([b"VOLT\r\n", b"+1.0E+00\r\n"])
        channel.send("SENS:FUNC1?")
        assert channel.poll() == "VOLT"
        channel.reset()
        channel.send("VAL1?")
        assert transport.discards == 0

    def test_send_after_timeout_discards_input_once(self) -> None:
        channel, transport = _channel(step_timeout=1.0)
        with pytest.raises(ScpiTimeoutError):
            channel.query("SENS:FUNC1?")
        channel.send("SENS:FUNC1?")
        assert transport.discards == 1
        channel.reset()
        channel.send("SENS:FUNC1?")
        assert transport.discards == 2

    def test_reset_with_query_outstanding_discards_before_next_send(self) -> None:
        channel, transport = _channel()
        channel.send("VAL1?")
        channel.reset()
        channel.reset()
        assert transport.discards == 0
        channel.send("CONF:RANG?")
        assert transport.discards == 1


# ---------------------------------------------------------------------------
# poll
# ---------------------------------------------------------------------------


class TestPoll:
    """Tests for LineChannel.poll."""

    def test_poll_without_query_raises(self) -> None:
        channel, _ = _channel()
        with pytest.raises(StateError, match="No query outstanding"):
            channel.poll()

    def test_complete_line_in_one_read(self) -> None:
        channel, _ = _channel([b"VOLT\r\n"])
        channel.send("SENS:FUNC1?")
        assert channel.poll() == "VOLT"
        assert channel.pending_command is None

    def test_line_split_across_reads(self) -> None:
        channel, _ = _channel([b"+1.2", b"34", b"5E+00\r\n"])
        channel.send("VAL1?")
        assert channel.poll() is None
        assert channel.poll() is None
        assert channel.poll() == "+1.2345E+00"

    def test_one_read_per_poll(self) -> None:
        channel, transport = _channel([b"", b"VOLT\r\n"])
        channel.send("SENS:FUNC1?")
        assert channel.poll() is None
        assert len(transport.timeouts) == 1

    def test_timeout_after_step_deadline(self) -> None:
        channel, _ = _channel(read_timeout=0.5, step_timeout=2.0)
        channel.send("VAL1?")
        for _ in range(3):
            assert channel.poll() is None
        with pytest.raises(ScpiTimeoutError) as exc_info:
            channel.poll()
        assert exc_info.value.command == "VAL1?"
        assert channel.pending_command is None

    def test_timeout_reports_and_drops_partial(self) -> None:
        channel, _ = _channel([b"+1.23"], read_timeout=0.5, step_timeout=1.0)
        channel.send("VAL1?")
        assert channel.poll() is None
        assert channel.poll() is None
        with pytest.raises(ScpiTimeoutError) as exc_info:
            channel.poll()
        assert exc_info.value.partial == b"+1.23"

    def test_read_bounded_by_remaining_step_time(self) -> None:
        channel, transport = _channel(read_timeout=0.75, step_timeout=1.0)
        channel.send("VAL1?")
        channel.poll()
        with pytest.raises(ScpiTimeoutError):
            channel.poll()
        assert transport.timeouts == [0.75, 0.25]

    def test_stale_partial_not_joined_to_next_response(self) -> None:
        channel, _ = _channel([b"junk", b"OK\r\n"])
        channel.send("VAL1?")
        assert channel.poll() is None
        channel.reset()
        channel.send("CONF:RANG?")
        assert channel.poll() == "OK"

    def test_transport_error_propagates(self) -> None:
        channel, transport = _channel()

        def _fail(timeout: float) -> bytes:
            raise TransportError("gone", "/dev/ttyUSB0")

        transport.read = _fail  # type: ignore[method-assign]
        channel.send("VAL1?")
        with pytest.raises(TransportError):
            channel.poll()


# ---------------------------------------------------------------------------
# query / close
# ---------------------------------------------------------------------------


class TestQuery:
    """Tests for the blocking query helper."""

    def test_query_returns_line(self) -> None:
        channel, transport = _channel([b"", b"GW.Inc,GDM8341,GEW1,1.00\r\n"])
        assert channel.query("*IDN?") == "GW.Inc,GDM8341,GEW1,1.00"
        assert transport.written == [b"*IDN?\r\n"]

    def test_query_times_out(self) -> None:
        channel, _ = _channel(step_timeout=1.0)
        with pytest.raises(ScpiTimeoutError, match=r"\*IDN\?"):
            channel.query("*IDN?")

    def test_close_closes_transport(self) -> None:
        channel, transport = _channel()
        channel.send("VAL1?")
        channel.close()
        assert transport.closed
        assert channel.pending_command is None


# ---------------------------------------------------------------------------
# parse_idn_response
# ---------------------------------------------------------------------------


class TestParseIdnResponse:
    """Tests for parse_idn_response."""

    def test_four_fields(self) -> None:
        identity = parse_idn_response("GW.Inc,GDM8341,GEW123456,1.00")
        assert identity == InstrumentIdentity("GW.Inc", "GDM8341", "GEW123456", "1.00")

    def test_extra_fields_joined_into_firmware(self) -> None:
        identity = parse_idn_response("GW.Inc, GDM8341, GEW1, 1.00, 2.00")
        assert identity.model == "GDM8341"
        assert identity.firmware == "1.00,2.00"

    def test_too_few_fields(self) -> None:
        with pytest.raises(ValueError, match="at least 4"):
            parse_idn_response("GW.Inc,GDM8341")
