"""Tests for the measurement session state machine against the emulator."""

from __future__ import annotations

import pytest

from dmmlink_core.errors import StateError
from dmmlink_scpi.connection import LineChannel
from dmmlink_scpi.errors import TransportError

from dmmlink_gwinstek.emulator import Gdm8341Emulator, make_gdm8341_emulator
from dmmlink_gwinstek.modes import MODE_CONT, MODE_RES, MODE_VOLT_DC, MODES
from dmmlink_gwinstek.session import CycleOutcome, MeasurementSession, SessionState, TickResult

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_session(
    chunk_size: int = 0,
) -> tuple[MeasurementSession, Gdm8341Emulator, list[tuple[SessionState, SessionState]]]:
    clock = FakeClock()
    emu = make_gdm8341_emulator(chunk_size=chunk_size, sleep=clock.advance)
    channel = LineChannel(emu, read_timeout=0.5, step_timeout=2.0, clock=clock)
    transitions: list[tuple[SessionState, SessionState]] = []
    session = MeasurementSession(
        channel, on_transition=lambda old, new: transitions.append((old, new))
    )
    return session, emu, transitions


def _run_until_done(session: MeasurementSession, max_ticks: int = 100) -> tuple[TickResult, int]:
    """Tick until a non-pending outcome; return it and the tick count."""
    for ticks in range(1, max_ticks + 1):
        result = session.tick()
        if result.outcome is not CycleOutcome.PENDING:
            return result, ticks
    raise AssertionError(f"cycle did not finish within {max_ticks} ticks")


# ---------------------------------------------------------------------------
# Normal cycles
# ---------------------------------------------------------------------------


class TestCycle:
    """Tests for complete measurement cycles."""

    def test_starts_idle(self) -> None:
        session, _, _ = _make_session()
        assert session.state is SessionState.IDLE

    def test_first_tick_sends_mode_query(self) -> None:
        session, emu, _ = _make_session()
        result = session.tick()
        assert result.outcome is CycleOutcome.PENDING
        assert result.state is SessionState.AWAITING_MODE
        assert emu.commands == ["SENS:FUNC1?"]

    def test_voltage_cycle_command_sequence(self) -> None:
        session, emu, _ = _make_session()
        emu.set_reading("+1.234500E+00", "5")
        result, ticks = _run_until_done(session)
        assert ticks == 4
        assert result.outcome is CycleOutcome.COMPLETED
        assert result.state is SessionState.IDLE
        assert emu.commands == ["SENS:FUNC1?", "VAL1?", "CONF:RANG?"]
        assert result.reading is not None
        assert result.reading.mode_index == MODE_VOLT_DC
        assert result.reading.raw_value == "+1.234500E+00"
        assert result.reading.raw_range == "5"
        assert result.reading.raw_threshold is None

    def test_transition_trace(self) -> None:
        session, _, transitions = _make_session()
        _run_until_done(session)
        assert transitions == [
            (SessionState.IDLE, SessionState.AWAITING_MODE),
            (SessionState.AWAITING_MODE, SessionState.AWAITING_VALUE),
            (SessionState.AWAITING_VALUE, SessionState.AWAITING_RANGE),
            (SessionState.AWAITING_RANGE, SessionState.COMPLETE),
            (SessionState.COMPLETE, SessionState.IDLE),
        ]

    def test_continuity_queries_threshold(self) -> None:
        session, emu, transitions = _make_session()
        emu.set_mode("CONT")
        emu.set_reading("+5.000000E+00")
        emu.set_threshold("+2.000000E+01")
        result, ticks = _run_until_done(session)
        assert ticks == 5
        assert emu.commands == ["SENS:FUNC1?", "VAL1?", "CONF:RANG?", "SENS:CONT:THR?"]
        assert result.reading is not None
        assert result.reading.mode_index == MODE_CONT
        assert result.reading.raw_threshold == "+2.000000E+01"
        assert (SessionState.AWAITING_RANGE, SessionState.AWAITING_THRESHOLD) in transitions

    def test_range_reply_without_mode_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        session, _, _ = _make_session()
        session.tick()
        session.tick()
        session.tick()
        assert session.state is SessionState.AWAITING_RANGE
        monkeypatch.setattr(session, "_mode_index", None)
        with pytest.raises(StateError, match="without a mode"):
            session.tick()

    def test_consecutive_cycles(self) -> None:
        session, emu, _ = _make_session()
        _run_until_done(session)
        emu.set_mode("RES")
        emu.set_reading("12345", "50E+3")
        result, _ = _run_until_done(session)
        assert result.reading is not None
        assert result.reading.mode_index == MODE_RES
        assert emu.commands[3:] == ["SENS:FUNC1?", "VAL1?", "CONF:RANG?"]

    def test_chunked_replies(self) -> None:
        session, emu, _ = _make_session(chunk_size=2)
        emu.set_mode("RES")
        emu.set_reading("12345", "50E+3")
        result, ticks = _run_until_done(session)
        assert ticks > 4
        assert result.outcome is CycleOutcome.COMPLETED
        assert result.reading is not None
        assert result.reading.raw_value == "12345"
        assert result.reading.raw_range == "50E+3"


# ---------------------------------------------------------------------------
# Abandoned cycles
# ---------------------------------------------------------------------------


class TestAbandonedCycles:
    """Tests for timeouts, unknown modes and transport failures."""

    def test_silent_meter_times_out(self) -> None:
        session, emu, _ = _make_session()
        emu.silent = True
        result, ticks = _run_until_done(session)
        # one send, then four bounded reads cover the 2 s step window
        assert ticks == 5
        assert result.outcome is CycleOutcome.TIMED_OUT
        assert result.state is SessionState.IDLE
        assert result.reading is None

    def test_timeout_mid_cycle_drops_partial_reading(self) -> None:
        session, emu, transitions = _make_session()
        session.tick()
        session.tick()
        emu.silent = True
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.TIMED_OUT
        assert transitions[-1] == (SessionState.AWAITING_RANGE, SessionState.IDLE)

    def test_recovers_after_timeout(self) -> None:
        session, emu, _ = _make_session()
        emu.silent = True
        _run_until_done(session)
        emu.silent = False
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.COMPLETED

    def test_late_reply_not_paired_with_next_query(self) -> None:
        session, emu, _ = _make_session()
        emu.silent = True
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.TIMED_OUT
        # the meter answers the abandoned query after the window closed
        emu.inject(b"VOLT\r\n")
        emu.silent = False
        emu.set_reading("+1.234500E+00", "5")
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.COMPLETED
        assert emu.commands == ["SENS:FUNC1?", "SENS:FUNC1?", "VAL1?", "CONF:RANG?"]
        assert result.reading is not None
        assert result.reading.mode_index == MODE_VOLT_DC
        assert result.reading.raw_value == "+1.234500E+00"
        assert result.reading.raw_range == "5"

    def test_reply_to_aborted_query_dropped(self) -> None:
        session, emu, _ = _make_session()
        emu.set_reading("+1.234500E+00", "5")
        session.tick()
        session.tick()
        session.abort()
        emu.set_reading("+2.000000E+00", "5")
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.COMPLETED
        assert result.reading is not None
        assert result.reading.raw_value == "+2.000000E+00"

    def test_unknown_mode_abandons_cycle(self) -> None:
        session, emu, _ = _make_session()
        emu.silent = True
        session.tick()
        emu.inject(b"BOGUS\r\n")
        result = session.tick()
        assert result.outcome is CycleOutcome.UNKNOWN_MODE
        assert result.state is SessionState.IDLE
        assert emu.commands == ["SENS:FUNC1?"]

    def test_transport_error_resets_and_propagates(self) -> None:
        session, emu, _ = _make_session()
        session.tick()
        emu.close()
        with pytest.raises(TransportError):
            session.tick()
        assert session.state is SessionState.IDLE

    def test_abort_mid_cycle(self) -> None:
        session, emu, _ = _make_session()
        session.tick()
        session.tick()
        session.abort()
        assert session.state is SessionState.IDLE
        assert session.channel.pending_command is None
        session.tick()
        assert emu.commands[-1] == "SENS:FUNC1?"


# ---------------------------------------------------------------------------
# Mode override
# ---------------------------------------------------------------------------


class TestOverride:
    """Tests for mode override requests."""

    def test_override_sent_at_next_idle_tick(self) -> None:
        session, emu, _ = _make_session()
        session.request_override(MODE_RES)
        assert session.override_pending
        result = session.tick()
        assert result.state is SessionState.AWAITING_OVERRIDE
        assert emu.commands == [MODES[MODE_RES].query_command]
        assert not session.override_pending

    def test_override_reply_discarded(self) -> None:
        session, emu, _ = _make_session()
        session.request_override(MODE_RES)
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.OVERRIDDEN
        assert result.state is SessionState.IDLE
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.COMPLETED
        assert result.reading is not None
        assert result.reading.mode_index == MODE_RES
        assert emu.commands == ["MEAS:RES?", "SENS:FUNC1?", "VAL1?", "CONF:RANG?"]

    def test_override_waits_for_cycle_to_finish(self) -> None:
        session, emu, _ = _make_session()
        session.tick()
        session.request_override(MODE_RES)
        result, _ = _run_until_done(session)
        assert result.outcome is CycleOutcome.COMPLETED
        session.tick()
        assert emu.commands[-1] == "MEAS:RES?"

    @pytest.mark.parametrize("index", [-1, len(MODES)])
    def test_out_of_range_rejected(self, index: int) -> None:
        session, _, _ = _make_session()
        with pytest.raises(IndexError):
            session.request_override(index)


# ---------------------------------------------------------------------------
# Release
# ---------------------------------------------------------------------------


class TestRelease:
    """Tests for returning the meter to local control."""

    def test_release_when_idle(self) -> None:
        session, emu, _ = _make_session()
        session.release()
        assert emu.commands == ["SYST:LOC"]
        assert emu.local

    def test_release_mid_cycle(self) -> None:
        session, emu, _ = _make_session()
        session.tick()
        session.release()
        assert session.state is SessionState.IDLE
        assert emu.commands[-1] == "SYST:LOC"
