"""Tests for port probing and instrument discovery."""

from __future__ import annotations

import pytest

from dmmlink_scpi.errors import DeviceBusyError, DeviceNotFoundError, TransportError
from dmmlink_scpi.transport import ByteTransport

from dmmlink_gwinstek.discovery import SCPI_IDN, find_instrument, probe_port
from dmmlink_gwinstek.emulator import Gdm8341Emulator, Gdm8341EmulatorConfig, make_gdm8341_emulator


def _no_sleep(_: float) -> None:
    pass


class FakeOpener:
    """Transport factory serving emulators by path."""

    def __init__(self, devices: dict[str, Gdm8341Emulator | TransportError]) -> None:
        self.devices = devices
        self.opened: list[str] = []

    def __call__(self, path: str, baud: int) -> ByteTransport:
        self.opened.append(path)
        device = self.devices.get(path)
        if device is None:
            raise DeviceNotFoundError(f"Cannot open {path}", path)
        if isinstance(device, TransportError):
            raise device
        return device


def _other_device() -> Gdm8341Emulator:
    config = Gdm8341EmulatorConfig(identity="Rigol Technologies,DM3058,DM3A1,00.01")
    return Gdm8341Emulator(config, sleep=_no_sleep)


class TestProbePort:
    """Tests for probe_port."""

    def test_accepts_meter(self) -> None:
        emu = make_gdm8341_emulator("GEW123", sleep=_no_sleep)
        found = probe_port("/dev/ttyUSB0", opener=FakeOpener({"/dev/ttyUSB0": emu}))
        assert found is not None
        assert found.path == "/dev/ttyUSB0"
        assert found.transport is emu
        assert found.response == "GW.Inc,GDM8341,GEW123,1.00"
        assert emu.commands == [SCPI_IDN]
        assert emu.is_open

    def test_missing_port_returns_none(self) -> None:
        assert probe_port("/dev/ttyUSB3", opener=FakeOpener({})) is None

    def test_busy_port_returns_none(self) -> None:
        busy = DeviceBusyError("/dev/ttyUSB0 is locked", "/dev/ttyUSB0")
        assert probe_port("/dev/ttyUSB0", opener=FakeOpener({"/dev/ttyUSB0": busy})) is None

    def test_chatty_device_rejected_without_query(self) -> None:
        emu = make_gdm8341_emulator(sleep=_no_sleep)
        emu.inject(b"$GPGGA,123519,4807.038,N\r\n")
        assert probe_port("/dev/ttyUSB0", opener=FakeOpener({"/dev/ttyUSB0": emu})) is None
        assert emu.commands == []
        assert not emu.is_open

    def test_wrong_model_rejected_and_closed(self) -> None:
        other = _other_device()
        assert probe_port("/dev/ttyUSB0", opener=FakeOpener({"/dev/ttyUSB0": other})) is None
        assert other.commands == [SCPI_IDN]
        assert not other.is_open

    def test_silent_device_rejected_and_closed(self) -> None:
        emu = make_gdm8341_emulator(sleep=_no_sleep)
        emu.silent = True
        found = probe_port(
            "/dev/ttyUSB0", opener=FakeOpener({"/dev/ttyUSB0": emu}), idn_timeout=0.0
        )
        assert found is None
        assert not emu.is_open

    def test_custom_model_token(self) -> None:
        other = _other_device()
        found = probe_port(
            "/dev/ttyUSB0", opener=FakeOpener({"/dev/ttyUSB0": other}), model_token="DM3058"
        )
        assert found is not None


class TestFindInstrument:
    """Tests for find_instrument."""

    def test_first_match_wins(self) -> None:
        opener = FakeOpener(
            {
                "/dev/ttyUSB1": _other_device(),
                "/dev/ttyUSB2": make_gdm8341_emulator("GEW2", sleep=_no_sleep),
                "/dev/ttyUSB3": make_gdm8341_emulator("GEW3", sleep=_no_sleep),
            }
        )
        candidates = [f"/dev/ttyUSB{n}" for n in range(4)]
        found = find_instrument(candidates, opener=opener)
        assert found.path == "/dev/ttyUSB2"
        assert "GEW2" in found.response
        assert opener.opened == ["/dev/ttyUSB0", "/dev/ttyUSB1", "/dev/ttyUSB2"]

    def test_nothing_found_raises(self) -> None:
        with pytest.raises(DeviceNotFoundError, match="No GDM8341 found on /dev/ttyUSB0, /dev/ttyUSB1"):
            find_instrument(["/dev/ttyUSB0", "/dev/ttyUSB1"], opener=FakeOpener({}))

    def test_no_candidates_raises(self) -> None:
        with pytest.raises(DeviceNotFoundError, match="any port"):
            find_instrument([], opener=FakeOpener({}))
