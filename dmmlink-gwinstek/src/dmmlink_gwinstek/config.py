"""YAML configuration loading for the meter monitor.

Example YAML configuration:
    meter:
      device: "/dev/ttyUSB0"
      baud: 115200
      poll_interval: 0.1
      read_timeout: 0.5
      step_timeout: 2.0
      continuity_threshold: 20

    recovery:
      failure_threshold: 5
      backoff: 2.0
      candidates: ["/dev/ttyUSB0", "/dev/ttyUSB1"]

    output:
      path: "/tmp/gdm8341.txt"

Every section and key is optional. Omitting ``meter.device`` makes the
monitor probe the recovery candidates for the meter.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from dmmlink_core.errors import ConfigError
from dmmlink_scpi.serial_port import DEFAULT_BAUD_RATE, SUPPORTED_BAUD_RATES

from dmmlink_gwinstek.discovery import DEFAULT_CANDIDATES
from dmmlink_gwinstek.recovery import DEFAULT_BACKOFF, DEFAULT_FAILURE_THRESHOLD


@dataclass(frozen=True)
class MeterSettings:
    """Connection and polling settings.

    Attributes:
        device: Serial device node or VISA resource; ``None`` to probe.
        baud: Serial baud rate, one of the supported rates.
        poll_interval: Seconds to wait between measurement cycles.
        read_timeout: Readiness wait for each transport read.
        step_timeout: Time allowed for each response line.
        continuity_threshold: Continuity threshold override in ohms.
    """

    device: str | None = None
    baud: int = DEFAULT_BAUD_RATE
    poll_interval: float = 0.1
    read_timeout: float = 0.5
    step_timeout: float = 2.0
    continuity_threshold: int | None = None

    def __post_init__(self) -> None:
        if self.device is not None and not self.device:
            raise ConfigError("meter.device must be non-empty when given")
        if self.baud not in SUPPORTED_BAUD_RATES:
            raise ConfigError(
                f"meter.baud must be one of {SUPPORTED_BAUD_RATES}, got {self.baud}"
            )
        if self.poll_interval <= 0:
            raise ConfigError("meter.poll_interval must be > 0")
        if self.read_timeout <= 0:
            raise ConfigError("meter.read_timeout must be > 0")
        if self.step_timeout < self.read_timeout:
            raise ConfigError("meter.step_timeout must be >= meter.read_timeout")
        if self.continuity_threshold is not None and self.continuity_threshold < 0:
            raise ConfigError("meter.continuity_threshold must be >= 0")


@dataclass(frozen=True)
class RecoverySettings:
    """Transport re-acquisition settings.

    Attributes:
        failure_threshold: Consecutive failed cycles tolerated before re-probing.
        backoff: Seconds to sleep after a failed re-probe.
        candidates: Ports probed when the device is unknown or lost.
    """

    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    backoff: float = DEFAULT_BACKOFF
    candidates: tuple[str, ...] = DEFAULT_CANDIDATES

    def __post_init__(self) -> None:
        if self.failure_threshold < 0:
            raise ConfigError("recovery.failure_threshold must be >= 0")
        if self.backoff < 0:
            raise ConfigError("recovery.backoff must be >= 0")
        if not self.candidates:
            raise ConfigError("recovery.candidates must not be empty")


@dataclass(frozen=True)
class OutputSettings:
    """Published output settings.

    Attributes:
        path: File the latest reading is published to; ``None`` disables it.
    """

    path: str | None = None


@dataclass(frozen=True)
class MonitorConfig:
    """Top-level configuration for the meter monitor."""

    meter: MeterSettings = field(default_factory=MeterSettings)
    recovery: RecoverySettings = field(default_factory=RecoverySettings)
    output: OutputSettings = field(default_factory=OutputSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitorConfig:
        """Build a configuration from a parsed YAML mapping.

        Args:
            data: Mapping with optional ``meter``, ``recovery`` and ``output``
                sections.

        Returns:
            Validated configuration.

        Raises:
            ConfigError: If a section is malformed or a value is invalid.
        """
        unknown = set(data) - {"meter", "recovery", "output"}
        if unknown:
            raise ConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

        meter = _section(data, "meter", MeterSettings)
        recovery_data = dict(_mapping(data, "recovery"))
        if "candidates" in recovery_data:
            candidates = recovery_data["candidates"]
            if not isinstance(candidates, list) or not all(isinstance(c, str) for c in candidates):
                raise ConfigError("recovery.candidates must be a list of strings")
            recovery_data["candidates"] = tuple(candidates)
        recovery = _section({"recovery": recovery_data}, "recovery", RecoverySettings)
        output = _section(data, "output", OutputSettings)
        return cls(meter=meter, recovery=recovery, output=output)


def _mapping(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} must be a mapping")
    return section


def _section(data: dict[str, Any], name: str, cls: type[Any]) -> Any:
    section = _mapping(data, name)
    allowed = {f.name for f in fields(cls)}
    unknown = set(section) - allowed
    if unknown:
        raise ConfigError(f"Unknown {name} field(s): {', '.join(sorted(unknown))}")
    try:
        return cls(**section)
    except TypeError as exc:
        raise ConfigError(f"Invalid {name} section: {exc}") from exc


def load_config(path: str | Path) -> MonitorConfig:
    """Load monitor configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed configuration.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigError: If the config is invalid.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if data is None:
        return MonitorConfig()
    if not isinstance(data, dict):
        raise ConfigError("Config must be a YAML mapping")
    return MonitorConfig.from_dict(data)
