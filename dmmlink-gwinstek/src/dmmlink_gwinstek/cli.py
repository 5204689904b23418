"""Command-line interface for the GDM-8341 monitor.

Provides a headless polling loop and a port discovery command.

Usage:
    # Poll a meter on a known port, printing every reading
    dmmlink-gdm run --port /dev/ttyUSB0 --speed 38400

    # Probe /dev/ttyUSB0-9 for the meter and publish readings to a file
    dmmlink-gdm run --output /tmp/gdm8341.txt

    # Exercise the loop against the built-in emulator
    dmmlink-gdm run --emulate --count 5

    # Show which port the meter is on
    dmmlink-gdm probe
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
import time
from typing import Sequence

from dmmlink_core.errors import ConfigError
from dmmlink_scpi.errors import TransportError
from dmmlink_scpi.factory import open_transport
from dmmlink_scpi.serial_port import SUPPORTED_BAUD_RATES

from dmmlink_gwinstek.config import MonitorConfig, load_config
from dmmlink_gwinstek.discovery import find_instrument
from dmmlink_gwinstek.emulator import make_gdm8341_emulator
from dmmlink_gwinstek.meter import Gdm8341
from dmmlink_gwinstek.publish import publish_measurement
from dmmlink_gwinstek.recovery import RecoveryPolicy

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def resolve_config(args: argparse.Namespace) -> MonitorConfig:
    """Load the config file (if any) and apply command-line overrides."""
    config = load_config(args.config) if args.config else MonitorConfig()

    meter_overrides = {
        "device": args.port,
        "baud": args.speed,
        "poll_interval": getattr(args, "interval", None),
        "continuity_threshold": getattr(args, "threshold", None),
    }
    meter_overrides = {k: v for k, v in meter_overrides.items() if v is not None}
    meter = dataclasses.replace(config.meter, **meter_overrides)

    output = config.output
    if getattr(args, "output", None):
        output = dataclasses.replace(output, path=args.output)
    return dataclasses.replace(config, meter=meter, output=output)


def _build_meter(config: MonitorConfig, emulate: bool) -> Gdm8341:
    settings = config.meter
    recovery = RecoveryPolicy(config.recovery.failure_threshold, config.recovery.backoff)
    kwargs = {
        "baud": settings.baud,
        "read_timeout": settings.read_timeout,
        "step_timeout": settings.step_timeout,
        "continuity_threshold": settings.continuity_threshold,
        "recovery": recovery,
        "candidates": config.recovery.candidates,
    }
    if emulate:
        return Gdm8341(make_gdm8341_emulator(), device="emulator", **kwargs)

    transport = None
    device = settings.device
    try:
        if device is not None:
            transport = open_transport(device, settings.baud)
        else:
            found = find_instrument(config.recovery.candidates, settings.baud)
            device, transport = found.path, found.transport
    except TransportError as exc:
        logger.error("%s; will keep probing", exc)
    return Gdm8341(transport, device=device, **kwargs)


def cmd_run(args: argparse.Namespace) -> int:
    """Poll the meter and print each decoded reading."""
    config = resolve_config(args)
    meter = _build_meter(config, args.emulate)
    output_path = config.output.path
    count = 0

    try:
        while args.count is None or count < args.count:
            measurement = meter.poll()
            if measurement is None:
                continue
            count += 1
            print(f"{measurement.display_value}\t{measurement.detail}", flush=True)
            if output_path:
                publish_measurement(measurement, output_path)
            time.sleep(config.meter.poll_interval)
    except KeyboardInterrupt:
        print()
    finally:
        meter.close()
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    """Find the meter and print its port and identity."""
    config = resolve_config(args)
    candidates = (config.meter.device,) if config.meter.device else config.recovery.candidates
    try:
        found = find_instrument(candidates, config.meter.baud)
    except TransportError as exc:
        print(f"Error: {exc}")
        return 1
    found.transport.close()
    print(f"{found.path}: {found.response}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="dmmlink-gdm",
        description="GW Instek GDM-8341 multimeter monitor",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument("-p", "--port", help="Serial device or VISA resource (default: probe)")
    parser.add_argument(
        "-s",
        "--speed",
        type=int,
        choices=SUPPORTED_BAUD_RATES,
        help="Serial speed (default 115200)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", help="Poll the meter and print readings")
    run_parser.add_argument(
        "-t", "--interval", type=float, help="Seconds between measurement cycles"
    )
    run_parser.add_argument("-o", "--output", help="Publish readings to this file")
    run_parser.add_argument(
        "--threshold", type=int, help="Continuity threshold override in ohms"
    )
    run_parser.add_argument(
        "-n", "--count", type=int, help="Stop after this many readings"
    )
    run_parser.add_argument(
        "--emulate", action="store_true", help="Use the built-in meter emulator"
    )
    subparsers.add_parser("probe", help="Find the meter's port")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.debug)

    try:
        if args.command == "run":
            return cmd_run(args)
        return cmd_probe(args)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
