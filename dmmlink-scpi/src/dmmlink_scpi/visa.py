"""PyVISA transport for USB-TMC instruments.

This module provides a VISA-based implementation of
:class:`~dmmlink_scpi.transport.ByteTransport` for meters attached as USB
Test & Measurement Class devices. It wraps the PyVISA library, which is
lazily imported so the rest of dmmlink-scpi works without VISA installed.

Supported resource string formats include:
- USB: ``USB0::0x2184::0x0059::GEW123456::0::INSTR``
- Serial through VISA: ``ASRL/dev/ttyUSB0::INSTR``
"""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any

from dmmlink_scpi.errors import (
    DeviceBusyError,
    DeviceNotFoundError,
    TransportConfigError,
    TransportError,
)

logger = logging.getLogger(__name__)


class VisaPort:
    """Byte transport backed by PyVISA.

    The resource is opened with an exclusive lock so that only one handle
    drives the meter. A VISA timeout on read is reported as an empty read,
    matching the serial transport.

    Attributes:
        resource_string: The VISA resource address string.
        is_open: Whether the resource is currently open.

    Args:
        resource_string: VISA resource address.
        open_timeout_ms: Time allowed for acquiring the exclusive lock.

    Example:
        >>> port = VisaPort("USB0::0x2184::0x0059::GEW123456::0::INSTR")
        >>> port.open()
        >>> port.write(b"*IDN?\\n")
        >>> print(port.read(0.5))
        >>> port.close()
    """

    def __init__(self, resource_string: str, *, open_timeout_ms: int = 0) -> None:
        self._resource_string = resource_string
        self._open_timeout_ms = open_timeout_ms
        self._visa: Any = None
        self._rm: Any = None
        self._resource: Any = None

    # -- Properties ----------------------------------------------------------

    @property
    def resource_string(self) -> str:
        """The VISA resource string."""
        return self._resource_string

    @property
    def is_open(self) -> bool:
        """Return True if the resource is currently open."""
        return self._resource is not None

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        """Open and lock the VISA resource.

        Lazily imports ``pyvisa`` and creates a :class:`ResourceManager`.

        Raises:
            TransportConfigError: If ``pyvisa`` is not installed.
            DeviceBusyError: If the resource is locked by another session.
            DeviceNotFoundError: If the resource cannot be opened.
        """
        if self._resource is not None:
            return

        try:
            import pyvisa  # type: ignore[import-not-found]  # pylint: disable=import-outside-toplevel
        except ImportError as exc:
            raise TransportConfigError(
                "pyvisa library is not installed. Install with: pip install pyvisa",
                self._resource_string,
            ) from exc

        self._visa = pyvisa
        try:
            self._rm = pyvisa.ResourceManager()
            self._resource = self._rm.open_resource(
                self._resource_string,
                access_mode=pyvisa.constants.AccessModes.exclusive_lock,
                open_timeout=self._open_timeout_ms,
            )
        except pyvisa.errors.VisaIOError as exc:
            self._release()
            if exc.error_code == pyvisa.constants.StatusCode.error_resource_locked:
                raise DeviceBusyError(
                    f"{self._resource_string} is locked by another session",
                    self._resource_string,
                ) from exc
            raise DeviceNotFoundError(
                f"Failed to open VISA resource {self._resource_string!r}: {exc}",
                self._resource_string,
            ) from exc
        except Exception as exc:
            self._release()
            raise DeviceNotFoundError(
                f"Failed to open VISA resource {self._resource_string!r}: {exc}",
                self._resource_string,
            ) from exc
        logger.debug("Opened VISA resource %s", self._resource_string)

    def close(self) -> None:
        """Close the VISA resource and resource manager.

        Safe to call multiple times.
        """
        self._release()

    def __enter__(self) -> VisaPort:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    # -- Transport interface -------------------------------------------------

    def read(self, timeout: float) -> bytes:
        """Read one buffered message, waiting at most *timeout* seconds.

        Args:
            timeout: Readiness wait in seconds.

        Returns:
            The bytes read, or ``b""`` on a VISA timeout.

        Raises:
            TransportError: If the resource is not open or the read failed.
        """
        resource = self._require_open()
        resource.timeout = max(1, int(timeout * 1000))
        try:
            data: bytes = resource.read_raw()
        except self._visa.errors.VisaIOError as exc:
            if exc.error_code == self._visa.constants.StatusCode.error_timeout:
                return b""
            self._release()
            raise TransportError(
                f"Read from {self._resource_string} failed: {exc}", self._resource_string
            ) from exc
        return data

    def write(self, data: bytes) -> int:
        """Send *data* to the instrument.

        Args:
            data: Encoded command bytes.

        Returns:
            Number of bytes written.

        Raises:
            TransportError: If the resource is not open or the write failed.
        """
        resource = self._require_open()
        try:
            written = resource.write_raw(data)
        except self._visa.errors.VisaIOError as exc:
            self._release()
            raise TransportError(
                f"Write to {self._resource_string} failed: {exc}", self._resource_string
            ) from exc
        return int(written)

    def discard_input(self) -> None:
        """Send a device clear, dropping any reply still queued.

        Raises:
            TransportError: If the resource is not open or the clear failed.
        """
        resource = self._require_open()
        try:
            resource.clear()
        except self._visa.errors.VisaIOError as exc:
            self._release()
            raise TransportError(
                f"Clear of {self._resource_string} failed: {exc}", self._resource_string
            ) from exc

    # -- Private helpers -----------------------------------------------------

    def _require_open(self) -> Any:
        if self._resource is None:
            raise TransportError("VISA resource is not open", self._resource_string)
        return self._resource

    def _release(self) -> None:
        if self._resource is not None:
            try:
                self._resource.close()
            except Exception:  # pylint: disable=broad-except
                logger.debug("Ignoring error closing %s", self._resource_string)
            self._resource = None
        if self._rm is not None:
            try:
                self._rm.close()
            except Exception:  # pylint: disable=broad-except
                logger.debug("Ignoring error closing VISA resource manager")
            self._rm = None
