"""SCPI transport and protocol error types.

This module defines exception classes for failures that may occur while
talking to an instrument over a byte transport. All exceptions inherit from
:class:`dmmlink_core.errors.DmmlinkError`.

Transport errors are fatal to the handle that raised them. Timeouts and
protocol errors are soft: the measurement session converts them into cycle
outcomes instead of letting them propagate.
"""

from __future__ import annotations

from dmmlink_core.errors import DmmlinkError


class ScpiError(DmmlinkError):
    """Base exception for SCPI protocol errors.

    All SCPI-related exceptions inherit from this class, allowing callers
    to catch all SCPI errors with a single except clause.
    """


class TransportError(ScpiError):
    """Raised when the byte transport fails.

    The handle that raised it must be considered dead and closed.

    Attributes:
        path: Device path or resource string the error relates to.
    """

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class DeviceNotFoundError(TransportError):
    """Raised when a device cannot be opened or no candidate answers."""


class DeviceBusyError(TransportError):
    """Raised when another process holds the exclusive lock on the device."""


class TransportConfigError(TransportError):
    """Raised when the line cannot be configured (e.g. unsupported baud)."""


class ScpiTimeoutError(ScpiError):
    """Raised when no complete response line arrives within a step window.

    Attributes:
        command: The query that went unanswered.
        partial: Bytes received before the deadline (dropped by the caller).
    """

    def __init__(self, command: str, partial: bytes = b"") -> None:
        self.command = command
        self.partial = partial
        super().__init__(f"No response to {command!r} within the step timeout")


class ScpiProtocolError(ScpiError):
    """Raised when the instrument answers with an unrecognized response.

    Attributes:
        response: The offending response line.
    """

    def __init__(self, message: str, response: str = "") -> None:
        self.response = response
        super().__init__(message)
