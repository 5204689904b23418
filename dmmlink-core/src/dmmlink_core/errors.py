"""Exception types for dmmlink-core.

This module defines the exception hierarchy used throughout dmmlink. All
dmmlink exceptions inherit from DmmlinkError, allowing consumers to catch all
framework-specific errors with a single except clause.

Exception hierarchy:
    DmmlinkError (base)
    +-- StateError: State machine and ordering violations
    +-- ConfigError: Invalid configuration values
"""


class DmmlinkError(Exception):
    """Base exception for all dmmlink errors.

    This is the root of the dmmlink exception hierarchy. Catch this to handle
    any framework-specific error.
    """


class StateError(DmmlinkError):
    """Raised for invalid state or state transition errors.

    This may occur when a second query is issued while a response is still
    outstanding, or when an operation is attempted on a closed handle.
    """


class ConfigError(DmmlinkError, ValueError):
    """Raised for invalid configuration.

    This includes unsupported baud rates, non-positive intervals, negative
    thresholds, or malformed configuration files.
    """
