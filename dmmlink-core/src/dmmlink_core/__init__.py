"""Core library for dmmlink bench multimeter tooling.

This package provides the foundational error hierarchy and shared data types
for the dmmlink packages. It is stdlib-only so that it can serve as the base
layer for the transport and instrument packages.

Key components:
    - Errors: Root exception type plus state and configuration errors.
    - Types: InstrumentIdentity for parsed ``*IDN?`` responses.
"""

from dmmlink_core.common import InstrumentIdentity
from dmmlink_core.errors import ConfigError, DmmlinkError, StateError

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Common types
    "InstrumentIdentity",
    # Errors
    "ConfigError",
    "DmmlinkError",
    "StateError",
]
