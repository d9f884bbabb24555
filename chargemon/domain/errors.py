"""Domain-level error types shared across layers.

None of these are meant to terminate the monitor. Use cases catch them and
degrade into counters, log lines, or a ``ConnectivityState`` value.
"""

from __future__ import annotations

from typing import Optional


class ChargemonError(Exception):
    """Base class for monitor failures."""

    def __init__(self, message: str, *, context: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class DiscoveryFailure(ChargemonError):
    """A full scan finished without finding the hub."""


class ProbeTimeout(ChargemonError):
    """One candidate address did not answer in time."""


class ParseError(ChargemonError):
    """A metrics line could not be interpreted."""

    def __init__(self, message: str, *, line: str = "", context: Optional[str] = None) -> None:
        super().__init__(message, context=context)
        self.line = line


class PersistenceError(ChargemonError):
    """The address book could not be read or written."""


__all__ = [
    "ChargemonError",
    "DiscoveryFailure",
    "ParseError",
    "PersistenceError",
    "ProbeTimeout",
]
