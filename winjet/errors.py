"""Domain exceptions for winjet.

Library exceptions (docker, requests, sqlite3, pydantic, OSError) are translated
into one of these at the adapter boundary, so the control loop only ever deals
with failures it knows how to present.
"""

from __future__ import annotations


class WinjetError(RuntimeError):
    """Base exception for all winjet failures."""


class ConnectivityError(WinjetError):
    """Raised when a backend module cannot open its session."""

    def __init__(self, module: str, message: str) -> None:
        super().__init__(f"{module}: {message}")
        self.module = module


class EnumerationError(WinjetError):
    """Raised when listing containers fails outright."""


class InspectError(WinjetError):
    """Raised when a single container cannot be inspected."""

    def __init__(self, container: str, message: str) -> None:
        super().__init__(f"{container}: {message}")
        self.container = container


class PersistenceError(WinjetError):
    """Raised when the state store cannot be read or written."""


class ParseError(WinjetError, ValueError):
    """Raised when a KEY=VALUE environment entry cannot be decoded."""

    def __init__(self, entry: str, message: str) -> None:
        super().__init__(f"{entry!r}: {message}")
        self.entry = entry
