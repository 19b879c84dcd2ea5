"""Error types raised by the vCard parser and serializer.

All parse-time errors are fatal for the batch being parsed; callers outside
the core catch `VCardError` and skip the affected contact.
"""

from __future__ import annotations

__all__ = [
    "FramingError",
    "LineParseError",
    "RequiredFieldError",
    "StructuralError",
    "VCardError",
    "VersionError",
]


class VCardError(ValueError):
    pass


class FramingError(VCardError):
    """BEGIN/END marker counts differ."""


class StructuralError(VCardError):
    """Record does not open with BEGIN, continue with VERSION and close with END."""


class LineParseError(VCardError):
    """A content line could not be split into group, name, params and value."""


class VersionError(VCardError):
    pass


class RequiredFieldError(VCardError):
    """FN or VERSION missing."""
