"""vCard value escaping and list splitting (RFC 6350 §3.4).

A raw property value is either a single text value or a list of values
separated by unescaped `,` or `;`. The delimiter found in the source text
is recorded on the decoded `ListValue` so serialization reproduces it.

Public API
- decode_value(raw: str) -> str | ListValue
- encode_value(value: str | ListValue) -> str
- escape(text: str) -> str
- unescape(text: str) -> str
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass, field

__all__ = [
    "DEFAULT_LIST_DELIM",
    "LIST_DELIMS",
    "ListValue",
    "PropertyValue",
    "decode_value",
    "encode_value",
    "escape",
    "unescape",
]

log = logging.getLogger(__name__)

LIST_DELIMS = (",", ";")
DEFAULT_LIST_DELIM = ","

# Placeholder for an escaped backslash while the other escapes are resolved
_SENTINEL = "\u0000"

_NEWLINE_ESC_RE = re.compile(r"\\[nN]")
_DELIM_ESC_RE = re.compile(r"\\([,;])")
_DELIM_RE = re.compile(r"([,;])")


@dataclass
class ListValue:
    """Multi-part value; `delimiter` is None when not known (defaults to ',')."""

    items: list[str] = field(default_factory=list)
    delimiter: str | None = None

    def __post_init__(self) -> None:
        if self.delimiter is not None and self.delimiter not in LIST_DELIMS:
            raise ValueError(f"list delimiter must be one of {LIST_DELIMS}, got {self.delimiter!r}")


PropertyValue = str | ListValue


def unescape(text: str) -> str:
    """Resolve \\\\, \\n/\\N, \\, and \\; (in that order)."""
    t = text.replace("\\\\", _SENTINEL)
    t = _NEWLINE_ESC_RE.sub("\n", t)
    t = _DELIM_ESC_RE.sub(r"\1", t)
    return t.replace(_SENTINEL, "\\")


def escape(text: str) -> str:
    """Inverse of `unescape`: backslashes first, then newlines and delimiters."""
    t = text.replace("\\", "\\\\")
    t = t.replace("\n", "\\n")
    return _DELIM_RE.sub(r"\\\1", t)


def _unescaped_delimiters(raw: str) -> Iterator[tuple[int, str]]:
    """Yield (index, char) of every `,`/`;` not consumed by a backslash escape."""
    i = 0
    end = len(raw)
    while i < end:
        ch = raw[i]
        if ch == "\\":
            i += 2
            continue
        if ch in LIST_DELIMS:
            yield i, ch
        i += 1


def decode_value(raw: str) -> PropertyValue:
    """Decode a raw value into a scalar or a `ListValue`.

    The first unescaped delimiter decides the list delimiter; the value is then
    split on every unescaped occurrence of that same character only.
    """
    found = list(_unescaped_delimiters(raw))
    if not found:
        return unescape(raw)

    delim = found[0][1]
    items: list[str] = []
    start = 0
    for idx, ch in found:
        if ch != delim:
            continue
        items.append(unescape(raw[start:idx]))
        start = idx + 1
    items.append(unescape(raw[start:]))
    return ListValue(items=items, delimiter=delim)


def encode_value(value: PropertyValue) -> str:
    """Escape a scalar, or escape each list item and join with its delimiter."""
    if isinstance(value, str):
        return escape(value)

    if not value.delimiter:
        log.warning("list-value-missing-delimiter; choosing '%s'", DEFAULT_LIST_DELIM)
        value.delimiter = DEFAULT_LIST_DELIM
    return value.delimiter.join(escape(item) for item in value.items)
