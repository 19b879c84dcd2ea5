"""Split a raw address book blob into per-record line groups."""

from __future__ import annotations

from .errors import FramingError
from .folding import LINE_DELIM, unfold

__all__ = ["POSTFIX", "PREFIX", "count_vcard_entries", "raw_to_vcard_lines"]

PREFIX = "BEGIN:VCARD"
POSTFIX = "END:VCARD"


def _indices(lines: list[str], marker: str) -> list[int]:
    return [i for i, line in enumerate(lines) if line == marker]


def count_vcard_entries(raw: str) -> int:
    """Number of BEGIN:VCARD lines after unfolding."""
    if not raw:
        return 0
    return len(_indices(unfold(raw).split(LINE_DELIM), PREFIX))


def raw_to_vcard_lines(raw: str) -> list[list[str]]:
    """Return the unfolded lines of each record, BEGIN and END included.

    Raises:
        FramingError: when the number of BEGIN and END markers differs.
    """
    if not raw:
        return []

    lines = unfold(raw).split(LINE_DELIM)
    starts = _indices(lines, PREFIX)
    ends = _indices(lines, POSTFIX)

    if len(starts) != len(ends):
        raise FramingError(
            f"Unequal number of {PREFIX} ({len(starts)}) and {POSTFIX} ({len(ends)}) lines"
        )

    return [lines[start : end + 1] for start, end in zip(starts, ends, strict=True)]
