"""Line folding and unfolding (RFC 6350 §3.2).

A logical line may be continued on the next physical line by inserting a
CRLF immediately followed by a single space or tab. That sequence is removed
before any other processing.

Folding is a plain character count over the escaped value: a fold point is
inserted after every 75 characters, even inside an escape sequence, because
unfolding restores the exact text either way.
"""

from __future__ import annotations

import re

__all__ = ["CONT_LINE_DELIM", "FOLD_WIDTH", "LINE_DELIM", "fold", "unfold"]

LINE_DELIM = "\r\n"
CONT_LINE_DELIM = "\r\n "
FOLD_WIDTH = 75

_CONTINUATION_RE = re.compile(r"\r\n[ \t]")
_FOLD_RE = re.compile(r"(.{%d})" % FOLD_WIDTH, re.DOTALL)


def unfold(raw: str) -> str:
    return _CONTINUATION_RE.sub("", raw)


def fold(escaped: str) -> str:
    """Append a continuation marker after every full FOLD_WIDTH chunk."""
    return _FOLD_RE.sub(lambda m: m.group(1) + CONT_LINE_DELIM, escaped)
