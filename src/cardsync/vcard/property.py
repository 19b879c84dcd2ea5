"""vCard content lines: parsing and rendering.

Grammar (RFC 6350 §3.3, simplified):

    contentline = [group "."] name *(";" param) ":" value CRLF
    group       = 1*(ALPHA / DIGIT / "-")
    name        = 1*(ALPHA / DIGIT / "-")
    param       = param-name "=" param-value

The head/value split happens at the first unescaped `:`. Colons inside quoted
parameter values are not special-cased, so `X;LABEL="a:b":v` splits at `a:`.
Parameter values are kept as raw strings and written back verbatim.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from .codec import PropertyValue, decode_value, encode_value
from .errors import LineParseError
from .folding import LINE_DELIM, fold

__all__ = ["Param", "Property", "parse_line", "render_property"]

_COLON_RE = re.compile(r"(?<!\\):")
_HEAD_RE = re.compile(
    r"^(?:(?P<group>[A-Za-z0-9-]+)\.)?"
    r"(?P<name>[A-Za-z0-9-]+)"
    r"(?P<params>(?:;[A-Za-z0-9-]+=[^;]*)*)$"
)


@dataclass
class Param:
    name: str
    value: str


@dataclass
class Property:
    """One content line. `name` is stored upper-cased."""

    name: str
    value: PropertyValue
    group: str | None = None
    params: list[Param] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.name = self.name.upper()

    def get_param(self, name: str) -> str | None:
        wanted = name.upper()
        for p in self.params:
            if p.name.upper() == wanted:
                return p.value
        return None

    def set_param(self, name: str, value: str) -> None:
        wanted = name.upper()
        for p in self.params:
            if p.name.upper() == wanted:
                p.value = value
                return
        self.params.append(Param(name=name, value=value))


def _parse_params(param_str: str) -> list[Param]:
    params: list[Param] = []
    for part in param_str.split(";"):
        if not part:
            continue
        name, _, value = part.partition("=")
        params.append(Param(name=name, value=value))
    return params


def parse_line(line: str) -> Property:
    """Parse one unfolded content line (not BEGIN/END) into a Property.

    Raises:
        LineParseError: no `:` separator, or the head does not match the grammar.
    """
    m = _COLON_RE.search(line)
    if m is None:
        raise LineParseError(f"Could not parse property line, no ':' character: {line[:40]!r}")

    head = line[: m.start()]
    raw_value = line[m.end() :]

    reg = _HEAD_RE.match(head)
    if reg is None:
        raise LineParseError(f"Could not parse property head {head!r}")

    name = reg.group("name")
    if not name:
        raise LineParseError(f"Property name missing in {head!r}")

    return Property(
        name=name,
        value=decode_value(raw_value),
        group=reg.group("group"),
        params=_parse_params(reg.group("params") or ""),
    )


def render_property(prop: Property) -> str:
    """Render a Property as a folded content line, CRLF included."""
    out = f"{prop.group}." if prop.group else ""
    out += prop.name
    out += "".join(f";{p.name}={p.value}" for p in prop.params)
    out += ":"
    out += fold(encode_value(prop.value))
    return out + LINE_DELIM
