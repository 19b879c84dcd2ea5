"""Entry point: raw vCard 4.0 text -> list of Card.

Parsing is all-or-nothing: the first malformed record aborts the whole batch.
"""

from __future__ import annotations

import logging

from .card import Card
from .codec import ListValue
from .errors import RequiredFieldError, StructuralError, VersionError
from .framing import POSTFIX, PREFIX, raw_to_vcard_lines
from .property import parse_line

__all__ = ["SUPPORTED_VERSION", "parse_vcards"]

log = logging.getLogger(__name__)

SUPPORTED_VERSION = "4.0"


def _check_structure(lines: list[str]) -> None:
    # rfc6350#section-3.3: BEGIN, VERSION and END are fixed in position
    if (
        len(lines) < 3
        or lines[0] != PREFIX
        or not lines[1].startswith("VERSION:")
        or lines[-1] != POSTFIX
    ):
        raise StructuralError(
            "Unexpected lines for fixed properties rfc6350#section-3.3 (BEGIN,VERSION,END)"
        )


def _has_fn(card: Card) -> bool:
    fn = card.get("FN")
    if fn is None:
        return False
    if isinstance(fn.value, ListValue):
        return any(fn.value.items)
    return fn.value != ""


def _parse_record(lines: list[str]) -> Card:
    _check_structure(lines)

    card = Card()
    for line in lines:
        if line in (PREFIX, POSTFIX):
            continue
        prop = parse_line(line)
        if prop.name == "VERSION" and prop.value != SUPPORTED_VERSION:
            raise VersionError(f"VERSION did not equal {SUPPORTED_VERSION}")
        card.set(prop)

    if not _has_fn(card):
        raise RequiredFieldError("FN property missing in contact")
    return card


def parse_vcards(raw: str) -> list[Card]:
    """Parse every BEGIN:VCARD ... END:VCARD record found in `raw`.

    Raises:
        VCardError: any framing, structural, line, version or FN error.
    """
    cards = [_parse_record(lines) for lines in raw_to_vcard_lines(raw)]
    log.debug("vcard-parse-complete cards=%d", len(cards))
    return cards
