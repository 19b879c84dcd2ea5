"""Structural comparison between two Cards.

PHOTO is re-encoded by most servers and clients, so a difference that only
touches PHOTO is not considered worth propagating.
"""

from __future__ import annotations

from dataclasses import dataclass

from .card import Card
from .property import Property

__all__ = ["IGNORED_WHEN_ALONE", "PropertyDiff", "diff", "has_relevant_diff"]

IGNORED_WHEN_ALONE = "PHOTO"


@dataclass(frozen=True)
class PropertyDiff:
    """`before`/`after` is None when the property is absent on that side."""

    name: str
    before: Property | None
    after: Property | None


def diff(a: Card, b: Card) -> list[PropertyDiff]:
    """Properties that differ between `a` and `b`, sorted by name."""
    out: list[PropertyDiff] = []
    for name in sorted(set(a.keys()) | set(b.keys())):
        left = a.get(name)
        right = b.get(name)
        if left != right:
            out.append(PropertyDiff(name=name, before=left, after=right))
    return out


def has_relevant_diff(a: Card, b: Card) -> bool:
    changes = diff(a, b)
    if not changes:
        return False
    if len(changes) == 1 and changes[0].name == IGNORED_WHEN_ALONE:
        return False
    return True
