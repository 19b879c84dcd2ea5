"""In-memory vCard record and its serializer.

A Card maps canonical (upper-cased) property names to exactly one Property.
Setting a name that already exists replaces the stored property in place, so
a repeated name in the source text keeps the position of its first occurrence
and the value of its last one. Multiple TEL/EMAIL lines therefore collapse to
a single entry.

Serialization order is insertion order with VERSION always emitted first.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Iterator

from .codec import ListValue, PropertyValue
from .errors import RequiredFieldError
from .folding import LINE_DELIM
from .framing import POSTFIX, PREFIX
from .property import Property, render_property

__all__ = ["Card", "serialize_cards"]

REQUIRED_PROPS = ("FN", "VERSION")


class Card:
    def __init__(self, props: Iterable[Property] | None = None) -> None:
        self._data: dict[str, Property] = {}
        for prop in props or ():
            self.set(prop)

    def __repr__(self) -> str:
        return f"Card({list(self._data)!r})"

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.upper() in self._data

    def __iter__(self) -> Iterator[Property]:
        return iter(self._data.values())

    def keys(self) -> list[str]:
        return list(self._data)

    def set(self, prop: Property) -> None:
        prop.name = prop.name.upper()
        self._data[prop.name] = prop

    def get(self, key: str) -> Property | None:
        return self._data.get(key.upper())

    def get_single_val(self, key: str) -> str | None:
        """Scalar value of `key`; None when absent or list-valued."""
        prop = self.get(key)
        if prop is None or not isinstance(prop.value, str):
            return None
        return prop.value

    def get_param(self, key: str, param: str) -> str | None:
        prop = self.get(key)
        if prop is None:
            return None
        return prop.get_param(param)

    def set_param(self, key: str, param: str, value: str) -> None:
        prop = self.get(key)
        if prop is None:
            return
        prop.set_param(param, value)

    def update_value(self, key: str, value: PropertyValue) -> None:
        """Replace the value of `key`, adding the property if needed."""
        prop = self.get(key)
        if prop is None:
            self.set(Property(name=key, value=value))
            return
        prop.value = value

    def copy(self) -> Card:
        return Card(copy.deepcopy(list(self._data.values())))

    def serialize(self) -> str:
        """Render the card as vCard text.

        Raises:
            RequiredFieldError: FN or VERSION is missing.
        """
        missing = [name for name in REQUIRED_PROPS if name not in self._data]
        if missing:
            raise RequiredFieldError(f"vCard must have version and fn field (missing {', '.join(missing)})")

        out = PREFIX + LINE_DELIM
        out += render_property(self._data["VERSION"])
        for key, prop in self._data.items():
            if key == "VERSION":
                continue
            out += render_property(prop)
        return out + POSTFIX + LINE_DELIM

    def to_dict(self) -> dict[str, str | list[str]]:
        """Plain mapping of name -> scalar or list items, for display."""
        out: dict[str, str | list[str]] = {}
        for key, prop in self._data.items():
            if isinstance(prop.value, ListValue):
                out[key] = list(prop.value.items)
            else:
                out[key] = prop.value
        return out


def serialize_cards(cards: Iterable[Card]) -> str:
    return "".join(card.serialize() for card in cards)
