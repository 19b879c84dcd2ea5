from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from cardsync.config import AppConfig
from cardsync.dav.carddav import AddressBook, DavObject

# Written exactly as the serializer renders it, so parse -> serialize is byte-identical.
SINGLE_CONTACT = (
    "BEGIN:VCARD\r\n"
    "VERSION:4.0\r\n"
    "FN:John Doe\r\n"
    "N:Doe;John;;;\r\n"
    "UID:urn:uuid:4fbe8971-0bc3-424c-9c26-36c3e1eff6b1\r\n"
    "item1.EMAIL;TYPE=work:john@example.com\r\n"
    "TEL;TYPE=cell;VALUE=uri:tel:+1-555-555-5555\r\n"
    "CATEGORIES:friends,work\r\n"
    "NOTE:" + "a" * 70 + "\\, an\r\n d more\r\n"
    "END:VCARD\r\n"
)

NOTE_WITH_SPECIALS = (
    "special value test:\n"
    "< > : @ ? ~ { } + _ ) ( * & ^ % $ £ \" !\n"
    "[ ] \\; ' # , . / = - ` ¬ |\n"
    "Leading space:\n"
    " here\n"
    "manual backslash n: \\n"
)

ADDRESS_BOOK = (
    "BEGIN:VCARD\r\n"
    "VERSION:4.0\r\n"
    "FN:Jane Roe\r\n"
    "UID:jane-1\r\n"
    "TEL;TYPE=home:+44 20 7946 0000\r\n"
    "END:VCARD\r\n"
    "BEGIN:VCARD\r\n"
    "VERSION:4.0\r\n"
    "FN:Note Tester\r\n"
    "UID:note-2\r\n"
    "ADR;TYPE=home:;;123 Main St;Springfield;IL;62701;USA\r\n"
    "NOTE:special value test:\\n< > : @ ? ~ { } + _ ) ( * & ^ % $ £ \" !\\n[ ] \\\\\\; ' #\r\n"
    "  \\, . / = - ` ¬ |\\nLeading space:\\n here\\nmanual backslash n: \\\\n\r\n"
    "END:VCARD\r\n"
)

# The 8-byte PNG file signature
PNG_B64 = "iVBORw0KGgo="


@pytest.fixture
def single_contact() -> str:
    return SINGLE_CONTACT


@pytest.fixture
def address_book() -> str:
    return ADDRESS_BOOK


@pytest.fixture
def note_with_specials() -> str:
    return NOTE_WITH_SPECIALS


@pytest.fixture
def png_b64() -> str:
    return PNG_B64


class FakeCardDAV:
    """In-memory stand-in for CardDAVClient."""

    def __init__(self, objects: list[DavObject]) -> None:
        self.book = AddressBook(url="https://dav.example.com/alice/contacts/", display_name="Contacts")
        self.objects = {o.url: o for o in objects}
        self.updated: list[DavObject] = []
        self.closed = False

    def get_address_book(self) -> AddressBook:
        return self.book

    def fetch_vcards(self, book: AddressBook, object_urls: list[str] | None = None) -> list[DavObject]:
        if object_urls:
            return [self.objects[u] for u in object_urls if u in self.objects]
        return list(self.objects.values())

    def update_vcard(self, obj: DavObject) -> str | None:
        self.updated.append(obj)
        self.objects[obj.url] = DavObject(url=obj.url, etag='"new"', data=obj.data)
        return '"new"'

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_carddav() -> Callable[..., FakeCardDAV]:
    def _make(*objects: DavObject) -> FakeCardDAV:
        return FakeCardDAV(list(objects))

    return _make


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., AppConfig]:
    def _make(**vault: Any) -> AppConfig:
        return AppConfig.model_validate(
            {
                "dav": {
                    "server_url": "https://dav.example.com",
                    "username": "alice",
                    "password": "secret",
                    "home_path": "/alice/contacts/",
                },
                "vault": {"sync_folder": str(tmp_path / "Contacts"), **vault},
                "runtime": {"lock_path": str(tmp_path / "cardsync.lock")},
            }
        )

    return _make
