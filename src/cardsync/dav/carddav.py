"""CardDAV client for the remote address book.

Responsibilities
- fetch_address_books() -> list[AddressBook]: PROPFIND on the configured home path
- get_address_book() -> AddressBook: the single address book the sync works on
- fetch_vcards(book, object_urls=None) -> list[DavObject]: REPORT query/multiget
- update_vcard(obj) -> new etag: PUT text/vcard guarded by If-Match

Notes
- HREFs returned by the server are made absolute against server_url.
- Do not log full vCard content; it is PII.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from xml.etree import ElementTree as ET
from xml.sax.saxutils import escape as xml_escape

import httpx

from ..utils.http import RetryConfig, create_client, put_with_etag, request_with_retries

__all__ = ["AddressBook", "CardDAVClient", "CardDAVError", "DavObject"]


log = logging.getLogger(__name__)

_EOL_RE = re.compile(r"\r?\n")

NS = {"d": "DAV:", "card": "urn:ietf:params:xml:ns:carddav"}

_PROPFIND_BODY = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <d:resourcetype/>
    <d:displayname/>
    <d:getctag/>
  </d:prop>
</d:propfind>"""

_QUERY_BODY = """<?xml version="1.0" encoding="utf-8"?>
<card:addressbook-query xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <d:getetag/>
    <card:address-data/>
  </d:prop>
</card:addressbook-query>"""

_MULTIGET_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<card:addressbook-multiget xmlns:d="DAV:" xmlns:card="urn:ietf:params:xml:ns:carddav">
  <d:prop>
    <d:getetag/>
    <card:address-data/>
  </d:prop>
{hrefs}
</card:addressbook-multiget>"""


def _to_crlf(text: str) -> str:
    # XML parsers turn CRLF into LF; vCard lines are CRLF delimited
    return _EOL_RE.sub("\r\n", text)


class CardDAVError(RuntimeError):
    pass


@dataclass(frozen=True)
class AddressBook:
    url: str
    display_name: str | None = None


@dataclass(frozen=True)
class DavObject:
    url: str
    etag: str | None
    data: str | None


class CardDAVClient:
    def __init__(
        self,
        server_url: str,
        username: str,
        password: str,
        home_path: str,
        *,
        timeout: float = 30.0,
        verify: bool | str = True,
        retry: RetryConfig | None = None,
    ) -> None:
        """Initialize CardDAV client.

        Args:
            server_url: https://dav.example.com
            username: basic auth user
            password: basic auth password
            home_path: address book (or address book home) path, e.g. /alice/contacts/
        """
        self.server_url = server_url.rstrip("/")
        self.home_path = home_path
        self.retry = retry or RetryConfig()
        self.client = create_client(
            base_url=self.server_url,
            auth=httpx.BasicAuth(username, password),
            timeout=timeout,
            verify=verify,
        )

    def close(self) -> None:
        self.client.close()

    # -----------------
    # Address books
    # -----------------

    def fetch_address_books(self) -> list[AddressBook]:
        resp = request_with_retries(
            self.client,
            "PROPFIND",
            self.home_path,
            headers={"Content-Type": "application/xml; charset=utf-8", "Depth": "1"},
            data=_PROPFIND_BODY,
            retry=self.retry,
            expected=(207,),
        )
        if resp.status_code != 207:
            raise CardDAVError(f"PROPFIND failed for {self.home_path}: {resp.status_code}")

        books: list[AddressBook] = []
        for resp_el in self._responses(resp.text):
            href = self._href(resp_el)
            prop = resp_el.find("d:propstat/d:prop", NS)
            if href is None or prop is None:
                continue
            if prop.find("d:resourcetype/card:addressbook", NS) is None:
                continue
            name_el = prop.find("d:displayname", NS)
            books.append(
                AddressBook(
                    url=self._absolute(href),
                    display_name=name_el.text if name_el is not None else None,
                )
            )
        log.debug("carddav-address-books count=%d", len(books))
        return books

    def get_address_book(self) -> AddressBook:
        """Return the single address book under home_path.

        Raises:
            CardDAVError: zero or several address books were found.
        """
        books = self.fetch_address_books()
        if len(books) != 1:
            raise CardDAVError(
                "Cannot determine address book: the configured path must resolve to a "
                f"single address book, found {len(books)}"
            )
        return books[0]

    # -----------------
    # vCards
    # -----------------

    def fetch_vcards(
        self,
        book: AddressBook,
        object_urls: list[str] | None = None,
    ) -> list[DavObject]:
        """Fetch every vCard of `book`, or only those at `object_urls`."""
        if object_urls:
            hrefs = "\n".join(f"  <d:href>{xml_escape(self._path(u))}</d:href>" for u in object_urls)
            body = _MULTIGET_TEMPLATE.format(hrefs=hrefs)
        else:
            body = _QUERY_BODY

        resp = request_with_retries(
            self.client,
            "REPORT",
            book.url,
            headers={"Content-Type": "application/xml; charset=utf-8", "Depth": "1"},
            data=body,
            retry=self.retry,
            expected=(207,),
        )
        if resp.status_code != 207:
            raise CardDAVError(f"REPORT failed for {book.url}: {resp.status_code}")

        objects: list[DavObject] = []
        for resp_el in self._responses(resp.text):
            href = self._href(resp_el)
            if href is None:
                continue
            etag_el = resp_el.find("d:propstat/d:prop/d:getetag", NS)
            data_el = resp_el.find("d:propstat/d:prop/card:address-data", NS)
            objects.append(
                DavObject(
                    url=self._absolute(href),
                    etag=etag_el.text.strip() if etag_el is not None and etag_el.text else None,
                    data=_to_crlf(data_el.text) if data_el is not None and data_el.text else None,
                )
            )
        log.info("carddav-fetched count=%d", len(objects))
        return objects

    def update_vcard(self, obj: DavObject) -> str | None:
        """PUT `obj.data` to `obj.url`; returns the new ETag if the server sent one."""
        if obj.data is None:
            raise CardDAVError(f"No vCard data to upload for {obj.url}")
        resp = put_with_etag(
            self.client,
            url=obj.url,
            body=obj.data,
            content_type="text/vcard; charset=utf-8",
            etag=obj.etag,
            retry=self.retry,
        )
        if resp.status_code not in (200, 201, 204):
            raise CardDAVError(f"PUT failed for {obj.url}: {resp.status_code} {resp.text}")
        return resp.headers.get("ETag")

    # -----------------
    # Helpers
    # -----------------

    def _responses(self, xml_text: str) -> list[ET.Element]:
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as exc:
            raise CardDAVError(f"Malformed multistatus response: {exc}") from exc
        return root.findall("d:response", NS)

    @staticmethod
    def _href(resp_el: ET.Element) -> str | None:
        href_el = resp_el.find("d:href", NS)
        if href_el is None or not href_el.text:
            return None
        return href_el.text.strip()

    def _absolute(self, href: str) -> str:
        return href if href.startswith("http") else f"{self.server_url}{href}"

    def _path(self, url: str) -> str:
        if url.startswith(self.server_url):
            return url[len(self.server_url) :] or "/"
        return url
