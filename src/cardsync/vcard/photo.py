"""PHOTO property decoding.

Two encodings are understood:
- vCard 4.0 data URIs: ``PHOTO:data:image/png;base64,iVBOR...``
- vCard 3.0 style inline data: ``PHOTO;ENCODING=b;TYPE=png:iVBOR...``

Decoding never raises: unsupported or corrupt photos are logged and yield None.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from urllib.parse import unquote_to_bytes

from .codec import ListValue
from .property import Property

__all__ = ["Photo", "decode_image", "decode_photo", "match_encoding", "match_type"]

log = logging.getLogger(__name__)

BASE64 = "base64"

_ENCODINGS = {"b": BASE64, "base64": BASE64}

_TYPES = {
    "jpeg": "jpg",
    "jpg": "jpg",
    "png": "png",
    "gif": "gif",
    "bmp": "bmp",
}

_MIME_TYPES = {
    "jpg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
}

_DATA_URI_RE = re.compile(
    r"^data:(?P<mime>[^;,]*)(?P<params>(?:;[^;,]*)*?)(?P<b64>;base64)?,(?P<data>.*)$",
    re.IGNORECASE | re.DOTALL,
)


@dataclass(frozen=True)
class Photo:
    data: bytes
    mime_type: str
    extension: str

    @property
    def size(self) -> int:
        return len(self.data)


def match_encoding(value: str | None) -> str | None:
    if not value:
        return None
    return _ENCODINGS.get(value.strip().lower())


def match_type(value: str | None) -> str | None:
    """Map 'PNG', 'jpeg', 'image/jpeg' ... to a file extension."""
    if not value:
        return None
    v = value.strip().strip('"').lower()
    if v.startswith("image/"):
        v = v[len("image/") :]
    return _TYPES.get(v)


def decode_image(data: str, encoding: str, image_type: str) -> Photo | None:
    """Decode base64 image payload; None when it is not valid base64."""
    if encoding != BASE64:
        log.warning("photo-unsupported-encoding encoding=%s", encoding)
        return None
    try:
        raw = base64.b64decode("".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        log.warning("photo-decode-failed err=%s", exc)
        return None
    return Photo(data=raw, mime_type=_MIME_TYPES[image_type], extension=image_type)


def _raw_text(prop: Property) -> str:
    # The value codec splits "data:image/png;base64,..." on ';'; put it back together
    if isinstance(prop.value, ListValue):
        return (prop.value.delimiter or ",").join(prop.value.items)
    return prop.value


def _from_data_uri(text: str) -> Photo | None:
    m = _DATA_URI_RE.match(text.strip())
    if m is None:
        return None
    image_type = match_type(m.group("mime"))
    if image_type is None:
        log.info("photo-data-uri-unsupported-type mime=%s", m.group("mime"))
        return None
    if m.group("b64"):
        return decode_image(m.group("data"), BASE64, image_type)
    raw = unquote_to_bytes(m.group("data"))
    return Photo(data=raw, mime_type=_MIME_TYPES[image_type], extension=image_type)


def decode_photo(prop: Property | None) -> Photo | None:
    """Decode a PHOTO property, or None if absent, unsupported or corrupt."""
    if prop is None:
        return None

    text = _raw_text(prop)
    if text.lower().startswith("data:"):
        photo = _from_data_uri(text)
        if photo is not None:
            return photo
        text = text.split(",", 1)[-1]

    encoding = match_encoding(prop.get_param("ENCODING"))
    image_type = match_type(prop.get_param("TYPE"))
    if encoding is None or image_type is None:
        log.warning(
            "photo-unrecognized encoding=%s type=%s",
            prop.get_param("ENCODING"),
            prop.get_param("TYPE"),
        )
        return None
    return decode_image(text, encoding, image_type)
