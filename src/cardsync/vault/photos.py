"""Write a card's PHOTO next to its note."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..vcard.card import Card
from ..vcard.photo import decode_photo

__all__ = ["PhotoFile", "create_photo_file"]

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PhotoFile:
    path: Path
    mime_type: str

    @property
    def embed(self) -> str:
        """Wiki-style embed link used in note frontmatter."""
        return f"![[{self.path.name}]]"


def create_photo_file(card: Card, note_path: Path, *, dry_run: bool = False) -> PhotoFile | None:
    """Decode PHOTO and store it as `<note stem>.<ext>`; None when there is no usable photo."""
    photo = decode_photo(card.get("PHOTO"))
    if photo is None:
        return None

    target = note_path.with_name(f"{note_path.stem}.{photo.extension}")
    if dry_run:
        log.info("dry-run photo-write path=%s size=%d", target, photo.size)
    else:
        target.write_bytes(photo.data)
        log.debug("photo-written path=%s size=%d", target, photo.size)
    return PhotoFile(path=target, mime_type=photo.mime_type)
