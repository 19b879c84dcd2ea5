"""Contacts sync engine (CardDAV address book <-> Markdown note vault).

Implements:
- sync_down: remote cards -> one note per contact (remote is authoritative)
- push_note: note edits (aliases, tags, note body) -> remote card
- validate: dry check that every remote card can be synced

Notes:
- A failing contact is logged and counted; it never aborts the whole pass.
- Cards are only pushed when `has_relevant_diff` reports a change, so a PHOTO
  that merely re-encoded does not trigger an upload.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import frontmatter

from ..config import AppConfig
from ..dav.carddav import CardDAVClient, CardDAVError, DavObject
from ..vault.notes import (
    apply_note_to_card,
    card_to_frontmatter,
    find_note_by_frontmatter,
    load_note,
    note_path_for,
    note_text,
    read_note_info,
    render_body,
)
from ..vault.photos import create_photo_file
from ..vcard.card import Card
from ..vcard.diff import diff, has_relevant_diff
from ..vcard.errors import VCardError
from ..vcard.parser import parse_vcards

__all__ = ["ContactError", "ContactsSync", "PushResult", "SyncDownResult"]

log = logging.getLogger(__name__)

_QUOTES_RE = re.compile(r"[\"']")


class ContactError(ValueError):
    """A remote object cannot be mapped to a note."""


@dataclass(frozen=True)
class SyncDownResult:
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0


@dataclass(frozen=True)
class PushResult:
    updated: bool
    reason: str
    etag: str | None = None


class ContactsSync:
    def __init__(self, cfg: AppConfig, carddav: CardDAVClient) -> None:
        self.cfg = cfg
        self.carddav = carddav

    @property
    def folder(self) -> Path:
        return Path(self.cfg.vault.sync_folder).expanduser()

    @property
    def id_key(self) -> str:
        return self.cfg.vault.card_id_key

    # -----------------
    # Remote -> vault
    # -----------------

    def sync_down(self, *, dry_run: bool = False) -> SyncDownResult:
        """Write every remote card into the sync folder."""
        book = self.carddav.get_address_book()
        objects = self.carddav.fetch_vcards(book)

        if not dry_run:
            self.folder.mkdir(parents=True, exist_ok=True)

        counts = {"created": 0, "updated": 0, "skipped": 0}
        errors = 0
        for obj in objects:
            try:
                outcome = self._write_contact(obj, dry_run=dry_run)
            except (VCardError, ContactError, OSError) as exc:
                errors += 1
                log.error("contact-sync-failed url=%s err=%s", obj.url, exc)
                continue
            counts[outcome] += 1

        result = SyncDownResult(fetched=len(objects), errors=errors, **counts)
        log.info(
            "sync-down-complete fetched=%d created=%d updated=%d skipped=%d errors=%d",
            result.fetched,
            result.created,
            result.updated,
            result.skipped,
            result.errors,
        )
        return result

    def _single_card(self, obj: DavObject) -> Card:
        if obj.data is None:
            raise ContactError("Remote object has no vCard data; cannot parse")
        cards = parse_vcards(obj.data)
        if len(cards) != 1:
            raise ContactError(
                f"Only a single contact may exist in a remote object, found {len(cards)}"
            )
        return cards[0]

    def _card_identity(self, card: Card) -> tuple[str, str]:
        fn = card.get_single_val("FN")
        if not fn:
            raise ContactError("FN (full name) must be a single non-empty text value")
        card_id = card.get_single_val(self.id_key)
        if not card_id:
            raise ContactError(f"Contacts require a single-valued {self.id_key} property")
        return fn, _QUOTES_RE.sub("", card_id)

    def _write_contact(self, obj: DavObject, *, dry_run: bool) -> str:
        """Create or refresh the note for `obj`; returns created/updated/skipped."""
        card = self._single_card(obj)
        fn, card_id = self._card_identity(card)

        target = note_path_for(self.folder, fn)
        existing = find_note_by_frontmatter(self.folder, self.id_key, card_id)
        source = existing or target

        if existing is not None and existing != target:
            if target.exists():
                raise ContactError(f"Cannot rename {existing.name}: {target.name} already exists")
            log.info("note-rename from=%s to=%s", existing.name, target.name)
            if not dry_run:
                existing.rename(target)
                source = target

        # Photo first: its file name is derived from the final note name
        photo = create_photo_file(card, target, dry_run=dry_run) if self.cfg.vault.photo_sync else None

        post = load_note(source)
        body = render_body(card)
        new_post = frontmatter.Post(body if body is not None else post.content)
        new_post.metadata.update(
            card_to_frontmatter(
                card,
                obj.url,
                photo_embed=photo.embed if photo else None,
                existing=dict(post.metadata),
            )
        )

        text = note_text(new_post)
        if existing is not None and existing == target and target.read_text(encoding="utf-8") == text:
            return "skipped"

        if dry_run:
            log.info("dry-run note-write path=%s", target)
        else:
            target.write_text(text, encoding="utf-8")
        return "updated" if existing is not None else "created"

    # -----------------
    # Vault -> remote
    # -----------------

    def push_note(self, path: Path, *, dry_run: bool = False) -> PushResult:
        """Upload the editable fields of a modified note to its remote card.

        Raises:
            VCardError/ContactError: the remote card cannot be parsed.
            CardDAVError: the server rejected a request.
        """
        if not self.cfg.vault.write_on_modify:
            return PushResult(updated=False, reason="write-on-modify disabled")
        if path.resolve().parent != self.folder.resolve():
            log.debug("push-skip not-in-sync-folder path=%s", path)
            return PushResult(updated=False, reason="not in sync folder")

        info = read_note_info(path)
        if not info.card_url:
            log.warning("push-skip no-card-url note=%s", path.stem)
            return PushResult(updated=False, reason="no card url in frontmatter")

        book = self.carddav.get_address_book()
        remote = self.carddav.fetch_vcards(book, object_urls=[info.card_url])
        if not remote:
            log.warning("push-skip remote-missing url=%s", info.card_url)
            return PushResult(updated=False, reason="remote card not found")

        obj = remote[0]
        original = self._single_card(obj)
        edited = original.copy()
        apply_note_to_card(edited, info)

        if not has_relevant_diff(original, edited):
            return PushResult(updated=False, reason="no relevant changes")

        changed = [d.name for d in diff(original, edited)]
        if dry_run:
            log.info("dry-run push url=%s props=%s", obj.url, ",".join(changed))
            return PushResult(updated=False, reason="dry-run")

        etag = self.carddav.update_vcard(DavObject(url=obj.url, etag=obj.etag, data=edited.serialize()))
        log.info("pushed url=%s props=%s", obj.url, ",".join(changed))
        return PushResult(updated=True, reason="updated", etag=etag)

    # -----------------
    # Validation
    # -----------------

    def validate(self) -> list[str]:
        """Problems that would prevent a sync; an empty list means valid."""
        try:
            book = self.carddav.get_address_book()
        except CardDAVError as exc:
            return [str(exc)]

        problems: list[str] = []
        for obj in self.carddav.fetch_vcards(book):
            try:
                self._card_identity(self._single_card(obj))
            except (VCardError, ContactError) as exc:
                problems.append(f"{obj.url}: {exc}")
        return problems
