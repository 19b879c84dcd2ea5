"""Mapping between parsed cards and Markdown notes with YAML frontmatter.

Each contact lives in `<sync folder>/<FN>.md`. Card properties become
frontmatter keys named after the property (`FN`, `TEL`, `UID`, ...) with a
few exceptions that are editable from the note side:

- X-CUSTOM1  <-> `aliases` (comma separated on the card, a list in the note)
- CATEGORIES <-> `tags`
- NOTE       <-> note body, below a `# Note:` heading

`obs_sync_url` records the remote URL of the card so edits can be pushed back.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from ..vcard.card import Card
from ..vcard.codec import ListValue

__all__ = [
    "ALIASES_PROP",
    "NoteInfo",
    "URL_KEY",
    "apply_note_to_card",
    "card_to_frontmatter",
    "find_note_by_frontmatter",
    "load_note",
    "note_path_for",
    "note_text",
    "read_note_info",
    "render_body",
    "save_note",
]

log = logging.getLogger(__name__)

URL_KEY = "obs_sync_url"
ALIASES_PROP = "X-CUSTOM1"
NOTE_HEADING = "# Note:"

_UNSAFE_NAME_RE = re.compile(r'[\\/:*?"<>|]')
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n.*?^---[ \t]*$\n?", re.DOTALL | re.MULTILINE)


@dataclass(frozen=True)
class NoteInfo:
    path: Path
    card_url: str | None
    aliases: list[str] | None
    categories: str | list[str] | None
    note: str | None


def load_note(path: Path) -> frontmatter.Post:
    """Parse a note; a missing or empty file yields an empty Post."""
    if not path.exists():
        return frontmatter.Post("")
    text = path.read_text(encoding="utf-8")
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"Frontmatter of {path} contains invalid YAML: {exc}") from exc
    # frontmatter strips the body; keep it exactly as `note_text` wrote it
    post.content = _raw_body(text)
    return post


def _raw_body(text: str) -> str:
    stripped = text.lstrip()
    m = _FRONTMATTER_RE.match(stripped)
    if m is None:
        body = text
    else:
        body = stripped[m.end() :]
        body = body[1:] if body.startswith("\n") else body
    return body[:-1] if body.endswith("\n") else body


def note_text(post: frontmatter.Post) -> str:
    """Serialized note; frontmatter keys keep insertion order.

    Layout is `---\\n<yaml>\\n---\\n\\n<content>\\n`; the content is written
    verbatim so surrounding newlines survive a load/save cycle.
    """
    if not post.metadata:
        return post.content + "\n"
    meta = frontmatter.YAMLHandler().export(post.metadata, sort_keys=False)
    body = f"\n{post.content}" if post.content else ""
    return f"---\n{meta}\n---\n{body}\n"


def save_note(path: Path, post: frontmatter.Post) -> None:
    path.write_text(note_text(post), encoding="utf-8")


def note_path_for(folder: Path, fn: str) -> Path:
    return folder / f"{_UNSAFE_NAME_RE.sub('_', fn).strip()}.md"


def find_note_by_frontmatter(folder: Path, key: str, value: str) -> Path | None:
    """First note in `folder` whose frontmatter `key` (or `key.lower()`) equals `value`."""
    if not folder.is_dir():
        return None
    for path in sorted(folder.glob("*.md")):
        try:
            meta = load_note(path).metadata
        except ValueError as exc:
            log.warning("note-frontmatter-unreadable path=%s err=%s", path, exc)
            continue
        found = meta.get(key, meta.get(key.lower()))
        if found is not None and str(found) == value:
            return path
    return None


def _as_list(value: str | ListValue) -> list[str]:
    if isinstance(value, ListValue):
        return list(value.items)
    return value.split(",")


def card_to_frontmatter(
    card: Card,
    url: str,
    *,
    photo_embed: str | None = None,
    existing: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Frontmatter for `card`, merged over `existing` keys of the note."""
    fm: dict[str, Any] = dict(existing or {})
    fm[URL_KEY] = url

    for prop in card:
        value = prop.value
        if isinstance(value, ListValue) and not value.items:
            continue
        fm.pop(prop.name, None)

        if prop.name == ALIASES_PROP:
            fm.pop("aliases", None)
            fm["aliases"] = _as_list(value)
        elif prop.name == "CATEGORIES":
            fm.pop("tags", None)
            fm["tags"] = list(value.items) if isinstance(value, ListValue) else value
        elif prop.name == "NOTE":
            continue
        elif prop.name == "PHOTO":
            if photo_embed:
                fm[prop.name] = photo_embed
        elif isinstance(value, ListValue):
            fm[prop.name] = list(value.items)
        else:
            fm[prop.name] = value
    return fm


def render_body(card: Card) -> str | None:
    note = card.get_single_val("NOTE")
    if not note:
        return None
    return f"{NOTE_HEADING}\n{note}"


def _body_note(content: str) -> str | None:
    # inverse of render_body: only the heading line is removed
    body = content
    if body == NOTE_HEADING:
        return None
    if body.startswith(NOTE_HEADING + "\n"):
        body = body[len(NOTE_HEADING) + 1 :]
    return body or None


def read_note_info(path: Path) -> NoteInfo:
    post = load_note(path)
    meta = post.metadata

    aliases = meta.get("aliases")
    if isinstance(aliases, str):
        aliases = [aliases]

    categories = meta.get("tags")
    if categories is not None and not isinstance(categories, str | list):
        categories = str(categories)

    url = meta.get(URL_KEY)
    return NoteInfo(
        path=path,
        card_url=str(url) if url else None,
        aliases=[str(a) for a in aliases] if aliases else None,
        categories=[str(c) for c in categories] if isinstance(categories, list) else categories,
        note=_body_note(post.content),
    )


def _aliases_value(card: Card, aliases: list[str]) -> str | ListValue:
    """Aliases in the shape the card already uses for X-CUSTOM1."""
    current = card.get(ALIASES_PROP)
    joined = ",".join(aliases)
    if current is not None and current.value == joined:
        return joined
    if current is not None and isinstance(current.value, ListValue):
        return ListValue(items=list(aliases), delimiter=current.value.delimiter or ",")
    if len(aliases) == 1:
        return aliases[0]
    return ListValue(items=list(aliases), delimiter=",")


def apply_note_to_card(card: Card, info: NoteInfo) -> None:
    """Copy the note-editable fields of `info` onto `card`."""
    if info.aliases:
        card.update_value(ALIASES_PROP, _aliases_value(card, info.aliases))

    if info.categories:
        # a single tag stays a single value on the card
        if isinstance(info.categories, str):
            card.update_value("CATEGORIES", info.categories)
        elif len(info.categories) == 1:
            card.update_value("CATEGORIES", info.categories[0])
        else:
            card.update_value("CATEGORIES", ListValue(items=list(info.categories), delimiter=","))

    if info.note:
        card.update_value("NOTE", info.note)
