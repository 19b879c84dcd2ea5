"""Logging setup with optional JSON output and redaction of contact data.

Exports:
- setup_logging(level: str = "INFO", json: bool = False) -> None
- mask_pii(text: str) -> str

Redaction:
- Email addresses: local-part masked except first/last char: a***z@example.com
- Phone numbers: digits masked except last 2: ********12 (keeps a leading +)
- Credentials: `password=...`, `Authorization: Basic ...` values fully masked

Contact cards are PII; never log raw vCard text. Log property names, URLs and
counts instead.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, ClassVar

__all__ = ["JsonFormatter", "RedactingFilter", "mask_pii", "setup_logging"]


_EMAIL_RE = re.compile(r"(?P<user>[A-Za-z0-9._%+-]{1,64})@(?P<host>[A-Za-z0-9.-]+\.[A-Za-z]{2,})")
_PHONE_RE = re.compile(r"\+?(?:[()\-\s]*\d){6,}")
_CREDENTIAL_RE = re.compile(
    r"(?i)(?P<key>password|passwd|authorization)(?P<sep>\s*[:=]\s*)(?P<scheme>basic\s+|bearer\s+)?(?P<val>[^\s,;&]+)"
)

MASK = "********"


def _mask_email(match: re.Match[str]) -> str:
    user = match.group("user")
    host = match.group("host")
    if len(user) <= 2:
        return f"*@{host}"
    return f"{user[0]}***{user[-1]}@{host}"


def _mask_phone(match: re.Match[str]) -> str:
    raw = match.group(0)
    digits = "".join(ch for ch in raw if ch.isdigit())
    masked = "*" * (len(digits) - 2) + digits[-2:]
    lead = "+" if raw.lstrip().startswith("+") else ""
    # Keep a separating space the regex may have swallowed
    pad = " " if raw[:1].isspace() else ""
    return f"{pad}{lead}{masked}"


def _mask_credential(match: re.Match[str]) -> str:
    scheme = match.group("scheme") or ""
    return f"{match.group('key')}{match.group('sep')}{scheme}{MASK}"


def mask_pii(text: str) -> str:
    """Mask e-mail addresses, credentials and phone numbers in freeform text."""
    if not text:
        return text
    t = _EMAIL_RE.sub(_mask_email, text)
    # Credentials first so digits inside a password are not taken for a phone number
    t = _CREDENTIAL_RE.sub(_mask_credential, t)
    return _PHONE_RE.sub(_mask_phone, t)


class RedactingFilter(logging.Filter):
    """Redacts PII in record messages, args and well-known extras."""

    EXTRA_KEYS_TO_MASK: ClassVar[set[str]] = {"email", "tel", "phone", "fn"}
    SECRET_KEYS: ClassVar[set[str]] = {"password", "authorization"}

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = mask_pii(record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(mask_pii(a) if isinstance(a, str) else a for a in record.args)
        record._pii_redacted = True

        for key in self.EXTRA_KEYS_TO_MASK:
            val = record.__dict__.get(key)
            if isinstance(val, str):
                record.__dict__[key] = mask_pii(val)
        for key in self.SECRET_KEYS:
            if isinstance(record.__dict__.get(key), str):
                record.__dict__[key] = MASK
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts, level, name, msg, location and extras."""

    _DEFAULT_ATTRS: ClassVar[set[str]] = set(
        vars(logging.LogRecord("", 0, "", 0, "", (), None))
    ) | {"message", "asctime", "_pii_redacted"}

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        msg = record.getMessage()
        if not getattr(record, "_pii_redacted", False):
            msg = mask_pii(msg)

        base: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
            "funcName": record.funcName,
            "lineno": record.lineno,
            "module": record.module,
        }
        if record.exc_info:
            base["exc"] = self.formatException(record.exc_info)

        for k, v in record.__dict__.items():
            if k in self._DEFAULT_ATTRS:
                continue
            base[k] = self._safe_extra(v)

        return json.dumps(base, ensure_ascii=False)

    @staticmethod
    def _safe_extra(v: Any) -> Any:
        if isinstance(v, str):
            return mask_pii(v)
        if isinstance(v, int | float | bool) or v is None:
            return v
        if isinstance(v, Mapping):
            return {
                str(kk): (mask_pii(vv) if isinstance(vv, str) else vv)
                for kk, vv in list(v.items())[:20]
            }
        # Avoid large dumps
        return f"[{type(v).__name__}]"


def setup_logging(level: str = "INFO", json: bool = False) -> None:
    """Configure the root logger for CLI execution.

    - Level from config or CLI flag (DEBUG/INFO/WARNING/ERROR)
    - JSON or console formatting
    - PII redaction filter applied to the handler
    """
    if os.getenv("CARDSYNC_FORCE_JSON_LOGS", "").lower() in {"1", "true", "yes"}:
        json = True

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(RedactingFilter())

    if json:
        fmt: logging.Formatter = JsonFormatter()
    else:
        fmt = logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    handler.setFormatter(fmt)
    root.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
