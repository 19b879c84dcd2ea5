"""Configuration loader for cardsync.

This module provides:
- Typed config models (pydantic BaseModel)
- Precedence-aware loader: file (YAML) < ENV (CARDSYNC__*) < CLI overrides
- Minimal coercion for ENV values (bool/int/float/list)

ENV format (nested via delimiter):
  CARDSYNC__dav__server_url=https://dav.example.com
  CARDSYNC__dav__username=alice
  CARDSYNC__dav__home_path=/alice/contacts/
  CARDSYNC__vault__sync_folder=/home/alice/vault/Contacts
  CARDSYNC__vault__write_on_modify=true

The DAV password may also come from CARDSYNC_DAV_PASSWORD so it never has to
live in the YAML file.

Example:
  cfg = load_config("~/.config/cardsync.yaml", cli_overrides={"sync": {"dry_run": True}})
  print(cfg.dav.server_url)
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "AppConfig",
    "DavConfig",
    "LoggingConfig",
    "RuntimeConfig",
    "SyncConfig",
    "VaultConfig",
    "load_config",
    "merge_dicts",
    "read_env_config",
]

PASSWORD_ENV = "CARDSYNC_DAV_PASSWORD"


# ----------------------------
# Pydantic models (typed config)
# ----------------------------


class DavConfig(BaseModel):
    server_url: str
    username: str
    password: str | None = None  # recommended to use CARDSYNC_DAV_PASSWORD
    home_path: str
    verify_ssl: bool = True
    timeout_sec: float = Field(30.0, gt=0, le=300)

    @field_validator("server_url")
    @classmethod
    def _validate_server_url(cls, v: str) -> str:
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("dav.server_url must start with http:// or https://")
        return v

    @field_validator("home_path")
    @classmethod
    def _validate_home_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("dav.home_path must start with '/'")
        return v

    def resolved_password(self) -> str | None:
        return self.password or os.getenv(PASSWORD_ENV)


class VaultConfig(BaseModel):
    sync_folder: str
    # Property that uniquely identifies a card (UID for most clients)
    card_id_key: str = "UID"
    write_on_modify: bool = False
    photo_sync: bool = True

    @field_validator("sync_folder")
    @classmethod
    def _validate_sync_folder(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("vault.sync_folder must not be empty")
        return v

    @field_validator("card_id_key")
    @classmethod
    def _normalize_id_key(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("vault.card_id_key must not be empty")
        return v.strip().upper()


class SyncConfig(BaseModel):
    dry_run: bool = False
    # Retry cap to avoid cascades (0..10)
    max_retries: int = Field(5, ge=0, le=10)
    # Backoff seed to control retry pacing (>0..60s)
    backoff_initial_sec: float = Field(1.0, gt=0, le=60)


class LoggingConfig(BaseModel):
    # Allow using alias "json" in config/env while avoiding BaseModel.json clash
    model_config = ConfigDict(populate_by_name=True)
    level: str = "INFO"
    as_json: bool = Field(False, alias="json")

    @field_validator("level")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        lv = (v or "INFO").upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if lv not in allowed:
            raise ValueError(f"logging.level must be one of {sorted(allowed)}")
        return lv


class RuntimeConfig(BaseModel):
    lock_path: str = "/tmp/cardsync.lock"


def _default_sync_config() -> SyncConfig:
    return SyncConfig()


def _default_logging_config() -> LoggingConfig:
    return LoggingConfig()


def _default_runtime_config() -> RuntimeConfig:
    return RuntimeConfig()


class AppConfig(BaseModel):
    dav: DavConfig
    vault: VaultConfig
    sync: SyncConfig = Field(default_factory=_default_sync_config)
    logging: LoggingConfig = Field(default_factory=_default_logging_config)
    runtime: RuntimeConfig = Field(default_factory=_default_runtime_config)


# ----------------------------
# Utilities
# ----------------------------


_BOOL_TRUE = {"1", "true", "yes", "on", "y", "t"}
_BOOL_FALSE = {"0", "false", "no", "off", "n", "f"}

_LIST_SPLIT_RE = re.compile(r"\s*,\s*")


def _coerce_value(val: str) -> Any:
    """Best-effort coercion for ENV values."""
    s = val.strip()

    ls = s.lower()
    if ls in _BOOL_TRUE:
        return True
    if ls in _BOOL_FALSE:
        return False

    if re.fullmatch(r"[+-]?\d+", s):
        return int(s)
    if re.fullmatch(r"[+-]?\d+\.\d*", s):
        return float(s)

    if "," in s:
        return [p for p in _LIST_SPLIT_RE.split(s) if p != ""]

    return s


def merge_dicts(
    base: MutableMapping[str, Any], override: Mapping[str, Any]
) -> MutableMapping[str, Any]:
    """Deep-merge override into base (mutates base). Lists/atoms are replaced."""
    for k, v in override.items():
        if k in base and isinstance(base[k], dict) and isinstance(v, Mapping):
            merge_dicts(base[k], v)
        else:
            base[k] = v
    return base


def read_yaml_config(path: Path | None) -> dict[str, Any]:
    if not path:
        return {}
    p = path.expanduser().resolve()
    if not p.exists():
        return {}
    with p.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Top-level YAML must be a mapping in {p}")
    return data


def read_env_config(prefix: str = "CARDSYNC__", nested_delim: str = "__") -> dict[str, Any]:
    """Build nested dict from environment variables.

    Keys must start with `prefix` (default 'CARDSYNC__').
    Nested keys split by `nested_delim`.
    """
    if not prefix.endswith(nested_delim):
        raise ValueError("prefix must end with the nested_delim (default 'CARDSYNC__' and '__').")

    result: dict[str, Any] = {}
    plen = len(prefix)
    for key, raw in os.environ.items():
        if not key.startswith(prefix):
            continue
        path_parts = key[plen:].split(nested_delim)
        cursor = result
        for part in path_parts[:-1]:
            cursor = cursor.setdefault(part, {})
        cursor[path_parts[-1]] = _coerce_value(raw)
    return result


# ----------------------------
# Loader (precedence: file < env < cli_overrides)
# ----------------------------


def load_config(
    file_path: str | Path | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
    env_prefix: str = "CARDSYNC__",
    env_nested_delim: str = "__",
) -> AppConfig:
    """Load AppConfig with precedence: file < env < CLI overrides.

    Args:
        file_path: YAML path or None
        cli_overrides: nested mapping of overrides (e.g., from CLI args)
        env_prefix: environment variable prefix (must end with env_nested_delim)
        env_nested_delim: nested delimiter for env vars

    Returns:
        AppConfig instance (validated)
    """
    merged: dict[str, Any] = {}

    merge_dicts(merged, read_yaml_config(Path(file_path) if file_path else None))
    merge_dicts(merged, read_env_config(prefix=env_prefix, nested_delim=env_nested_delim))

    if cli_overrides:
        if not isinstance(cli_overrides, Mapping):
            raise TypeError("cli_overrides must be a mapping (nested dict-like).")
        merge_dicts(merged, cli_overrides)

    try:
        return AppConfig.model_validate(merged)
    except ValidationError as ve:
        raise ValueError(f"Invalid configuration: {ve}") from ve
