"""Top-level runner for sync commands.

Responsibilities
- Build the CardDAV client from configuration
- Serialise runs with a filesystem lock so two processes never edit the same
  note or card concurrently
- Map outcomes to exit codes

Exit codes
- 0: success
- 2: partial (some contacts failed, or validation found problems)
- 3: fatal (could not start/run)
"""

from __future__ import annotations

import errno
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType
from typing import TypeVar

import httpx

from ..config import AppConfig
from ..dav.carddav import CardDAVClient, CardDAVError
from ..utils.http import RetryConfig
from ..vcard.errors import VCardError
from .contacts_sync import ContactError, ContactsSync, PushResult, SyncDownResult

__all__ = ["EXIT_FATAL", "EXIT_OK", "EXIT_PARTIAL", "FileLock", "Orchestrator"]

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 2
EXIT_FATAL = 3

T = TypeVar("T")


class FileLock:
    """Non-blocking PID file lock using O_CREAT|O_EXCL.

    A lock left behind by a process that no longer exists is treated as stale
    and taken over.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._fd: int | None = None

    def _create(self) -> None:
        self._fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        os.write(self._fd, str(os.getpid()).encode("utf-8"))
        os.fsync(self._fd)

    def acquire(self) -> None:
        try:
            self._create()
        except OSError as e:
            if e.errno != errno.EEXIST:
                raise
            if self._is_stale_lock():
                log.warning("Removing stale lock file at %s", self.path)
                try:
                    os.unlink(self.path)
                    self._create()
                    return
                except OSError:
                    # Another process might have created the lock in the meantime
                    pass
            raise RuntimeError(f"Another instance is running (lock exists at {self.path})") from e

    def _is_stale_lock(self) -> bool:
        try:
            with open(self.path, encoding="utf-8") as f:
                pid_str = f.read().strip()
        except (FileNotFoundError, PermissionError):
            return True
        if not pid_str.isdigit():
            return True
        try:
            os.kill(int(pid_str), 0)  # signal 0 only checks existence
        except OSError:
            return True
        return False

    def release(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None
        try:
            os.unlink(self.path)
        except FileNotFoundError:
            pass

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


class Orchestrator:
    def __init__(self, cfg: AppConfig) -> None:
        self.cfg = cfg

    def _build_carddav(self) -> CardDAVClient:
        dav = self.cfg.dav
        password = dav.resolved_password()
        if not password:
            raise RuntimeError("DAV password is required (env CARDSYNC_DAV_PASSWORD or config).")

        retry_cfg = RetryConfig(
            max_retries=self.cfg.sync.max_retries,
            backoff_initial_sec=self.cfg.sync.backoff_initial_sec,
        )
        return CardDAVClient(
            server_url=dav.server_url,
            username=dav.username,
            password=password,
            home_path=dav.home_path,
            timeout=dav.timeout_sec,
            verify=dav.verify_ssl,
            retry=retry_cfg,
        )

    @contextmanager
    def _engine(self) -> Iterator[ContactsSync]:
        with FileLock(self.cfg.runtime.lock_path):
            carddav = self._build_carddav()
            try:
                yield ContactsSync(self.cfg, carddav)
            finally:
                carddav.close()

    def _run(self, name: str, action: Callable[[ContactsSync], T]) -> T | None:
        try:
            with self._engine() as engine:
                return action(engine)
        except (RuntimeError, CardDAVError, VCardError, ContactError, OSError, httpx.HTTPError) as exc:
            log.error("%s-fatal err=%s", name, exc)
        return None

    def sync_down(self) -> tuple[int, SyncDownResult | None]:
        res = self._run("sync-down", lambda e: e.sync_down(dry_run=self.cfg.sync.dry_run))
        if res is None:
            return EXIT_FATAL, None
        return (EXIT_OK if res.errors == 0 else EXIT_PARTIAL), res

    def push(self, note: Path) -> tuple[int, PushResult | None]:
        res = self._run("push", lambda e: e.push_note(note, dry_run=self.cfg.sync.dry_run))
        if res is None:
            return EXIT_FATAL, None
        return EXIT_OK, res

    def validate(self) -> tuple[int, list[str]]:
        problems = self._run("validate", lambda e: e.validate())
        if problems is None:
            return EXIT_FATAL, []
        return (EXIT_OK if not problems else EXIT_PARTIAL), problems
