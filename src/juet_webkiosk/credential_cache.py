from __future__ import annotations

import logging
import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .models import Credentials


logger = logging.getLogger(__name__)

_FIELDS = ("enrollment_id", "date_of_birth", "password", "user_type")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL,
  updated_at TEXT NOT NULL
);
"""


class MemoryCredentialCache:
    """In-process cache; handy for tests and for embedding without a filesystem."""

    def __init__(self, initial: Optional[Credentials] = None) -> None:
        self._creds = initial

    def save(self, credentials: Credentials) -> None:
        self._creds = credentials

    def load(self) -> Optional[Credentials]:
        return self._creds

    def clear(self) -> None:
        self._creds = None

    def close(self) -> None:
        return None


def _is_usable(conn: sqlite3.Connection) -> bool:
    try:
        # schema_version fails fast on "file is not a database"; quick_check catches page damage.
        conn.execute("PRAGMA schema_version;").fetchone()
        row = conn.execute("PRAGMA quick_check;").fetchone()
    except sqlite3.Error:
        return False
    return bool(row) and row[0] == "ok"


def _connect_if_usable(path: Path) -> Optional[sqlite3.Connection]:
    try:
        conn = sqlite3.connect(path)
    except sqlite3.Error:
        return None
    if _is_usable(conn):
        return conn
    conn.close()
    return None


class CredentialCache:
    """
    Last-used credentials in a small SQLite key-value table.

    All four fields are written together; if any of them is missing on load the whole record is
    treated as absent. A damaged file is set aside as `<db>.corrupt-<stamp>` and replaced by the
    `<db>.bak` copy written after every change, or by an empty cache when there is no usable copy.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._backup_path = self.db_path.with_name(self.db_path.name + ".bak")

        self._conn = self._open()
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute(_SCHEMA)
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "CredentialCache":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def _open(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            return sqlite3.connect(self.db_path)

        conn = _connect_if_usable(self.db_path)
        if conn is not None:
            return conn

        logger.warning("Credential cache %s is unreadable; setting it aside", self.db_path)
        self._set_aside_damaged_files()
        restored = self._restore_backup()
        if restored is not None:
            return restored
        return sqlite3.connect(self.db_path)

    def _set_aside_damaged_files(self) -> None:
        suffix = datetime.now(timezone.utc).strftime(".corrupt-%Y%m%dT%H%M%SZ")
        for name in (self.db_path.name, self.db_path.name + "-wal", self.db_path.name + "-shm"):
            src = self.db_path.with_name(name)
            if not src.exists():
                continue
            try:
                src.replace(src.with_name(name + suffix))
            except OSError:
                logger.debug("Could not move %s aside", src, exc_info=True)

    def _restore_backup(self) -> Optional[sqlite3.Connection]:
        if not self._backup_path.exists():
            logger.warning("No credential cache backup at %s; starting empty", self._backup_path)
            return None
        try:
            shutil.copy2(self._backup_path, self.db_path)
        except OSError:
            logger.warning("Could not copy credential cache backup; starting empty", exc_info=True)
            return None
        conn = _connect_if_usable(self.db_path)
        if conn is None:
            logger.warning("Credential cache backup is unreadable too; starting empty")
            self.db_path.unlink(missing_ok=True)
            return None
        logger.warning("Credential cache restored from %s", self._backup_path)
        return conn

    def backup(self) -> None:
        """
        Refresh `<db_path>.bak` with a consistent copy (SQLite online backup, then atomic rename).
        """
        staging = self._backup_path.with_name(self._backup_path.name + ".tmp")
        staging.unlink(missing_ok=True)

        target = sqlite3.connect(staging)
        try:
            self._conn.backup(target)
        finally:
            target.close()
        staging.replace(self._backup_path)

    def _refresh_backup(self) -> None:
        try:
            self.backup()
        except (OSError, sqlite3.Error):
            logger.debug("Failed to refresh credential cache backup.", exc_info=True)

    def save(self, credentials: Credentials) -> None:
        now = datetime.now(timezone.utc).isoformat()
        rows = [(name, str(getattr(credentials, name) or ""), now) for name in _FIELDS]
        with self._conn:
            self._conn.execute("DELETE FROM credentials;")
            self._conn.executemany(
                "INSERT INTO credentials(key, value, updated_at) VALUES (?, ?, ?);",
                rows,
            )
        logger.debug("Cached credentials for %s", credentials.enrollment_id)
        self._refresh_backup()

    def load(self) -> Optional[Credentials]:
        values = dict(self._conn.execute("SELECT key, value FROM credentials;").fetchall())
        if any(not (values.get(name) or "").strip() for name in _FIELDS):
            if values:
                logger.warning("Incomplete credentials cached; ignoring them")
            return None
        return Credentials(**{name: values[name] for name in _FIELDS})

    def clear(self) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM credentials;")
        logger.debug("Credential cache cleared")
        self._refresh_backup()
