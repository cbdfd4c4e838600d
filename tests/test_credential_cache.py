from __future__ import annotations

import sqlite3
from pathlib import Path

from juet_webkiosk.credential_cache import CredentialCache, MemoryCredentialCache
from juet_webkiosk.models import Credentials


CREDS = Credentials(enrollment_id="211B123", date_of_birth="15-07-2003", password="s3cret")


def test_cache_save_load_clear(tmp_path: Path) -> None:
    with CredentialCache(str(tmp_path / "creds.db")) as cache:
        assert cache.load() is None
        cache.save(CREDS)
        assert cache.load() == CREDS
        cache.clear()
        assert cache.load() is None


def test_cache_survives_reopen(tmp_path: Path) -> None:
    db_path = tmp_path / "creds.db"
    with CredentialCache(str(db_path)) as cache:
        cache.save(CREDS)

    with CredentialCache(str(db_path)) as cache:
        assert cache.load() == CREDS


def test_missing_field_invalidates_the_record(tmp_path: Path) -> None:
    db_path = tmp_path / "creds.db"
    with CredentialCache(str(db_path)) as cache:
        cache.save(CREDS)

    conn = sqlite3.connect(db_path)
    try:
        conn.execute("DELETE FROM credentials WHERE key = 'password';")
        conn.commit()
    finally:
        conn.close()

    with CredentialCache(str(db_path)) as cache:
        assert cache.load() is None


def test_cache_creates_backup(tmp_path: Path) -> None:
    db_path = tmp_path / "creds.db"
    with CredentialCache(str(db_path)) as cache:
        cache.save(CREDS)

    bak = tmp_path / "creds.db.bak"
    assert db_path.exists()
    assert bak.exists()
    assert bak.stat().st_size > 0


def test_cache_restores_from_backup_when_db_corrupted(tmp_path: Path) -> None:
    db_path = tmp_path / "creds.db"

    # Create a valid DB + backup.
    with CredentialCache(str(db_path)) as cache:
        cache.save(CREDS)

    # Corrupt the main DB file.
    db_path.write_bytes(b"not a sqlite db")

    # Re-open: should quarantine the corrupted DB and restore from backup.
    with CredentialCache(str(db_path)) as cache:
        assert cache.load() == CREDS

    quarantined = list(tmp_path.glob("creds.db.corrupt-*"))
    assert quarantined, "expected quarantined corrupted db file to be created"


def test_memory_cache() -> None:
    cache = MemoryCredentialCache()
    assert cache.load() is None
    cache.save(CREDS)
    assert cache.load() == CREDS
    cache.clear()
    assert cache.load() is None
