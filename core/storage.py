# core/storage.py
import datetime
import json
import os
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

import pytz

from .errors import DecodeFailure, StorageFailure
from .logger import get_logger

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/voucher_radar.sqlite3")

_DELETED = object()


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(tz=pytz.UTC)


def now_utc_iso() -> str:
    return now_utc().isoformat()


def now_epoch_ms() -> int:
    return int(now_utc().timestamp() * 1000)


class LocalStore:
    """
    Namespaced key/value persistence on top of a single sqlite table.

    Values are JSON text. Each write is one statement, so a key is updated
    atomically; there are no multi-key transactions. A write that sqlite
    rejects is kept in an in-memory overlay for the rest of the process so
    callers carry on with the value they just set.
    """

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self._overlay: Dict[str, Any] = {}
        self.ensure_db()

    def _connect(self) -> sqlite3.Connection:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        return sqlite3.connect(self.db_path)

    def ensure_db(self) -> None:
        try:
            with self._connect() as con:
                con.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv (
                        key TEXT PRIMARY KEY,
                        value TEXT,
                        updated_at TEXT
                    )
                """
                )
                con.commit()
        except (sqlite3.Error, OSError) as e:
            logger.error("Could not initialise store at %s; running in memory: %s", self.db_path, e)

    # Raw text access

    def get_raw(self, key: str) -> Optional[str]:
        if key in self._overlay:
            value = self._overlay[key]
            return None if value is _DELETED else value
        try:
            with self._connect() as con:
                row = con.execute("SELECT value FROM kv WHERE key=?", (key,)).fetchone()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Store read failed for %s: %s", key, e)
            return None
        return row[0] if row else None

    def set_raw(self, key: str, value: str) -> None:
        try:
            self._write(key, value)
        except StorageFailure as e:
            logger.warning("%s; keeping %s in memory only.", e, key)
            self._overlay[key] = value
        else:
            self._overlay.pop(key, None)

    def _write(self, key: str, value: str) -> None:
        try:
            with self._connect() as con:
                con.execute(
                    """
                    INSERT INTO kv (key, value, updated_at) VALUES (?,?,?)
                    ON CONFLICT(key) DO UPDATE SET
                        value=excluded.value,
                        updated_at=excluded.updated_at
                """,
                    (key, value, now_utc_iso()),
                )
                con.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageFailure(f"Store write failed for {key}: {e}") from e

    def remove(self, key: str) -> None:
        try:
            with self._connect() as con:
                con.execute("DELETE FROM kv WHERE key=?", (key,))
                con.commit()
        except (sqlite3.Error, OSError) as e:
            logger.warning("Store delete failed for %s; masking in memory: %s", key, e)
            self._overlay[key] = _DELETED
        else:
            self._overlay.pop(key, None)

    def items(self, prefix: str = "") -> List[Tuple[str, str]]:
        """Every (key, raw value) under prefix, read in one query, sorted by key."""
        found: Dict[str, str] = {}
        try:
            with self._connect() as con:
                rows = con.execute(
                    "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                ).fetchall()
            found.update((r[0], r[1]) for r in rows if r[1] is not None)
        except (sqlite3.Error, OSError) as e:
            logger.warning("Store scan failed for prefix %r: %s", prefix, e)

        for key, value in self._overlay.items():
            if not key.startswith(prefix):
                continue
            if value is _DELETED:
                found.pop(key, None)
            else:
                found[key] = value
        return sorted(found.items())

    def keys(self, prefix: str = "") -> List[str]:
        return [key for key, _ in self.items(prefix)]

    # JSON access

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get_raw(key)
        if raw is None:
            return default
        try:
            return decode_json(raw)
        except DecodeFailure as e:
            logger.warning("Ignoring unreadable value under %s: %s", key, e)
            return default

    def set_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError) as e:
            logger.error("Cannot serialise value for %s: %s", key, e)
            return
        self.set_raw(key, raw)


def decode_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError) as e:
        raise DecodeFailure(str(e)) from e
