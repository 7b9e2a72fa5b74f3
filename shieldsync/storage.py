from __future__ import annotations

import datetime as dt
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import Any, Protocol

from . import db


class StoreUnavailableError(RuntimeError):
    """Raised when the durable key-value store cannot be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class SqliteKeyValueStore:
    """One partition of the shared sqlite file.

    Every call opens its own connection so the store can be used from the
    controller worker thread and from short-lived popup processes alike.
    """

    def __init__(self, db_path: Path | str = db.DEFAULT_DB_PATH, partition: str = db.LOCAL_PARTITION):
        self.db_path = Path(db_path).expanduser()
        self.partition = partition

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = db.connect(self.db_path, check_same_thread=False)
            db.initialize_schema(conn)
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailableError(f"cannot open {self.db_path}: {exc}") from exc
        return conn

    def get(self, key: str) -> Any | None:
        with closing(self._connect()) as conn:
            try:
                row = conn.execute(
                    "SELECT value_json FROM kv_entries WHERE partition = ? AND key = ?",
                    (self.partition, key),
                ).fetchone()
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"read {self.partition}/{key} failed: {exc}") from exc
        if row is None:
            return None
        return db.from_json(row["value_json"])

    def set(self, key: str, value: Any) -> None:
        now = dt.datetime.now(dt.UTC).isoformat()
        with closing(self._connect()) as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO kv_entries(partition, key, value_json, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(partition, key) DO UPDATE SET
                        value_json = excluded.value_json,
                        updated_at = excluded.updated_at
                    """,
                    (self.partition, key, db.to_json(value), now),
                )
                conn.commit()
            except sqlite3.Error as exc:
                raise StoreUnavailableError(f"write {self.partition}/{key} failed: {exc}") from exc


def local_store(db_path: Path | str) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(db_path, db.LOCAL_PARTITION)


def sync_store(db_path: Path | str) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(db_path, db.SYNC_PARTITION)
