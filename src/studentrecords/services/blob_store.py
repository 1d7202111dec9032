from __future__ import annotations

import sqlite3
from pathlib import Path


class BlobStoreError(Exception):
    pass


class SqliteBlobStore:
    """Key-value blob persisted in a single SQLite table."""

    def __init__(self, db_path: str = "data/student_records.db") -> None:
        self.db_path = db_path
        try:
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self._init_schema()
        except (OSError, sqlite3.Error) as exc:
            raise BlobStoreError(f"Cannot open storage at {db_path}: {exc}") from exc

    def _init_schema(self) -> None:
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            )
            """
        )
        self.conn.commit()

    def get(self, key: str) -> str | None:
        try:
            cur = self.conn.execute("SELECT value FROM kv WHERE key=?", (key,))
            row = cur.fetchone()
        except sqlite3.Error as exc:
            raise BlobStoreError(f"Read of '{key}' failed: {exc}") from exc
        return None if row is None else str(row[0])

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def set(self, key: str, value: str) -> None:
        try:
            with self.conn:
                self.conn.execute(
                    """INSERT INTO kv(key, value) VALUES(?, ?)
                       ON CONFLICT(key) DO UPDATE SET value=excluded.value""",
                    (key, value),
                )
        except sqlite3.Error as exc:
            raise BlobStoreError(f"Write of '{key}' failed: {exc}") from exc

    def set_many(self, items: dict[str, str]) -> None:
        """Write several keys in one transaction."""
        try:
            with self.conn:
                self.conn.executemany(
                    """INSERT INTO kv(key, value) VALUES(?, ?)
                       ON CONFLICT(key) DO UPDATE SET value=excluded.value""",
                    list(items.items()),
                )
        except sqlite3.Error as exc:
            raise BlobStoreError(f"Write of {', '.join(items)} failed: {exc}") from exc

    def close(self) -> None:
        self.conn.close()
