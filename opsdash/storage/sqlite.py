"""SQLiteStateStore: cache snapshots in a single key/value table (stdlib sqlite3)."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS state (
    key TEXT PRIMARY KEY,
    value_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SQLiteStateStore:
    """Key/value snapshot store backed by one SQLite file."""

    def __init__(self, db_path: str | Path = ".opsdash/state.db") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA_SQL)

    def get(self, key: str) -> Any | None:
        row = self._conn.execute(
            "SELECT value_json FROM state WHERE key = ?", (key,)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError as e:
            logger.warning("Ignoring corrupt state row %r: %s", key, e)
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value, default=str)
            self._conn.execute(
                "INSERT INTO state (key, value_json, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json, "
                "updated_at = excluded.updated_at",
                (key, payload, datetime.now(timezone.utc).isoformat()),
            )
            self._conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("Error saving state %r: %s", key, e)

    def remove(self, key: str) -> None:
        self._conn.execute("DELETE FROM state WHERE key = ?", (key,))
        self._conn.commit()

    def keys(self) -> list[str]:
        return [r["key"] for r in self._conn.execute("SELECT key FROM state ORDER BY key")]

    def close(self) -> None:
        self._conn.close()
