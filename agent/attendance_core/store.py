"""
CursorStore: durable device_id → cursor map in a local SQLite file.

``save()`` commits with ``synchronous=FULL`` before returning, so a crash right
after it cannot lose the cursor. One short-lived connection per call keeps the
file free between cycles.
"""

import json
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path

from .config import log

_SCHEMA = """
CREATE TABLE IF NOT EXISTS device_cursors (
    device_id   TEXT PRIMARY KEY,
    cursor_json TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""

_UPSERT = """
INSERT INTO device_cursors (device_id, cursor_json, updated_at)
VALUES (?, ?, ?)
ON CONFLICT(device_id) DO UPDATE SET
    cursor_json = excluded.cursor_json,
    updated_at  = excluded.updated_at
"""


class CursorStore:
    def __init__(self, db_path):
        self._db_path = Path(db_path)

    @property
    def path(self):
        return self._db_path

    def _connect(self):
        conn = sqlite3.connect(str(self._db_path), timeout=10)
        conn.execute("PRAGMA synchronous=FULL")
        return conn

    def initialize(self):
        """Create the folder and table if missing. Idempotent."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
            conn.commit()
        log.info("Local store initialized at %s", self.path)

    def get(self, device_id):
        """Last committed cursor for a device, or None if never written."""
        with closing(self._connect()) as conn:
            row = conn.execute(
                "SELECT cursor_json FROM device_cursors WHERE device_id = ?",
                (str(device_id),),
            ).fetchone()
        if row is None:
            return None
        try:
            cursor = json.loads(row[0])
        except json.JSONDecodeError:
            log.warning("Stored cursor for device %s is corrupt, ignoring", device_id)
            return None
        return cursor if isinstance(cursor, dict) else None

    def save(self, device_id, cursor):
        """Upsert; last write wins. Durable once this returns."""
        payload = json.dumps(dict(cursor), sort_keys=True, default=str)
        now = datetime.now(timezone.utc).isoformat()
        with closing(self._connect()) as conn:
            with conn:
                conn.execute(_UPSERT, (str(device_id), payload, now))
        log.debug("Cursor saved for device %s: %s", device_id, payload)

