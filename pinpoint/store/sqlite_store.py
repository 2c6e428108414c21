"""
pinpoint/store/sqlite_store.py
Durable key-value store — the only state that survives a process restart.

SCHEMA DESIGN NOTES:
- One table, kv(key PRIMARY KEY, value JSON TEXT, updated_at ISO-8601)
- Overwrite-on-write (INSERT OR REPLACE), last write wins
- Floats go through json, which writes repr() — reads back bit-for-bit

KEYS:
  last_known_fix         {"lat": float, "lon": float, "ts": float}
  last_report_timestamp  int, epoch seconds (read by trip estimation)
  device_id              str, generated once

get()/set() raise PersistenceFailure. The typed helpers never raise: an
unreadable or unwritable store is logged and reads as "no value".
"""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from pinpoint.errors import PersistenceFailure
from pinpoint.models.state import PositionFix

logger = logging.getLogger(__name__)

LAST_KNOWN_FIX_KEY        = 'last_known_fix'
LAST_REPORT_TIMESTAMP_KEY = 'last_report_timestamp'
DEVICE_ID_KEY             = 'device_id'


class SqliteKeyValueStore:

    def __init__(self, db_path: Path = Path("pinpoint.db")):
        self.db_path = Path(db_path)

    # ── INTERNAL ──────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key         TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            )
        """)
        return conn

    # ── RAW ACCESS ────────────────────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        """Decoded value for key, None if never set. Raises PersistenceFailure."""
        try:
            conn = self._connect()
            try:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            finally:
                conn.close()
            return json.loads(row[0]) if row else None
        except (sqlite3.Error, json.JSONDecodeError, TypeError) as e:
            raise PersistenceFailure(f"read of '{key}' failed: {e}") from e

    def set(self, key: str, value: Any) -> None:
        """Overwrite key. Raises PersistenceFailure."""
        try:
            encoded = json.dumps(value)
            conn = self._connect()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, encoded, datetime.now(timezone.utc).isoformat()),
                )
                conn.commit()
            finally:
                conn.close()
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise PersistenceFailure(f"write of '{key}' failed: {e}") from e

    # ── LAST KNOWN FIX ────────────────────────────────────────

    def save_last_known_fix(self, fix: PositionFix) -> bool:
        try:
            self.set(LAST_KNOWN_FIX_KEY, {
                'lat': fix.latitude,
                'lon': fix.longitude,
                'ts':  fix.timestamp,
            })
            return True
        except PersistenceFailure as e:
            logger.warning(f"Could not persist last known fix: {e}")
            return False

    def load_last_known_fix(self) -> Optional[PositionFix]:
        try:
            data = self.get(LAST_KNOWN_FIX_KEY)
        except PersistenceFailure as e:
            logger.warning(f"Last known fix unavailable: {e}")
            return None
        if not isinstance(data, dict):
            return None
        try:
            return PositionFix(
                latitude  = float(data['lat']),
                longitude = float(data['lon']),
                timestamp = float(data.get('ts', 0.0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed last known fix record: {e}")
            return None

    # ── LAST REPORT TIMESTAMP ─────────────────────────────────

    def save_last_report_timestamp(self, epoch_seconds: float) -> bool:
        try:
            self.set(LAST_REPORT_TIMESTAMP_KEY, int(epoch_seconds))
            return True
        except PersistenceFailure as e:
            logger.warning(f"Could not persist last report timestamp: {e}")
            return False

    def load_last_report_timestamp(self) -> Optional[int]:
        try:
            value = self.get(LAST_REPORT_TIMESTAMP_KEY)
        except PersistenceFailure as e:
            logger.warning(f"Last report timestamp unavailable: {e}")
            return None
        return int(value) if isinstance(value, (int, float)) else None

    # ── DEVICE IDENTITY ───────────────────────────────────────

    def load_or_create_device_id(self) -> str:
        """
        Stable per-device identifier. Generated once and persisted.
        If the store is unusable a fresh id is returned for this process only.
        """
        try:
            existing = self.get(DEVICE_ID_KEY)
        except PersistenceFailure as e:
            logger.warning(f"Device id unavailable, using ephemeral id: {e}")
            return uuid.uuid4().hex
        if isinstance(existing, str) and existing:
            return existing
        device_id = uuid.uuid4().hex
        try:
            self.set(DEVICE_ID_KEY, device_id)
            logger.info(f"Generated device id {device_id}")
        except PersistenceFailure as e:
            logger.warning(f"Device id not persisted: {e}")
        return device_id
