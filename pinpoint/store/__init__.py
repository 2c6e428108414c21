"""
pinpoint/store — durable key-value storage.
"""

from pinpoint.store.sqlite_store import (
    DEVICE_ID_KEY,
    LAST_KNOWN_FIX_KEY,
    LAST_REPORT_TIMESTAMP_KEY,
    SqliteKeyValueStore,
)

__all__ = [
    "DEVICE_ID_KEY",
    "LAST_KNOWN_FIX_KEY",
    "LAST_REPORT_TIMESTAMP_KEY",
    "SqliteKeyValueStore",
]
