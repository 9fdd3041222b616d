"""Outbound adapters - implementations of outbound ports."""

from friends_db.adapters.outbound.sqlite_record_engine import (
    SQLiteRecordEngine,
    database_path,
)

__all__ = [
    "SQLiteRecordEngine",
    "database_path",
]
