"""Adapters layer - concrete implementations of ports.

Outbound adapters implement storage engines the connection manager
drives (e.g. SQLiteRecordEngine).
"""

from friends_db.adapters.outbound import SQLiteRecordEngine

__all__ = ["SQLiteRecordEngine"]
