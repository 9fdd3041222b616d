"""Outbound ports - dependencies on external systems."""

from friends_db.ports.outbound.record_engine import RecordEngine

__all__ = ["RecordEngine"]
