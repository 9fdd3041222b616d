"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts. The only
port here is outbound: the storage engine the connection manager drives.
Adapters implement these ports with concrete functionality.
"""

from friends_db.ports.outbound import RecordEngine

__all__ = ["RecordEngine"]
