"""Core identifiers and type-safe primitives for the friends database.

These value objects give names to the raw integers passed around the
system so that record keys, transaction ids and schema versions are not
accidentally mixed up.
"""

from __future__ import annotations

from typing import NewType


RecordKey = NewType("RecordKey", int)
"""Store-assigned surrogate key of a record. Monotonically increasing, never reused."""

TransactionId = NewType("TransactionId", int)
"""Unique identifier for a transaction within one connection. Monotonically increasing."""

SchemaVersion = NewType("SchemaVersion", int)
"""Version of a database schema. Zero means the database has never been created."""

# Special sentinel values
INVALID_TXN_ID = TransactionId(0)
NO_VERSION = SchemaVersion(0)


def is_valid_key(value: object) -> bool:
    """Return True if value can be used as a record key.

    Keys are positive integers. Booleans are rejected even though they are
    ``int`` subclasses.
    """
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1
