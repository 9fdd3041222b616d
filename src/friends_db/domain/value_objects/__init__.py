"""Value objects - immutable identifiers and enumerations."""

from friends_db.domain.value_objects.identifiers import (
    INVALID_TXN_ID,
    NO_VERSION,
    RecordKey,
    SchemaVersion,
    TransactionId,
    is_valid_key,
)
from friends_db.domain.value_objects.transaction_types import (
    ConnectionState,
    LockMode,
    RequestState,
    TransactionMode,
    TransactionState,
)

__all__ = [
    # Identifiers
    "INVALID_TXN_ID",
    "NO_VERSION",
    "RecordKey",
    "SchemaVersion",
    "TransactionId",
    "is_valid_key",
    # Transaction types
    "ConnectionState",
    "LockMode",
    "RequestState",
    "TransactionMode",
    "TransactionState",
]
