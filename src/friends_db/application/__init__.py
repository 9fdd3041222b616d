"""Application layer - connection, transaction and operation lifecycle."""

from friends_db.application.connection_manager import (
    Connection,
    ConnectionManager,
    EngineFactory,
    UpgradeHandler,
    VersionChange,
)
from friends_db.application.friend_store import (
    FRIENDS,
    FriendStore,
    upgrade_friends_schema,
)
from friends_db.application.request import Request
from friends_db.application.transaction import (
    CollectionHandle,
    Transaction,
    TransactionStats,
)

__all__ = [
    # Connection manager
    "Connection",
    "ConnectionManager",
    "EngineFactory",
    "UpgradeHandler",
    "VersionChange",
    # Operation layer
    "FRIENDS",
    "FriendStore",
    "upgrade_friends_schema",
    # Requests and transactions
    "CollectionHandle",
    "Request",
    "Transaction",
    "TransactionStats",
]
