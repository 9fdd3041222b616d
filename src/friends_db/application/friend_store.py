"""Operation layer for the ``friends`` collection.

Every operation has the same shape:

    readiness check -> transaction with the required mode -> collection
    handle -> one request -> success / failure callbacks

and returns that request immediately. Operations are independent: each
opens and discards its own transaction, so there is no atomicity across
calls.

Operations:
    insert(name, age)   readwrite   resolves with the new key
    read_all()          readonly    resolves with every Friend in key order
    read_by_key(key)    readonly    resolves with a Friend, or None
    delete(key)         readwrite   resolves with None, then refreshes read_all()

Deleting a key that does not exist succeeds and is logged as a no-op.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from friends_db.application.connection_manager import (
    Connection,
    ConnectionManager,
    VersionChange,
)
from friends_db.application.request import Request
from friends_db.application.transaction import CollectionHandle
from friends_db.domain.entities import Friend
from friends_db.domain.errors import DataError
from friends_db.domain.value_objects import RecordKey, TransactionMode, is_valid_key
from friends_db.infrastructure.logging import get_logger

logger = get_logger(__name__)

FRIENDS = "friends"
KEY_PATH = "id"


def upgrade_friends_schema(change: VersionChange) -> None:
    """Create the ``friends`` collection unless it already exists."""
    if FRIENDS in change.collection_names:
        logger.debug("collection_exists", collection=FRIENDS, version=change.new_version)
        return
    change.create_collection(FRIENDS, key_path=KEY_PATH, auto_increment=True)
    logger.info(
        "collection_created",
        collection=FRIENDS,
        key_path=KEY_PATH,
        auto_increment=True,
    )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FriendStore:
    """Insert, list, look up and delete friends."""

    def __init__(
        self,
        connections: ConnectionManager,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            connections: The process-wide connection manager
            clock: Source of the ``added`` timestamp
        """
        self._connections = connections
        self._clock = clock
        self._observed: list[Friend] = []
        self._last_refresh: Request[list[Friend]] | None = None

    @property
    def observed(self) -> list[Friend]:
        """The list returned by the most recent successful read_all()."""
        return list(self._observed)

    @property
    def last_refresh(self) -> Request[list[Friend]] | None:
        """The read_all() request issued after the most recent delete."""
        return self._last_refresh

    def insert(self, name: str, age: int | float) -> Request[RecordKey]:
        """Add a friend; resolves with the store-assigned key.

        Raises:
            NotReadyError: If the database is not open
            DataError: If name is not a string or age not a number
        """
        connection = self._connections.require_connection()
        friend = Friend(name=name, age=age, added=self._clock())
        friends = _collection(connection, TransactionMode.READWRITE)

        request = friends.add(friend.to_value())
        request.on_success(lambda key: logger.info("friend_added", name=name, id=key))
        request.on_error(
            lambda error: logger.error("friend_add_failed", name=name, error=str(error))
        )
        return request

    def read_all(self) -> Request[list[Friend]]:
        """List every friend in key order.

        Raises:
            NotReadyError: If the database is not open
        """
        connection = self._connections.require_connection()
        friends = _collection(connection, TransactionMode.READONLY)

        request = friends.get_all().then(
            lambda values: [Friend.from_value(value) for value in values]
        )
        request.on_success(self._remember)
        request.on_error(
            lambda error: logger.error("friends_read_failed", error=str(error))
        )
        return request

    def read_by_key(self, key: int) -> Request[Friend | None]:
        """Look up one friend; resolves with None when the key is absent.

        Raises:
            NotReadyError: If the database is not open
            DataError: If key is not a positive integer
        """
        connection = self._connections.require_connection()
        self._check_key(key)
        friends = _collection(connection, TransactionMode.READONLY)

        request = friends.get(key).then(_decode_optional)
        request.on_success(lambda friend: _log_lookup(key, friend))
        request.on_error(
            lambda error: logger.error("friend_read_failed", id=key, error=str(error))
        )
        return request

    def delete(self, key: int) -> Request[None]:
        """Delete one friend, then refresh the observed list.

        The refresh is an independent read_all() issued once the delete
        succeeds; it is available as ``last_refresh``.

        Raises:
            NotReadyError: If the database is not open
            DataError: If key is not a positive integer
        """
        connection = self._connections.require_connection()
        self._check_key(key)
        friends = _collection(connection, TransactionMode.READWRITE)

        def _deleted(removed: int) -> None:
            if removed:
                logger.info("friend_deleted", id=key)
            else:
                logger.info("friend_delete_noop", id=key)

        request = friends.delete(key).then(_deleted)
        request.on_success(lambda _: self._refresh())
        request.on_error(
            lambda error: logger.error("friend_delete_failed", id=key, error=str(error))
        )
        return request

    def _refresh(self) -> None:
        self._last_refresh = self.read_all()

    def _remember(self, friends: list[Friend]) -> None:
        self._observed = list(friends)
        logger.info("friends_listed", count=len(friends))
        for friend in friends:
            logger.info("friend", id=friend.id, name=friend.name, age=friend.age)

    @staticmethod
    def _check_key(key: Any) -> None:
        if not is_valid_key(key):
            raise DataError(f"key must be a positive integer, got {key!r}")


def _collection(connection: Connection, mode: TransactionMode) -> CollectionHandle:
    return connection.transaction(FRIENDS, mode).collection(FRIENDS)


def _decode_optional(value: dict[str, Any] | None) -> Friend | None:
    return Friend.from_value(value) if value is not None else None


def _log_lookup(key: int, friend: Friend | None) -> None:
    if friend is None:
        logger.info("friend_not_found", id=key)
    else:
        logger.info("friend_found", id=key, name=friend.name, age=friend.age)
