"""Record Engine port for transactional key-value storage.

This outbound port defines the contract of the storage engine underneath
the connection manager. The engine stores, per database:

- the schema version
- the collection schemas (name, key path, auto-increment, key generator)
- the records of every collection as JSON-compatible values

The engine knows nothing about scopes, modes or requests. The transaction
coordinator decides when writes happen and brackets them with
``begin``/``commit``/``rollback``.

All methods are synchronous and are called from the event loop thread only.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol

from friends_db.domain.entities import CollectionSchema
from friends_db.domain.value_objects import RecordKey, SchemaVersion


class RecordEngine(Protocol):
    """Protocol for the storage engine of a single database."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the database name."""
        ...

    @abstractmethod
    def open(self) -> SchemaVersion:
        """Open (creating if needed) the database.

        Returns:
            The stored schema version, NO_VERSION for a new database.

        Raises:
            StorageError: If the underlying storage cannot be opened.
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Release the underlying storage. The engine is unusable afterwards."""
        ...

    @abstractmethod
    def begin(self) -> None:
        """Start a write transaction.

        Raises:
            StorageError: If a write transaction is already active.
        """
        ...

    @abstractmethod
    def commit(self) -> None:
        """Make every write since ``begin`` durable."""
        ...

    @abstractmethod
    def rollback(self) -> None:
        """Discard every write since ``begin``."""
        ...

    @abstractmethod
    def set_version(self, version: SchemaVersion) -> None:
        """Store a new schema version. Requires an active write transaction."""
        ...

    @abstractmethod
    def list_collections(self) -> list[str]:
        """Return the names of all collections, sorted."""
        ...

    @abstractmethod
    def get_schema(self, collection: str) -> CollectionSchema:
        """Return the schema of a collection.

        Raises:
            UnknownCollectionError: If the collection does not exist.
        """
        ...

    @abstractmethod
    def create_collection(self, schema: CollectionSchema) -> None:
        """Create a collection. Requires an active write transaction.

        Raises:
            ConstraintError: If a collection with that name already exists.
        """
        ...

    @abstractmethod
    def add(self, collection: str, value: dict[str, Any]) -> RecordKey:
        """Insert a new record. Requires an active write transaction.

        For auto-increment collections a value without a key is given the
        next generated key, which is written into the value's key path.

        Returns:
            The key of the new record.

        Raises:
            ConstraintError: If a record with the same key exists.
            DataError: If no key is present and none can be generated.
        """
        ...

    @abstractmethod
    def get(self, collection: str, key: RecordKey) -> dict[str, Any] | None:
        """Return a copy of the record with this key, or None."""
        ...

    @abstractmethod
    def get_all(self, collection: str) -> list[dict[str, Any]]:
        """Return copies of all records in ascending key order."""
        ...

    @abstractmethod
    def delete(self, collection: str, key: RecordKey) -> int:
        """Delete the record with this key. Requires an active write transaction.

        Returns:
            Number of records removed (0 or 1).
        """
        ...
