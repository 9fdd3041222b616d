"""SQLite-backed Record Engine implementation.

This adapter implements the RecordEngine protocol on top of a single
SQLite file per database.

File Format:
    meta         (name, version)              one row, the schema version
    collections  (name, key_path, auto_increment, key_generator)
    records      (collection, key, value)     value is the record as JSON

The key generator lives in the ``collections`` row and is advanced in the
same write transaction as the insert that consumes it, so a rolled-back
insert does not burn a key and a committed delete never frees one.

Thread Safety:
    Not thread-safe. The connection is opened with check_same_thread and
    must only be used from the event loop thread.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any
from urllib.parse import quote

from friends_db.domain.entities import CollectionSchema
from friends_db.domain.errors import (
    ConstraintError,
    DataError,
    StorageError,
    UnknownCollectionError,
)
from friends_db.domain.value_objects import NO_VERSION, RecordKey, SchemaVersion, is_valid_key
from friends_db.infrastructure.logging import get_logger

logger = get_logger(__name__)

FILE_SUFFIX = ".sqlite3"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS meta (
    name TEXT PRIMARY KEY,
    version INTEGER NOT NULL
);
CREATE TABLE IF NOT EXISTS collections (
    name TEXT PRIMARY KEY,
    key_path TEXT NOT NULL,
    auto_increment INTEGER NOT NULL,
    key_generator INTEGER NOT NULL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL REFERENCES collections(name),
    key INTEGER NOT NULL,
    value TEXT NOT NULL,
    PRIMARY KEY (collection, key)
) WITHOUT ROWID;
"""


def database_path(data_dir: str | Path, name: str) -> Path:
    """Return the file holding the named database.

    The name is percent-encoded so any string maps to a single file
    inside ``data_dir``.
    """
    return Path(data_dir) / f"{quote(name, safe='')}{FILE_SUFFIX}"


class SQLiteRecordEngine:
    """SQLite implementation of the RecordEngine protocol.

    Attributes:
        name: Database name.
        path: Path of the SQLite file (or ":memory:").
    """

    def __init__(
        self,
        name: str,
        path: str | Path,
        journal_mode: str = "wal",
        synchronous: str = "full",
        busy_timeout: float = 0.0,
    ) -> None:
        """Initialize the engine. Nothing is touched on disk until open().

        Args:
            name: Database name.
            path: SQLite file path, or ":memory:".
            journal_mode: SQLite journal_mode pragma.
            synchronous: SQLite synchronous pragma.
            busy_timeout: Seconds to wait for another process's write lock.
                Engine calls run on the event loop thread, so this stays at
                or near zero; a locked database fails the request instead.
        """
        self._name = name
        self._path = path if str(path) == ":memory:" else Path(path)
        self._journal_mode = journal_mode
        self._synchronous = synchronous
        self._busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None
        self._in_transaction = False
        # Collection schemas, refreshed on open and kept in step with writes
        self._schemas: dict[str, CollectionSchema] = {}
        self._pending_schemas: dict[str, CollectionSchema] = {}

    @classmethod
    def for_database(
        cls,
        data_dir: str | Path,
        name: str,
        journal_mode: str = "wal",
        synchronous: str = "full",
        busy_timeout: float = 0.0,
    ) -> SQLiteRecordEngine:
        """Create an engine for the named database inside data_dir."""
        return cls(
            name,
            database_path(data_dir, name),
            journal_mode=journal_mode,
            synchronous=synchronous,
            busy_timeout=busy_timeout,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> str | Path:
        return self._path

    @property
    def busy_timeout(self) -> float:
        return self._busy_timeout

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def open(self) -> SchemaVersion:
        """Open the database file, creating the layout if it is new."""
        if self._conn is not None:
            raise StorageError(f"database {self._name!r} is already open")

        conn: sqlite3.Connection | None = None
        try:
            if isinstance(self._path, Path):
                self._path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self._path), timeout=self._busy_timeout, isolation_level=None
            )
            conn.execute(f"PRAGMA journal_mode={self._journal_mode}")
            conn.execute(f"PRAGMA synchronous={self._synchronous}")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.executescript(_SCHEMA)
            row = conn.execute(
                "SELECT version FROM meta WHERE name = ?", (self._name,)
            ).fetchone()
        except (sqlite3.Error, OSError) as e:
            if conn is not None:
                conn.close()
            raise StorageError(f"cannot open database {self._name!r}: {e}") from e

        self._conn = conn
        self._load_schemas()
        version = SchemaVersion(row[0]) if row else NO_VERSION
        logger.debug("engine_opened", database=self._name, path=str(self._path), version=version)
        return version

    def close(self) -> None:
        if self._conn is None:
            return
        if self._in_transaction:
            self.rollback()
        self._conn.close()
        self._conn = None
        self._schemas.clear()

    def begin(self) -> None:
        if self._in_transaction:
            raise StorageError("a write transaction is already active")
        self._execute("BEGIN IMMEDIATE")
        self._in_transaction = True
        self._pending_schemas = {}

    def commit(self) -> None:
        self._require_transaction()
        try:
            self._execute("COMMIT")
        except StorageError:
            self.rollback()
            raise
        self._in_transaction = False
        self._schemas.update(self._pending_schemas)
        self._pending_schemas = {}

    def rollback(self) -> None:
        self._require_transaction()
        self._in_transaction = False
        self._pending_schemas = {}
        self._execute("ROLLBACK")

    def set_version(self, version: SchemaVersion) -> None:
        self._require_transaction()
        self._execute(
            "INSERT INTO meta (name, version) VALUES (?, ?) "
            "ON CONFLICT(name) DO UPDATE SET version = excluded.version",
            (self._name, int(version)),
        )

    def list_collections(self) -> list[str]:
        return sorted({*self._schemas, *self._pending_schemas})

    def get_schema(self, collection: str) -> CollectionSchema:
        schema = self._pending_schemas.get(collection) or self._schemas.get(collection)
        if schema is None:
            raise UnknownCollectionError(collection)
        return schema

    def create_collection(self, schema: CollectionSchema) -> None:
        self._require_transaction()
        if schema.name in self.list_collections():
            raise ConstraintError(
                f"collection {schema.name!r} already exists",
                operation="create_collection",
                collection=schema.name,
            )
        self._execute(
            "INSERT INTO collections (name, key_path, auto_increment, key_generator) "
            "VALUES (?, ?, ?, ?)",
            (schema.name, schema.key_path, int(schema.auto_increment), schema.key_generator),
        )
        self._pending_schemas[schema.name] = schema

    def add(self, collection: str, value: dict[str, Any]) -> RecordKey:
        self._require_transaction()
        schema = self.get_schema(collection)

        if schema.key_path in value:
            key = value[schema.key_path]
            if not is_valid_key(key):
                raise DataError(f"invalid key {key!r} for collection {collection!r}")
        elif schema.auto_increment:
            key = schema.next_key()
        else:
            raise DataError(f"value has no {schema.key_path!r} and {collection!r} generates no keys")

        stored = {**value, schema.key_path: key}
        try:
            encoded = json.dumps(stored, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise DataError(f"value is not serializable: {e}") from e

        try:
            self._conn_or_raise().execute(
                "INSERT INTO records (collection, key, value) VALUES (?, ?, ?)",
                (collection, key, encoded),
            )
        except sqlite3.IntegrityError as e:
            raise ConstraintError(
                f"key {key} already exists in {collection!r}",
                operation="add",
                collection=collection,
            ) from e
        except sqlite3.Error as e:
            raise StorageError(str(e), operation="add", collection=collection) from e

        if schema.auto_increment:
            advanced = schema.advanced_to(key)
            if advanced is not schema:
                self._execute(
                    "UPDATE collections SET key_generator = ? WHERE name = ?",
                    (advanced.key_generator, collection),
                )
                self._pending_schemas[collection] = advanced

        return RecordKey(key)

    def get(self, collection: str, key: RecordKey) -> dict[str, Any] | None:
        self.get_schema(collection)
        row = self._execute(
            "SELECT value FROM records WHERE collection = ? AND key = ?",
            (collection, int(key)),
        ).fetchone()
        return json.loads(row[0]) if row else None

    def get_all(self, collection: str) -> list[dict[str, Any]]:
        self.get_schema(collection)
        rows = self._execute(
            "SELECT value FROM records WHERE collection = ? ORDER BY key",
            (collection,),
        ).fetchall()
        return [json.loads(row[0]) for row in rows]

    def delete(self, collection: str, key: RecordKey) -> int:
        self._require_transaction()
        self.get_schema(collection)
        cursor = self._execute(
            "DELETE FROM records WHERE collection = ? AND key = ?",
            (collection, int(key)),
        )
        return cursor.rowcount

    def _load_schemas(self) -> None:
        rows = self._execute(
            "SELECT name, key_path, auto_increment, key_generator FROM collections"
        ).fetchall()
        self._schemas = {
            name: CollectionSchema(
                name=name,
                key_path=key_path,
                auto_increment=bool(auto_increment),
                key_generator=key_generator,
            )
            for name, key_path, auto_increment, key_generator in rows
        }

    def _require_transaction(self) -> None:
        if not self._in_transaction:
            raise StorageError("no write transaction is active")

    def _conn_or_raise(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(f"database {self._name!r} is not open")
        return self._conn

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn_or_raise().execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def __repr__(self) -> str:
        return f"SQLiteRecordEngine(name={self._name!r}, path={str(self._path)!r})"
