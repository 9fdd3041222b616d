"""Unit tests for SQLiteRecordEngine."""

from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Callable

import pytest

from friends_db.adapters.outbound import SQLiteRecordEngine, database_path
from friends_db.domain.entities import CollectionSchema
from friends_db.domain.errors import (
    ConstraintError,
    DataError,
    StorageError,
    UnknownCollectionError,
)
from friends_db.domain.value_objects import NO_VERSION, SchemaVersion

EngineFactory = Callable[[str], SQLiteRecordEngine]


def create_friends(engine: SQLiteRecordEngine, version: int = 1) -> None:
    engine.begin()
    engine.create_collection(CollectionSchema(name="friends"))
    engine.set_version(SchemaVersion(version))
    engine.commit()


@pytest.fixture
def engine(engine_factory: EngineFactory) -> SQLiteRecordEngine:
    """Provide an open engine with an empty friends collection."""
    engine = engine_factory("Test")
    engine.open()
    create_friends(engine)
    return engine


@pytest.mark.unit
class TestSQLiteRecordEngineOpen:
    """Tests for opening and versioning."""

    def test_new_database_has_no_version(self, engine_factory: EngineFactory) -> None:
        engine = engine_factory("Fresh")

        assert engine.open() == NO_VERSION
        assert engine.list_collections() == []
        assert Path(engine.path).exists()

    def test_version_and_schema_persist(
        self, engine_factory: EngineFactory, engine: SQLiteRecordEngine
    ) -> None:
        engine.close()

        reopened = engine_factory("Test")

        assert reopened.open() == 1
        assert reopened.list_collections() == ["friends"]
        assert reopened.get_schema("friends").key_path == "id"

    def test_open_twice(self, engine: SQLiteRecordEngine) -> None:
        with pytest.raises(StorageError):
            engine.open()

    def test_close_is_idempotent(self, engine: SQLiteRecordEngine) -> None:
        engine.close()
        engine.close()

    def test_database_path_encodes_name(self, temp_dir: Path) -> None:
        """Any name maps to one file directly inside the data directory."""
        path = database_path(temp_dir, "../My Database")

        assert path.parent == temp_dir
        assert path.name == "..%2FMy%20Database.sqlite3"


@pytest.mark.unit
class TestSQLiteRecordEngineRecords:
    """Tests for record operations."""

    def test_keys_increase(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()
        keys = [engine.add("friends", {"name": name}) for name in ("a", "b", "c")]
        engine.commit()

        assert keys == [1, 2, 3]
        assert [value["id"] for value in engine.get_all("friends")] == [1, 2, 3]

    def test_get(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()
        key = engine.add("friends", {"name": "Анна", "age": 25})
        engine.commit()

        assert engine.get("friends", key) == {"name": "Анна", "age": 25, "id": key}

    def test_get_missing_key(self, engine: SQLiteRecordEngine) -> None:
        assert engine.get("friends", 99) is None

    def test_key_generator_survives_delete_and_reopen(
        self, engine_factory: EngineFactory, engine: SQLiteRecordEngine
    ) -> None:
        """Deleted keys are never handed out again."""
        engine.begin()
        engine.add("friends", {"name": "a"})
        last = engine.add("friends", {"name": "b"})
        assert engine.delete("friends", last) == 1
        engine.commit()
        engine.close()

        reopened = engine_factory("Test")
        reopened.open()
        reopened.begin()
        key = reopened.add("friends", {"name": "c"})
        reopened.commit()

        assert key == 3

    def test_explicit_key_advances_generator(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()
        engine.add("friends", {"id": 10, "name": "a"})
        key = engine.add("friends", {"name": "b"})
        engine.commit()

        assert key == 11

    def test_duplicate_key(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()
        engine.add("friends", {"name": "a"})

        with pytest.raises(ConstraintError):
            engine.add("friends", {"id": 1, "name": "b"})

        engine.rollback()

    def test_invalid_explicit_key(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()

        with pytest.raises(DataError):
            engine.add("friends", {"id": "one"})

        engine.rollback()

    def test_rollback_does_not_burn_key(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()
        engine.add("friends", {"name": "a"})
        engine.rollback()

        engine.begin()
        key = engine.add("friends", {"name": "b"})
        engine.commit()

        assert key == 1
        assert len(engine.get_all("friends")) == 1

    def test_delete_missing_key(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()
        removed = engine.delete("friends", 5)
        engine.commit()

        assert removed == 0

    def test_write_requires_transaction(self, engine: SQLiteRecordEngine) -> None:
        with pytest.raises(StorageError):
            engine.add("friends", {"name": "a"})
        with pytest.raises(StorageError):
            engine.delete("friends", 1)

    def test_begin_twice(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()

        with pytest.raises(StorageError):
            engine.begin()

        engine.rollback()

    def test_create_existing_collection(self, engine: SQLiteRecordEngine) -> None:
        engine.begin()

        with pytest.raises(ConstraintError):
            engine.create_collection(CollectionSchema(name="friends"))

        engine.rollback()

    def test_unknown_collection(self, engine: SQLiteRecordEngine) -> None:
        with pytest.raises(UnknownCollectionError):
            engine.get_all("enemies")


@pytest.mark.unit
class TestSQLiteRecordEngineLocking:
    """Tests for contention with other processes and failed opens."""

    def test_locked_database_fails_fast(self, engine: SQLiteRecordEngine) -> None:
        """A write lock held elsewhere fails begin() instead of waiting."""
        other = sqlite3.connect(str(engine.path), timeout=0, isolation_level=None)
        other.execute("BEGIN IMMEDIATE")
        try:
            started = time.monotonic()
            with pytest.raises(StorageError, match="locked"):
                engine.begin()
            assert time.monotonic() - started < 1.0
            assert not engine.in_transaction
        finally:
            other.execute("ROLLBACK")
            other.close()

        engine.begin()
        engine.add("friends", {"name": "a"})
        engine.commit()

    def test_busy_timeout_passed_through(self, temp_dir: Path) -> None:
        engine = SQLiteRecordEngine.for_database(temp_dir, "Test", busy_timeout=0.25)

        assert engine.busy_timeout == 0.25

    def test_failed_open_closes_connection(
        self,
        engine_factory: EngineFactory,
        data_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A file that is not a database fails open and leaks no handle."""
        data_dir.mkdir(parents=True, exist_ok=True)
        database_path(data_dir, "Broken").write_bytes(b"not a database" * 100)

        connections: list[sqlite3.Connection] = []
        connect = sqlite3.connect

        def tracking_connect(*args, **kwargs) -> sqlite3.Connection:
            conn = connect(*args, **kwargs)
            connections.append(conn)
            return conn

        monkeypatch.setattr(sqlite3, "connect", tracking_connect)
        engine = engine_factory("Broken")

        with pytest.raises(StorageError):
            engine.open()

        assert len(connections) == 1
        with pytest.raises(sqlite3.ProgrammingError):
            connections[0].execute("SELECT 1")
