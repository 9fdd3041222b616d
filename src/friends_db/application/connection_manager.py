"""Connection manager - open, upgrade and readiness gating.

The manager owns the single database handle of the process. It is built
once at startup and passed to everything that needs the database:

    manager = ConnectionManager(engine_factory, on_upgrade_needed=upgrade)
    manager.open("MyDatabase", 1).on_success(ready).on_error(failed)

Opening happens at most once. When the requested version is above the
stored one, the upgrade handler runs inside a version-change write before
success is signalled. On failure the manager stays FAILED for the rest of
the process and every dependent operation gets NotReadyError.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Callable, Iterable

from friends_db.application.request import Request
from friends_db.application.transaction import Transaction, TransactionStats
from friends_db.domain.entities import CollectionSchema
from friends_db.domain.errors import (
    NotReadyError,
    OpenFailureError,
    UnknownCollectionError,
    VersionError,
)
from friends_db.domain.services import ScopeScheduler
from friends_db.domain.value_objects import (
    ConnectionState,
    SchemaVersion,
    TransactionId,
    TransactionMode,
    TransactionState,
)
from friends_db.infrastructure.logging import get_logger
from friends_db.infrastructure.metrics import MetricsRegistry, get_metrics
from friends_db.infrastructure.tracing import trace_span
from friends_db.ports.outbound import RecordEngine

logger = get_logger(__name__)

EngineFactory = Callable[[str], RecordEngine]
UpgradeHandler = Callable[["VersionChange"], None]


class VersionChange:
    """What the upgrade handler sees while a version change is running.

    Attributes:
        database_name: Name of the database being upgraded
        old_version: Stored version before the upgrade (0 for a new database)
        new_version: Version being installed
    """

    def __init__(
        self,
        engine: RecordEngine,
        old_version: SchemaVersion,
        new_version: SchemaVersion,
    ) -> None:
        self._engine = engine
        self.database_name = engine.name
        self.old_version = old_version
        self.new_version = new_version

    @property
    def collection_names(self) -> list[str]:
        return self._engine.list_collections()

    def create_collection(
        self,
        name: str,
        key_path: str = "id",
        auto_increment: bool = True,
    ) -> CollectionSchema:
        """Create a collection.

        Raises:
            ConstraintError: If the collection already exists
        """
        schema = CollectionSchema(name=name, key_path=key_path, auto_increment=auto_increment)
        self._engine.create_collection(schema)
        return schema


class Connection:
    """A live handle on an open database.

    Shared by every operation for the lifetime of the process; operations
    only read from it.
    """

    def __init__(
        self,
        engine: RecordEngine,
        version: SchemaVersion,
        loop: asyncio.AbstractEventLoop,
        metrics: MetricsRegistry,
    ) -> None:
        self._engine = engine
        self._version = version
        self._loop = loop
        self._metrics = metrics
        self._scheduler = ScopeScheduler()
        self._txn_ids = itertools.count(1)
        self._active: dict[TransactionId, Transaction] = {}
        self._committed_total = 0
        self._aborted_total = 0

    @property
    def name(self) -> str:
        return self._engine.name

    @property
    def version(self) -> SchemaVersion:
        return self._version

    @property
    def collection_names(self) -> list[str]:
        return self._engine.list_collections()

    def transaction(
        self,
        scope: str | Iterable[str],
        mode: TransactionMode | str = TransactionMode.READONLY,
    ) -> Transaction:
        """Open a transaction over one or more collections.

        Args:
            scope: A collection name or several of them
            mode: TransactionMode or its value ("readonly" / "readwrite")

        Raises:
            ValueError: If the scope is empty or the mode is unknown
            UnknownCollectionError: If a collection does not exist
        """
        names = [scope] if isinstance(scope, str) else list(scope)
        if not names:
            raise ValueError("transaction scope must name at least one collection")
        existing = set(self._engine.list_collections())
        for name in names:
            if name not in existing:
                raise UnknownCollectionError(name)

        txn = Transaction(
            txn_id=TransactionId(next(self._txn_ids)),
            scope=names,
            mode=TransactionMode(mode),
            engine=self._engine,
            scheduler=self._scheduler,
            loop=self._loop,
            metrics=self._metrics,
            on_finish=self._on_transaction_finished,
        )
        self._active[txn.txn_id] = txn
        return txn

    def get_stats(self) -> TransactionStats:
        """Return transaction statistics for monitoring."""
        return TransactionStats(
            active_count=len(self._active),
            committed_total=self._committed_total,
            aborted_total=self._aborted_total,
        )

    def _on_transaction_finished(self, txn: Transaction) -> None:
        self._active.pop(txn.txn_id, None)
        if txn.state is TransactionState.COMMITTED:
            self._committed_total += 1
        else:
            self._aborted_total += 1

    def __repr__(self) -> str:
        return f"Connection(name={self.name!r}, version={self._version})"


class ConnectionManager:
    """Owns the process-wide connection and gates operations on it."""

    def __init__(
        self,
        engine_factory: EngineFactory,
        on_upgrade_needed: UpgradeHandler | None = None,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the manager. Nothing is opened until open().

        Args:
            engine_factory: Builds the storage engine for a database name
            on_upgrade_needed: Schema step run when the version increases
            metrics: Metrics registry (global registry if None)
        """
        self._engine_factory = engine_factory
        self._on_upgrade_needed = on_upgrade_needed
        self._metrics = metrics or get_metrics()
        self._state = ConnectionState.CLOSED
        self._connection: Connection | None = None
        self._error: OpenFailureError | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def connection(self) -> Connection | None:
        return self._connection

    @property
    def error(self) -> OpenFailureError | None:
        """Why opening failed, if it did."""
        return self._error

    def require_connection(self) -> Connection:
        """Return the live connection.

        Raises:
            NotReadyError: If the database is not open (yet, or ever)
        """
        if self._state is not ConnectionState.OPEN or self._connection is None:
            raise NotReadyError()
        return self._connection

    def open(self, name: str, version: int) -> Request[Connection]:
        """Open the database asynchronously.

        Must be called from a running event loop. The returned request
        resolves with the Connection, or fails with OpenFailureError.

        Args:
            name: Database name
            version: Schema version, an integer >= 1

        Raises:
            TypeError: If name is not a string or version is not an integer
            ValueError: If name is empty or version < 1
            RuntimeError: If open() was already called
        """
        if not isinstance(name, str):
            raise TypeError(f"database name must be a string, got {type(name).__name__}")
        if not name:
            raise ValueError("database name must not be empty")
        if isinstance(version, bool) or not isinstance(version, int):
            raise TypeError(f"version must be an integer, got {type(version).__name__}")
        if version < 1:
            raise ValueError(f"version must be >= 1, got {version}")
        if self._state is not ConnectionState.CLOSED:
            raise RuntimeError(f"open() already called (state: {self._state.name})")

        loop = asyncio.get_running_loop()
        request: Request[Connection] = Request("open", loop, source=name)
        self._state = ConnectionState.OPENING
        loop.call_soon(self._open, request, name, SchemaVersion(version), loop)
        return request

    def _open(
        self,
        request: Request[Connection],
        name: str,
        version: SchemaVersion,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        engine: RecordEngine | None = None
        try:
            with trace_span("friends_db.open", {"db.name": name, "db.version": version}):
                engine = self._engine_factory(name)
                stored = engine.open()
                if version < stored:
                    raise VersionError(version, stored)
                if version > stored:
                    self._upgrade(engine, stored, version)
        except Exception as e:
            # Upgrade handlers are caller code and may raise anything
            if engine is not None:
                engine.close()
            self._fail(request, name, version, e)
            return

        self._connection = Connection(engine, version, loop, self._metrics)
        self._state = ConnectionState.OPEN
        self._metrics.schema_version.set(version)
        logger.info(
            "database_ready",
            database=name,
            version=version,
            collections=engine.list_collections(),
        )
        request.resolve(self._connection)

    def _upgrade(
        self,
        engine: RecordEngine,
        old_version: SchemaVersion,
        new_version: SchemaVersion,
    ) -> None:
        logger.info(
            "database_upgrade_started",
            database=engine.name,
            old_version=old_version,
            new_version=new_version,
        )
        with trace_span(
            "friends_db.upgrade",
            {"db.old_version": old_version, "db.new_version": new_version},
        ):
            engine.begin()
            try:
                if self._on_upgrade_needed is not None:
                    self._on_upgrade_needed(VersionChange(engine, old_version, new_version))
                engine.set_version(new_version)
            except BaseException:
                engine.rollback()
                raise
            engine.commit()
        self._metrics.upgrades_total.inc()

    def _fail(
        self,
        request: Request[Connection],
        name: str,
        version: SchemaVersion,
        cause: Exception,
    ) -> None:
        error = OpenFailureError(
            f"cannot open database {name!r} at version {version}: {cause}",
            database=name,
            version=version,
            cause=cause,
        )
        error.__cause__ = cause
        self._error = error
        self._state = ConnectionState.FAILED
        self._metrics.open_failures_total.inc()
        logger.error(
            "database_open_failed",
            database=name,
            version=version,
            error=str(cause),
            error_type=type(cause).__name__,
        )
        request.reject(error)
