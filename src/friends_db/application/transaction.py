"""Transaction coordinator.

A Transaction binds a scope (one or more collections) and a declared mode
for the duration of one logical operation:

    txn = connection.transaction("friends", TransactionMode.READWRITE)
    request = txn.collection("friends").add({"name": "Anna", "age": 25})

Lifecycle:
    1. The transaction asks the scope scheduler for its scope (IDLE).
    2. Once granted it becomes ACTIVE; readwrite transactions open an
       engine write transaction.
    3. Requests run one per loop iteration, in issuance order.
    4. When every issued request has completed and no callback or awaiting
       task issued a new one, the transaction commits by itself.
    5. A failed request, an explicit abort() or a failed commit rolls the
       transaction back; requests still queued fail with
       TransactionAbortedError.

There is no explicit commit call and a finished transaction is never reused.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from friends_db.application.request import Request
from friends_db.domain.errors import (
    DataError,
    FriendsDBError,
    ReadOnlyError,
    StorageError,
    TransactionAbortedError,
    TransactionInactiveError,
    UnknownCollectionError,
)
from friends_db.domain.services import ScopeScheduler
from friends_db.domain.value_objects import (
    RecordKey,
    TransactionId,
    TransactionMode,
    TransactionState,
    is_valid_key,
)
from friends_db.infrastructure.logging import get_logger
from friends_db.infrastructure.metrics import MetricsRegistry
from friends_db.infrastructure.tracing import trace_span
from friends_db.ports.outbound import RecordEngine

logger = get_logger(__name__)


@dataclass
class TransactionStats:
    """Statistics for transaction monitoring."""

    active_count: int
    committed_total: int
    aborted_total: int


class Transaction:
    """A scoped unit of work with a declared access mode."""

    def __init__(
        self,
        txn_id: TransactionId,
        scope: Iterable[str],
        mode: TransactionMode,
        engine: RecordEngine,
        scheduler: ScopeScheduler,
        loop: asyncio.AbstractEventLoop,
        metrics: MetricsRegistry,
        on_finish: Callable[[Transaction], Any] | None = None,
    ) -> None:
        """Create the transaction and queue it with the scheduler.

        Use Connection.transaction() rather than calling this directly.
        """
        self.txn_id = txn_id
        self.scope = tuple(dict.fromkeys(scope))
        self.mode = mode
        self._engine = engine
        self._scheduler = scheduler
        self._loop = loop
        self._metrics = metrics
        self._on_finish = on_finish

        self._state = TransactionState.IDLE
        self._queue: deque[tuple[Request[Any], Callable[[], Any]]] = deque()
        self._step_scheduled = False
        self._began = False
        self._error: BaseException | None = None
        self._complete_callbacks: list[Callable[[], Any]] = []
        self._abort_callbacks: list[Callable[[BaseException], Any]] = []
        self._waiters: list[asyncio.Future[None]] = []

        self._metrics.transactions_active.inc()
        self._scheduler.submit(txn_id, set(self.scope), mode.lock_mode, self._on_granted)

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def error(self) -> BaseException | None:
        """The reason the transaction aborted, if it did."""
        return self._error

    def collection(self, name: str) -> CollectionHandle:
        """Return a handle on a collection in this transaction's scope.

        Raises:
            TransactionInactiveError: If the transaction has finished
            UnknownCollectionError: If name is outside the scope
        """
        self._ensure_accepting()
        if name not in self.scope:
            raise UnknownCollectionError(name)
        return CollectionHandle(self, name)

    def abort(self) -> None:
        """Roll the transaction back.

        Raises:
            TransactionInactiveError: If the transaction has already finished
        """
        if self._state.is_terminal():
            raise TransactionInactiveError(f"transaction {self.txn_id} already finished")
        self._abort(TransactionAbortedError(f"transaction {self.txn_id} aborted by caller"))

    def on_complete(self, callback: Callable[[], Any]) -> Transaction:
        """Register a callback run after a successful commit."""
        if self._state is TransactionState.COMMITTED:
            self._loop.call_soon(callback)
        elif not self._state.is_terminal():
            self._complete_callbacks.append(callback)
        return self

    def on_abort(self, callback: Callable[[BaseException], Any]) -> Transaction:
        """Register a callback run with the abort reason."""
        if self._state is TransactionState.ABORTED:
            self._loop.call_soon(callback, self._error)
        elif not self._state.is_terminal():
            self._abort_callbacks.append(callback)
        return self

    async def done(self) -> None:
        """Wait until the transaction finishes.

        Raises:
            TransactionAbortedError: If the transaction aborted
        """
        if not self._state.is_terminal():
            waiter: asyncio.Future[None] = self._loop.create_future()
            self._waiters.append(waiter)
            await waiter
        if self._state is TransactionState.ABORTED:
            raise TransactionAbortedError(
                f"transaction {self.txn_id} aborted: {self._error}"
            ) from self._error

    def _ensure_accepting(self) -> None:
        if not self._state.accepts_requests():
            raise TransactionInactiveError(
                f"transaction {self.txn_id} is {self._state.name.lower()}"
            )

    def _issue(
        self, operation: str, collection: str, work: Callable[[], Any]
    ) -> Request[Any]:
        """Queue one unit of work and return its request."""
        self._ensure_accepting()
        request: Request[Any] = Request(
            operation, self._loop, source=collection, transaction=self
        )
        self._queue.append((request, work))
        if self._state is TransactionState.ACTIVE:
            self._schedule_step()
        return request

    def _on_granted(self) -> None:
        # Runs inside the scheduler's dispatch; defer to keep it re-entrancy free
        self._loop.call_soon(self._start)

    def _start(self) -> None:
        if self._state is not TransactionState.IDLE:
            return
        if self.mode.is_writable:
            try:
                self._engine.begin()
            except FriendsDBError as e:
                self._abort(e, engine_failure=True)
                return
            self._began = True
        self._state = TransactionState.ACTIVE
        logger.debug(
            "transaction_started",
            txn_id=self.txn_id,
            mode=self.mode.value,
            scope=list(self.scope),
        )
        self._schedule_step()

    def _schedule_step(self) -> None:
        if not self._step_scheduled:
            self._step_scheduled = True
            self._loop.call_soon(self._step)

    def _step(self) -> None:
        self._step_scheduled = False
        if self._state is not TransactionState.ACTIVE:
            return
        if not self._queue:
            self._commit()
            return

        request, work = self._queue.popleft()
        started = time.perf_counter()
        error: FriendsDBError | None = None
        try:
            with trace_span(
                f"friends_db.request.{request.operation}",
                {"db.collection": request.source or "", "db.txn_id": self.txn_id},
            ):
                result = work()
        except FriendsDBError as e:
            error = e
        except Exception as e:
            error = StorageError(str(e), operation=request.operation, collection=request.source)
            error.__cause__ = e
        finally:
            self._metrics.request_latency_seconds.labels(
                operation=request.operation
            ).observe(time.perf_counter() - started)

        if error is not None:
            self._metrics.requests_total.labels(
                operation=request.operation, status="error"
            ).inc()
            logger.warning(
                "request_failed",
                txn_id=self.txn_id,
                operation=request.operation,
                collection=request.source,
                error=str(error),
            )
            try:
                request.reject(error)
            finally:
                self._abort(error)
            return

        self._metrics.requests_total.labels(
            operation=request.operation, status="success"
        ).inc()
        try:
            request.resolve(result)
        finally:
            # Let callbacks and awaiting tasks issue follow-up requests first
            self._schedule_step()

    def _commit(self) -> None:
        self._state = TransactionState.COMMITTING
        if self._began:
            try:
                with trace_span(
                    "friends_db.transaction.commit",
                    {"db.txn_id": self.txn_id, "db.mode": self.mode.value},
                ):
                    self._engine.commit()
            except FriendsDBError as e:
                # A failed engine commit has already rolled back
                self._began = False
                self._abort(e)
                return
            self._began = False

        self._state = TransactionState.COMMITTED
        self._finish("commit")
        logger.debug("transaction_committed", txn_id=self.txn_id, mode=self.mode.value)

        callbacks, self._complete_callbacks = self._complete_callbacks, []
        self._abort_callbacks = []
        for callback in callbacks:
            self._invoke(callback)

    def _abort(self, error: BaseException, engine_failure: bool = False) -> None:
        """Roll back and fail every queued request.

        Queued requests get TransactionAbortedError, or a StorageError of
        their own when the engine refused to start the transaction.
        """
        if self._state.is_terminal():
            return
        self._state = TransactionState.ABORTED
        self._error = error

        if self._began:
            self._began = False
            try:
                self._engine.rollback()
            except FriendsDBError:
                logger.exception("transaction_rollback_failed", txn_id=self.txn_id)

        queued, self._queue = self._queue, deque()
        for request, _ in queued:
            if request.done():
                continue
            request.reject(self._queued_failure(request, error, engine_failure))

        self._finish("abort")
        logger.warning(
            "transaction_aborted",
            txn_id=self.txn_id,
            mode=self.mode.value,
            reason=str(error),
        )

        callbacks, self._abort_callbacks = self._abort_callbacks, []
        self._complete_callbacks = []
        for callback in callbacks:
            self._invoke(callback, error)

    def _queued_failure(
        self, request: Request[Any], error: BaseException, engine_failure: bool
    ) -> FriendsDBError:
        if engine_failure:
            failure: FriendsDBError = StorageError(
                str(error), operation=request.operation, collection=request.source
            )
            failure.__cause__ = error
            return failure
        return TransactionAbortedError(f"transaction {self.txn_id} aborted: {error}")

    def _finish(self, status: str) -> None:
        self._scheduler.release(self.txn_id)
        self._metrics.transactions_active.dec()
        self._metrics.transactions_total.labels(mode=self.mode.value, status=status).inc()
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()
        if self._on_finish is not None:
            self._on_finish(self)

    def _invoke(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("transaction_callback_failed", txn_id=self.txn_id)

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.txn_id}, mode={self.mode.value}, "
            f"scope={list(self.scope)}, state={self._state.name})"
        )


class CollectionHandle:
    """A collection as seen from inside one transaction.

    Every method issues a single request attributed to the transaction
    and returns it immediately.
    """

    def __init__(self, transaction: Transaction, name: str) -> None:
        self._transaction = transaction
        self._engine = transaction._engine
        self.name = name

    @property
    def transaction(self) -> Transaction:
        return self._transaction

    @property
    def key_path(self) -> str:
        return self._engine.get_schema(self.name).key_path

    @property
    def auto_increment(self) -> bool:
        return self._engine.get_schema(self.name).auto_increment

    def add(self, value: dict[str, Any]) -> Request[RecordKey]:
        """Insert a record; resolves with the store-assigned key."""
        self._require_writable()
        # Snapshot the value now so later caller mutations are not stored
        snapshot = dict(value)
        return self._transaction._issue(
            "add", self.name, lambda: self._engine.add(self.name, snapshot)
        )

    def get(self, key: int) -> Request[dict[str, Any] | None]:
        """Read one record; resolves with None when the key is absent."""
        self._transaction._ensure_accepting()
        checked = _check_key(key)
        return self._transaction._issue(
            "get", self.name, lambda: self._engine.get(self.name, checked)
        )

    def get_all(self) -> Request[list[dict[str, Any]]]:
        """Read every record in key order."""
        self._transaction._ensure_accepting()
        return self._transaction._issue(
            "get_all", self.name, lambda: self._engine.get_all(self.name)
        )

    def delete(self, key: int) -> Request[int]:
        """Delete one record; resolves with the number of records removed."""
        self._require_writable()
        checked = _check_key(key)
        return self._transaction._issue(
            "delete", self.name, lambda: self._engine.delete(self.name, checked)
        )

    def _require_writable(self) -> None:
        self._transaction._ensure_accepting()
        if not self._transaction.mode.is_writable:
            raise ReadOnlyError(
                f"cannot write to {self.name!r} in a readonly transaction"
            )

    def __repr__(self) -> str:
        return f"CollectionHandle({self.name!r}, txn={self._transaction.txn_id})"


def _check_key(key: Any) -> RecordKey:
    if not is_valid_key(key):
        raise DataError(f"key must be a positive integer, got {key!r}")
    return RecordKey(key)
