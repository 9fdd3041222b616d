"""Asynchronous request results.

A Request is the single asynchronous result type of the system. It is
returned immediately by every operation and resolves exactly once, either
with a result value or with a typed error. Completion can be observed in
two equivalent ways:

    request = store.insert("Anna", 25)
    request.on_success(lambda key: ...).on_error(lambda error: ...)

    key = await request          # raises the error on failure

Callbacks run on the event loop thread, synchronously at the moment the
request resolves, so a callback may issue further requests into the same
transaction before it auto-commits.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Generator, Generic, TypeVar

from friends_db.domain.value_objects import RequestState
from friends_db.infrastructure.logging import get_logger

if TYPE_CHECKING:
    from friends_db.application.transaction import Transaction

T = TypeVar("T")
U = TypeVar("U")

logger = get_logger(__name__)


class Request(Generic[T]):
    """A single asynchronous unit of work resolving exactly once."""

    def __init__(
        self,
        operation: str,
        loop: asyncio.AbstractEventLoop,
        source: str | None = None,
        transaction: Transaction | None = None,
    ) -> None:
        """Initialize a pending request.

        Args:
            operation: Name of the work, e.g. "add" or "open"
            loop: Event loop the request resolves on
            source: What the request targets (collection or database name)
            transaction: The transaction the request was issued in, if any
        """
        self.operation = operation
        self.source = source
        self.transaction = transaction
        self._loop = loop
        self._future: asyncio.Future[T] = loop.create_future()
        self._success_callbacks: list[Callable[[T], Any]] = []
        self._error_callbacks: list[Callable[[BaseException], Any]] = []

    @property
    def state(self) -> RequestState:
        return RequestState.DONE if self._future.done() else RequestState.PENDING

    def done(self) -> bool:
        return self._future.done()

    @property
    def result(self) -> T:
        """The success value.

        Raises:
            asyncio.InvalidStateError: If the request is still pending
            Exception: The request's error if it failed
        """
        return self._future.result()

    @property
    def error(self) -> BaseException | None:
        """The failure, or None if the request succeeded.

        Raises:
            asyncio.InvalidStateError: If the request is still pending
        """
        return self._future.exception()

    def on_success(self, callback: Callable[[T], Any]) -> Request[T]:
        """Register a callback receiving the result value.

        If the request already succeeded the callback is scheduled on the
        loop instead of being called immediately.
        """
        if not self._future.done():
            self._success_callbacks.append(callback)
        elif self._future.exception() is None:
            self._loop.call_soon(self._invoke, callback, self._future.result())
        return self

    def on_error(self, callback: Callable[[BaseException], Any]) -> Request[T]:
        """Register a callback receiving the error.

        If the request already failed the callback is scheduled on the
        loop instead of being called immediately.
        """
        if not self._future.done():
            self._error_callbacks.append(callback)
        else:
            error = self._future.exception()
            if error is not None:
                self._loop.call_soon(self._invoke, callback, error)
        return self

    def resolve(self, value: T) -> None:
        """Complete the request successfully and run success callbacks.

        Raises:
            asyncio.InvalidStateError: If the request already resolved
        """
        self._future.set_result(value)
        callbacks, self._success_callbacks = self._success_callbacks, []
        self._error_callbacks = []
        for callback in callbacks:
            self._invoke(callback, value)

    def reject(self, error: BaseException) -> None:
        """Complete the request with an error and run error callbacks.

        Raises:
            asyncio.InvalidStateError: If the request already resolved
        """
        self._future.set_exception(error)
        callbacks, self._error_callbacks = self._error_callbacks, []
        self._success_callbacks = []
        if callbacks:
            # The error has been delivered; asyncio need not warn about it
            self._future.exception()
        for callback in callbacks:
            self._invoke(callback, error)

    def then(self, transform: Callable[[T], U]) -> Request[U]:
        """Return a request resolving with transform applied to this result.

        The derived request resolves in the same callback as this one and
        fails with this request's error, or with whatever transform raises.
        """
        derived: Request[U] = Request(
            self.operation, self._loop, source=self.source, transaction=self.transaction
        )

        def _forward(value: T) -> None:
            try:
                mapped = transform(value)
            except Exception as e:
                derived.reject(e)
                return
            derived.resolve(mapped)

        self.on_success(_forward)
        self.on_error(derived.reject)
        return derived

    def _invoke(self, callback: Callable[[Any], Any], argument: Any) -> None:
        try:
            callback(argument)
        except Exception:
            logger.exception(
                "request_callback_failed",
                operation=self.operation,
                source=self.source,
            )

    def __await__(self) -> Generator[Any, None, T]:
        # Awaiter cancellation leaves the request pending for its transaction
        return asyncio.shield(self._future).__await__()

    def __repr__(self) -> str:
        return f"Request({self.operation!r}, source={self.source!r}, state={self.state.name})"
