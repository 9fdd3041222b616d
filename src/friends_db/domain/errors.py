"""Error taxonomy for the friends database.

Errors fall into two groups:

- Reported asynchronously, through a request or open failure callback:
  OpenFailureError, RequestFailureError and its subclasses,
  TransactionAbortedError.
- Raised synchronously at the call site, before any transaction exists:
  NotReadyError, DataError, ReadOnlyError, TransactionInactiveError,
  UnknownCollectionError.

A read by key that matches nothing is not an error; it resolves to None.
"""

from __future__ import annotations


class FriendsDBError(Exception):
    """Base exception for all friends database errors."""


class NotReadyError(FriendsDBError):
    """Raised when an operation runs before the connection has opened.

    Also raised for the whole process lifetime once opening has failed.
    """

    def __init__(self, message: str = "database not ready") -> None:
        super().__init__(message)


class OpenFailureError(FriendsDBError):
    """The engine could not open or upgrade the database."""

    def __init__(
        self,
        message: str,
        database: str | None = None,
        version: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.database = database
        self.version = version
        self.cause = cause


class VersionError(FriendsDBError):
    """Requested schema version is lower than the stored one."""

    def __init__(self, requested: int, stored: int) -> None:
        super().__init__(
            f"requested version {requested} is less than the stored version {stored}"
        )
        self.requested = requested
        self.stored = stored


class RequestFailureError(FriendsDBError):
    """A single request was rejected by the engine.

    Other in-flight or future requests are not affected.
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        collection: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.collection = collection


class ConstraintError(RequestFailureError):
    """A write violated a uniqueness constraint (duplicate key or collection)."""


class StorageError(RequestFailureError):
    """The underlying storage failed while executing a request."""


class TransactionAbortedError(FriendsDBError):
    """The transaction was aborted before the request could run."""


class DataError(FriendsDBError):
    """Invalid input: a malformed key or record value."""


class ReadOnlyError(FriendsDBError):
    """A write was issued inside a readonly transaction."""


class TransactionInactiveError(FriendsDBError):
    """A request was issued against a transaction that has already finished."""


class UnknownCollectionError(FriendsDBError):
    """The named collection does not exist or is outside the transaction scope."""

    def __init__(self, name: str) -> None:
        super().__init__(f"collection {name!r} not found")
        self.name = name
