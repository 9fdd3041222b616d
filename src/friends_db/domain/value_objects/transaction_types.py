"""Transaction-related types and enumerations.

These types define the access modes and lifecycle states of transactions
and requests, and the state of the process-wide connection.
"""

from __future__ import annotations

from enum import Enum, auto


class TransactionMode(Enum):
    """Declared access mode of a transaction.

    READONLY transactions may run alongside each other. READWRITE
    transactions are exclusive on every collection in their scope.
    """

    READONLY = "readonly"
    READWRITE = "readwrite"

    @property
    def lock_mode(self) -> LockMode:
        """Return the scope lock a transaction in this mode must hold."""
        if self is TransactionMode.READWRITE:
            return LockMode.EXCLUSIVE
        return LockMode.SHARED

    @property
    def is_writable(self) -> bool:
        return self is TransactionMode.READWRITE


class TransactionState(Enum):
    """Transaction lifecycle states.

    State machine:

        IDLE ──scope granted──> ACTIVE ──all requests done──> COMMITTING
                                  │                               │
                          abort()/request error            commit ok│commit failed
                                  │                               │   │
                                  v                               v   v
                               ABORTED <───────────────────── COMMITTED / ABORTED

    Requests may be issued while IDLE; they run once the scope is granted.
    """

    IDLE = auto()
    """Transaction is waiting for the scheduler to grant its scope."""

    ACTIVE = auto()
    """Transaction is running and accepts new requests."""

    COMMITTING = auto()
    """All requests have finished and the engine commit is in progress."""

    COMMITTED = auto()
    """Transaction has successfully committed."""

    ABORTED = auto()
    """Transaction has been aborted. All its writes have been rolled back."""

    def is_terminal(self) -> bool:
        """Check if this is a terminal state (COMMITTED or ABORTED)."""
        return self in (TransactionState.COMMITTED, TransactionState.ABORTED)

    def accepts_requests(self) -> bool:
        """Check if new requests may still be issued."""
        return self in (TransactionState.IDLE, TransactionState.ACTIVE)


class RequestState(Enum):
    """Request lifecycle states. A request resolves exactly once."""

    PENDING = auto()
    DONE = auto()


class ConnectionState(Enum):
    """State of the process-wide connection.

        CLOSED ──open()──> OPENING ──success──> OPEN
                              │
                           failure
                              v
                           FAILED (permanent)
    """

    CLOSED = auto()
    OPENING = auto()
    OPEN = auto()
    FAILED = auto()


class LockMode(Enum):
    """Scope lock modes.

    Lock compatibility matrix:

              | S | X |
        ------|---|---|
        S     | Y | N |
        X     | N | N |
    """

    SHARED = auto()
    """Shared lock (S) - held by readonly transactions."""

    EXCLUSIVE = auto()
    """Exclusive lock (X) - held by readwrite transactions."""

    def is_compatible(self, other: LockMode) -> bool:
        """Check if this lock mode is compatible with another.

        Args:
            other: The other lock mode to check compatibility with

        Returns:
            True if the locks can be held simultaneously
        """
        return self is LockMode.SHARED and other is LockMode.SHARED
