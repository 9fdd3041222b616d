"""Scope scheduler for transaction ordering.

Every transaction declares a scope (a set of collection names) and a mode.
Before it may run, the scheduler must grant it a lock on that scope:

    - readonly transactions take SHARED locks and may run together
    - readwrite transactions take EXCLUSIVE locks on their collections and
      on the engine writer slot, so at most one of them runs at a time

Grants follow creation order. A transaction is granted only when no
earlier-submitted transaction (running or still waiting) holds or wants a
conflicting lock on an overlapping scope. A later reader therefore never
overtakes an earlier writer, and a writer never starves behind a stream
of readers submitted after it.

Thread Safety:
    The scheduler is confined to the event loop thread. All calls happen
    from loop callbacks, so no locking is needed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from friends_db.domain.value_objects import LockMode, TransactionId

WRITER_SLOT = "\x00writer"
"""Pseudo-resource locked exclusively by every readwrite transaction."""


@dataclass
class ScopeRequest:
    """A request for a scope lock by a transaction."""

    txn_id: TransactionId
    scope: frozenset[str]
    mode: LockMode
    on_grant: Callable[[], None]
    granted: bool = False

    def conflicts_with(self, other: ScopeRequest) -> bool:
        """Check if both requests cannot be granted at the same time."""
        if not self.scope & other.scope:
            return False
        return not self.mode.is_compatible(other.mode)


@dataclass
class SchedulerStats:
    """Statistics for scheduler monitoring."""

    running: int
    waiting: int
    granted_total: int


class ScopeScheduler:
    """Grants transaction scopes in creation order."""

    def __init__(self) -> None:
        # Submitted and not yet released, in submission order
        self._queue: list[ScopeRequest] = []
        self._granted_total = 0
        self._dispatching = False

    def submit(
        self,
        txn_id: TransactionId,
        scope: frozenset[str] | set[str],
        mode: LockMode,
        on_grant: Callable[[], None],
    ) -> None:
        """Queue a scope request.

        ``on_grant`` is called once, possibly before this method returns,
        when the scope becomes available.

        Args:
            txn_id: The requesting transaction
            scope: Collection names the transaction will touch
            mode: SHARED for readonly, EXCLUSIVE for readwrite
            on_grant: Called when the lock is granted

        Raises:
            ValueError: If the transaction already has a request queued
        """
        if any(r.txn_id == txn_id for r in self._queue):
            raise ValueError(f"transaction {txn_id} already submitted")

        resources = frozenset(scope)
        if mode is LockMode.EXCLUSIVE:
            resources = resources | {WRITER_SLOT}

        self._queue.append(ScopeRequest(txn_id, resources, mode, on_grant))
        self._dispatch()

    def release(self, txn_id: TransactionId) -> bool:
        """Release the scope held or wanted by a transaction.

        Returns:
            True if the transaction had a request queued
        """
        for i, request in enumerate(self._queue):
            if request.txn_id == txn_id:
                del self._queue[i]
                self._dispatch()
                return True
        return False

    def is_granted(self, txn_id: TransactionId) -> bool:
        return any(r.txn_id == txn_id and r.granted for r in self._queue)

    def get_stats(self) -> SchedulerStats:
        running = sum(1 for r in self._queue if r.granted)
        return SchedulerStats(
            running=running,
            waiting=len(self._queue) - running,
            granted_total=self._granted_total,
        )

    def _dispatch(self) -> None:
        """Grant every waiting request that no earlier request blocks."""
        # on_grant may submit or release re-entrantly; the outer loop
        # picks up whatever changed.
        if self._dispatching:
            return
        self._dispatching = True
        try:
            progress = True
            while progress:
                progress = False
                for i, request in enumerate(self._queue):
                    if request.granted:
                        continue
                    earlier = self._queue[:i]
                    if any(request.conflicts_with(other) for other in earlier):
                        continue
                    request.granted = True
                    self._granted_total += 1
                    request.on_grant()
                    progress = True
                    break
        finally:
            self._dispatching = False
