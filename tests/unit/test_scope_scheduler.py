"""Unit tests for ScopeScheduler."""

from __future__ import annotations

import pytest

from friends_db.domain.services import ScopeScheduler
from friends_db.domain.value_objects import LockMode, TransactionId


class GrantLog:
    """Records the order in which transactions are granted."""

    def __init__(self) -> None:
        self.granted: list[int] = []

    def callback(self, txn_id: int):
        return lambda: self.granted.append(txn_id)


@pytest.mark.unit
class TestScopeSchedulerBasic:
    """Basic scheduling tests."""

    @pytest.fixture
    def scheduler(self) -> ScopeScheduler:
        return ScopeScheduler()

    @pytest.fixture
    def log(self) -> GrantLog:
        return GrantLog()

    def submit(
        self,
        scheduler: ScopeScheduler,
        log: GrantLog,
        txn_id: int,
        mode: LockMode,
        scope: set[str] | None = None,
    ) -> None:
        scheduler.submit(
            TransactionId(txn_id), scope or {"friends"}, mode, log.callback(txn_id)
        )

    def test_first_request_granted_immediately(
        self, scheduler: ScopeScheduler, log: GrantLog
    ) -> None:
        self.submit(scheduler, log, 1, LockMode.EXCLUSIVE)

        assert log.granted == [1]
        assert scheduler.is_granted(TransactionId(1))

    def test_readers_overlap(self, scheduler: ScopeScheduler, log: GrantLog) -> None:
        """Shared scopes are granted together."""
        self.submit(scheduler, log, 1, LockMode.SHARED)
        self.submit(scheduler, log, 2, LockMode.SHARED)

        assert log.granted == [1, 2]

    def test_writer_waits_for_reader(self, scheduler: ScopeScheduler, log: GrantLog) -> None:
        self.submit(scheduler, log, 1, LockMode.SHARED)
        self.submit(scheduler, log, 2, LockMode.EXCLUSIVE)

        assert log.granted == [1]

        scheduler.release(TransactionId(1))

        assert log.granted == [1, 2]

    def test_writers_serialize(self, scheduler: ScopeScheduler, log: GrantLog) -> None:
        self.submit(scheduler, log, 1, LockMode.EXCLUSIVE)
        self.submit(scheduler, log, 2, LockMode.EXCLUSIVE)

        assert log.granted == [1]

        scheduler.release(TransactionId(1))

        assert log.granted == [1, 2]

    def test_later_reader_does_not_overtake_waiting_writer(
        self, scheduler: ScopeScheduler, log: GrantLog
    ) -> None:
        """Grants follow submission order across conflicting requests."""
        self.submit(scheduler, log, 1, LockMode.SHARED)
        self.submit(scheduler, log, 2, LockMode.EXCLUSIVE)
        self.submit(scheduler, log, 3, LockMode.SHARED)

        assert log.granted == [1]

        scheduler.release(TransactionId(1))
        assert log.granted == [1, 2]

        scheduler.release(TransactionId(2))
        assert log.granted == [1, 2, 3]

    def test_disjoint_readers_and_writer(
        self, scheduler: ScopeScheduler, log: GrantLog
    ) -> None:
        """A reader of another collection is not blocked by a writer."""
        self.submit(scheduler, log, 1, LockMode.EXCLUSIVE, {"friends"})
        self.submit(scheduler, log, 2, LockMode.SHARED, {"notes"})

        assert log.granted == [1, 2]

    def test_disjoint_writers_share_writer_slot(
        self, scheduler: ScopeScheduler, log: GrantLog
    ) -> None:
        """Only one readwrite transaction runs at a time."""
        self.submit(scheduler, log, 1, LockMode.EXCLUSIVE, {"friends"})
        self.submit(scheduler, log, 2, LockMode.EXCLUSIVE, {"notes"})

        assert log.granted == [1]

        scheduler.release(TransactionId(1))

        assert log.granted == [1, 2]

    def test_release_of_waiting_request(
        self, scheduler: ScopeScheduler, log: GrantLog
    ) -> None:
        """A waiting request can be withdrawn without ever being granted."""
        self.submit(scheduler, log, 1, LockMode.EXCLUSIVE)
        self.submit(scheduler, log, 2, LockMode.EXCLUSIVE)
        self.submit(scheduler, log, 3, LockMode.SHARED)

        assert scheduler.release(TransactionId(2)) is True
        scheduler.release(TransactionId(1))

        assert log.granted == [1, 3]

    def test_release_unknown(self, scheduler: ScopeScheduler) -> None:
        assert scheduler.release(TransactionId(42)) is False

    def test_duplicate_submit_rejected(
        self, scheduler: ScopeScheduler, log: GrantLog
    ) -> None:
        self.submit(scheduler, log, 1, LockMode.SHARED)

        with pytest.raises(ValueError):
            self.submit(scheduler, log, 1, LockMode.SHARED)

    def test_stats(self, scheduler: ScopeScheduler, log: GrantLog) -> None:
        self.submit(scheduler, log, 1, LockMode.EXCLUSIVE)
        self.submit(scheduler, log, 2, LockMode.SHARED)

        stats = scheduler.get_stats()

        assert stats.running == 1
        assert stats.waiting == 1
        assert stats.granted_total == 1

    def test_reentrant_release_from_grant(self, scheduler: ScopeScheduler) -> None:
        """A grant callback may release its own scope straight away."""
        granted: list[int] = []

        def release_immediately() -> None:
            granted.append(1)
            scheduler.release(TransactionId(1))

        scheduler.submit(TransactionId(2), {"friends"}, LockMode.EXCLUSIVE, lambda: granted.append(2))
        scheduler.release(TransactionId(2))
        scheduler.submit(TransactionId(1), {"friends"}, LockMode.EXCLUSIVE, release_immediately)
        scheduler.submit(TransactionId(3), {"friends"}, LockMode.EXCLUSIVE, lambda: granted.append(3))

        assert granted == [2, 1, 3]


@pytest.mark.unit
class TestLockMode:
    def test_compatibility(self) -> None:
        assert LockMode.SHARED.is_compatible(LockMode.SHARED)
        assert not LockMode.SHARED.is_compatible(LockMode.EXCLUSIVE)
        assert not LockMode.EXCLUSIVE.is_compatible(LockMode.SHARED)
        assert not LockMode.EXCLUSIVE.is_compatible(LockMode.EXCLUSIVE)
