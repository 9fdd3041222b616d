"""Domain services for business logic.

Services implement domain logic that doesn't naturally fit within a
single entity.
"""

from friends_db.domain.services.scope_scheduler import (
    WRITER_SLOT,
    SchedulerStats,
    ScopeRequest,
    ScopeScheduler,
)

__all__ = [
    "WRITER_SLOT",
    "SchedulerStats",
    "ScopeRequest",
    "ScopeScheduler",
]
