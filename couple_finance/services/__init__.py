"""
Services package.

Infrastructure services (storage, rate limiting) are re-exported here.
The domain services live in their own modules:
couples, expenses, goals and ledger.
"""

from couple_finance.services.ratelimit import RateLimiter, SlidingWindowRateLimiter
from couple_finance.services.storage import (
    AuditStorageInterface,
    ContributionStorageInterface,
    CoupleStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    GoalStorageInterface,
    InMemoryAuditStorage,
    InMemoryStorage,
    MembershipConflictError,
    RecordNotFoundError,
    StorageError,
    UserDirectoryInterface,
    VersionConflictError,
)

__all__ = [
    # Rate limiting
    "RateLimiter",
    "SlidingWindowRateLimiter",
    # Storage services
    "AuditStorageInterface",
    "ContributionStorageInterface",
    "CoupleStorageInterface",
    "DuplicateError",
    "ExpenseStorageInterface",
    "GoalStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryStorage",
    "MembershipConflictError",
    "RecordNotFoundError",
    "StorageError",
    "UserDirectoryInterface",
    "VersionConflictError",
]
