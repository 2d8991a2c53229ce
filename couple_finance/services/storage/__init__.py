"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Ships an in-memory backend; any database offering single-record atomic
compare-and-set can implement the interfaces.
"""

from couple_finance.services.storage.interface import (
    AuditStorageInterface,
    ContributionStorageInterface,
    CoupleStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    GoalStorageInterface,
    MembershipConflictError,
    RecordNotFoundError,
    StorageError,
    UserDirectoryInterface,
    VersionConflictError,
)
from couple_finance.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "ContributionStorageInterface",
    "CoupleStorageInterface",
    "ExpenseStorageInterface",
    "GoalStorageInterface",
    "UserDirectoryInterface",
    # Exceptions
    "DuplicateError",
    "MembershipConflictError",
    "RecordNotFoundError",
    "StorageError",
    "VersionConflictError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryStorage",
]
