"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for storage operations.
This allows us to:
1. Back the core with any database that offers single-row atomic updates
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every multi-record transition the domain needs (activating a couple and
stamping both members, dissolving a couple, updating a goal together with
its ledger row) is ONE interface method. Implementations must apply each
of those all-or-nothing, conditioned on the record's ``version``.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from couple_finance.models.audit import AuditEvent
from couple_finance.models.contribution import ContributionEvent
from couple_finance.models.couple import Couple, UserAccount
from couple_finance.models.expense import Expense
from couple_finance.models.goal import Goal


class UserDirectoryInterface(ABC):
    """
    Read access to the identity collaborator's users.

    The couple_id on a user is written only through
    CoupleStorageInterface.commit_activation / commit_dissolution.
    """

    @abstractmethod
    async def get_user(self, user_id: UUID) -> Optional[UserAccount]:
        pass

    @abstractmethod
    async def find_user_by_email(self, email: str) -> Optional[UserAccount]:
        """Case-insensitive lookup by email."""
        pass


class CoupleStorageInterface(ABC):
    """Abstract interface for couple storage operations."""

    @abstractmethod
    async def create_couple(self, couple: Couple) -> Couple:
        """
        Insert a new (pending) couple.

        Raises:
            DuplicateError: If a couple with this id exists
        """
        pass

    @abstractmethod
    async def get_couple(self, couple_id: UUID) -> Optional[Couple]:
        pass

    @abstractmethod
    async def find_pending_by_token(self, token: str) -> Optional[Couple]:
        """
        Find the pending couple holding this invitation token.

        Expired invitations ARE returned; expiry is judged by the caller.
        """
        pass

    @abstractmethod
    async def find_active_couple_of(self, user_id: UUID) -> Optional[Couple]:
        pass

    @abstractmethod
    async def list_pending_for_invitee(self, user_id: UUID) -> list[Couple]:
        """Pending couples where the user is member_b, newest first."""
        pass

    @abstractmethod
    async def commit_activation(self, couple: Couple, expected_version: int) -> Couple:
        """
        Atomically store the activated couple and set couple_id on both members.

        Applies only if the stored record is still pending at expected_version
        and neither member belongs to another couple.

        Returns:
            The stored couple (version incremented)

        Raises:
            VersionConflictError: Record missing, no longer pending, or changed
            MembershipConflictError: A member already has a couple
        """
        pass

    @abstractmethod
    async def commit_dissolution(self, couple_id: UUID, expected_version: int) -> None:
        """
        Atomically clear couple_id on both members and delete the couple.

        Raises:
            VersionConflictError: Record missing or changed since it was read
        """
        pass

    @abstractmethod
    async def update_couple(self, couple: Couple, expected_version: int) -> Couple:
        """
        Compare-and-set update of a couple's own fields.

        Raises:
            VersionConflictError: Record missing or changed since it was read
        """
        pass


class ExpenseStorageInterface(ABC):
    """Abstract interface for expense storage operations."""

    @abstractmethod
    async def save_expense(self, expense: Expense) -> Expense:
        pass

    @abstractmethod
    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        pass

    @abstractmethod
    async def update_expense(self, expense: Expense, expected_version: int) -> Expense:
        """
        Raises:
            VersionConflictError: Record missing or changed since it was read
        """
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_expenses(
        self,
        owner_id: Optional[UUID] = None,
        couple_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        """
        List expenses owned by owner_id OR attributed to couple_id.

        Both None lists everything. Ordered by expense_date, newest first.
        """
        pass


class GoalStorageInterface(ABC):
    """Abstract interface for goal storage operations."""

    @abstractmethod
    async def save_goal(self, goal: Goal) -> Goal:
        pass

    @abstractmethod
    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        pass

    @abstractmethod
    async def update_goal(self, goal: Goal, expected_version: int) -> Goal:
        """
        Raises:
            VersionConflictError: Record missing or changed since it was read
        """
        pass

    @abstractmethod
    async def delete_goal(self, goal_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_goals(
        self,
        owner_id: Optional[UUID] = None,
        couple_id: Optional[UUID] = None,
    ) -> list[Goal]:
        """List goals owned by owner_id OR shared with couple_id, newest first."""
        pass


class ContributionStorageInterface(ABC):
    """Abstract interface for the contribution ledger."""

    @abstractmethod
    async def commit_contribution(
        self,
        goal: Goal,
        expected_version: int,
        event: ContributionEvent,
    ) -> Goal:
        """
        Atomically update the goal and append its ledger event.

        Raises:
            VersionConflictError: Goal missing or changed since it was read
        """
        pass

    @abstractmethod
    async def list_contributions(self, goal_id: UUID) -> list[ContributionEvent]:
        """All events for a goal, newest first."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Related events in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Events for one entity in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class RecordNotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class VersionConflictError(StorageError):
    """The record changed (or vanished) since it was read."""
    pass


class MembershipConflictError(StorageError):
    """A couple member already belongs to another couple."""
    pass
