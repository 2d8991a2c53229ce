"""
In-Memory Storage

A single-process implementation of every storage interface, used by the
test suite and by embedders that do not need durability.

All reads return deep copies and all writes store deep copies, so callers
can never mutate stored state without going through a commit. One
asyncio.Lock serialises every write; each commit validates all of its
preconditions before touching anything, which makes it all-or-nothing.
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

from couple_finance.models.audit import AuditEvent
from couple_finance.models.contribution import ContributionEvent
from couple_finance.models.couple import Couple, CoupleStatus, UserAccount
from couple_finance.models.expense import Expense
from couple_finance.models.goal import Goal
from couple_finance.services.storage.interface import (
    AuditStorageInterface,
    ContributionStorageInterface,
    CoupleStorageInterface,
    DuplicateError,
    ExpenseStorageInterface,
    GoalStorageInterface,
    MembershipConflictError,
    UserDirectoryInterface,
    VersionConflictError,
)


class InMemoryStorage(
    UserDirectoryInterface,
    CoupleStorageInterface,
    ExpenseStorageInterface,
    GoalStorageInterface,
    ContributionStorageInterface,
):
    """Dictionary-backed storage for users, couples, expenses, goals and ledger rows."""

    def __init__(self, users: Optional[list[UserAccount]] = None):
        self._lock = asyncio.Lock()
        self._users: dict[UUID, UserAccount] = {}
        self._couples: dict[UUID, Couple] = {}
        self._expenses: dict[UUID, Expense] = {}
        self._goals: dict[UUID, Goal] = {}
        self._contributions: dict[UUID, list[ContributionEvent]] = {}

        for user in users or []:
            self.add_user(user)

    # =========================================================================
    # USERS
    # =========================================================================

    def add_user(self, user: UserAccount) -> UserAccount:
        """Seed a user. Not part of the directory interface."""
        self._users[user.id] = user.model_copy(deep=True)
        return user

    async def get_user(self, user_id: UUID) -> Optional[UserAccount]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def find_user_by_email(self, email: str) -> Optional[UserAccount]:
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.email.lower() == wanted:
                return user.model_copy(deep=True)
        return None

    # =========================================================================
    # COUPLES
    # =========================================================================

    async def create_couple(self, couple: Couple) -> Couple:
        async with self._lock:
            if couple.id in self._couples:
                raise DuplicateError(f"Couple already exists: {couple.id}")
            self._couples[couple.id] = couple.model_copy(deep=True)
            return couple.model_copy(deep=True)

    async def get_couple(self, couple_id: UUID) -> Optional[Couple]:
        couple = self._couples.get(couple_id)
        return couple.model_copy(deep=True) if couple else None

    async def find_pending_by_token(self, token: str) -> Optional[Couple]:
        for couple in self._couples.values():
            if couple.status == CoupleStatus.PENDING and couple.invitation_token == token:
                return couple.model_copy(deep=True)
        return None

    async def find_active_couple_of(self, user_id: UUID) -> Optional[Couple]:
        for couple in self._couples.values():
            if couple.status == CoupleStatus.ACTIVE and couple.is_member(user_id):
                return couple.model_copy(deep=True)
        return None

    async def list_pending_for_invitee(self, user_id: UUID) -> list[Couple]:
        pending = [
            couple.model_copy(deep=True)
            for couple in self._couples.values()
            if couple.status == CoupleStatus.PENDING and couple.member_b == user_id
        ]
        return sorted(pending, key=lambda c: c.created_at, reverse=True)

    async def commit_activation(self, couple: Couple, expected_version: int) -> Couple:
        async with self._lock:
            stored = self._couples.get(couple.id)
            if (
                stored is None
                or stored.version != expected_version
                or stored.status != CoupleStatus.PENDING
            ):
                raise VersionConflictError(f"Couple {couple.id} changed before activation")

            members = []
            for member_id in couple.members:
                user = self._users.get(member_id)
                if user is None:
                    raise MembershipConflictError(f"User {member_id} no longer exists")
                if user.couple_id is not None:
                    raise MembershipConflictError(f"User {member_id} already has a couple")
                members.append(user)

            committed = couple.model_copy(deep=True, update={"version": expected_version + 1})
            self._couples[couple.id] = committed
            for user in members:
                self._users[user.id] = user.model_copy(update={"couple_id": couple.id})
            return committed.model_copy(deep=True)

    async def commit_dissolution(self, couple_id: UUID, expected_version: int) -> None:
        async with self._lock:
            stored = self._couples.get(couple_id)
            if stored is None or stored.version != expected_version:
                raise VersionConflictError(f"Couple {couple_id} changed before dissolution")

            for member_id in stored.members:
                user = self._users.get(member_id)
                if user is not None and user.couple_id == couple_id:
                    self._users[member_id] = user.model_copy(update={"couple_id": None})
            del self._couples[couple_id]

    async def update_couple(self, couple: Couple, expected_version: int) -> Couple:
        async with self._lock:
            stored = self._couples.get(couple.id)
            if stored is None or stored.version != expected_version:
                raise VersionConflictError(f"Couple {couple.id} changed before update")
            committed = couple.model_copy(deep=True, update={"version": expected_version + 1})
            self._couples[couple.id] = committed
            return committed.model_copy(deep=True)

    # =========================================================================
    # EXPENSES
    # =========================================================================

    async def save_expense(self, expense: Expense) -> Expense:
        async with self._lock:
            if expense.id in self._expenses:
                raise DuplicateError(f"Expense already exists: {expense.id}")
            self._expenses[expense.id] = expense.model_copy(deep=True)
            return expense.model_copy(deep=True)

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        expense = self._expenses.get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    async def update_expense(self, expense: Expense, expected_version: int) -> Expense:
        async with self._lock:
            stored = self._expenses.get(expense.id)
            if stored is None or stored.version != expected_version:
                raise VersionConflictError(f"Expense {expense.id} changed before update")
            committed = expense.model_copy(deep=True, update={"version": expected_version + 1})
            self._expenses[expense.id] = committed
            return committed.model_copy(deep=True)

    async def delete_expense(self, expense_id: UUID) -> bool:
        async with self._lock:
            return self._expenses.pop(expense_id, None) is not None

    async def list_expenses(
        self,
        owner_id: Optional[UUID] = None,
        couple_id: Optional[UUID] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> list[Expense]:
        results = []
        for expense in self._expenses.values():
            if owner_id is not None or couple_id is not None:
                owned = owner_id is not None and expense.owner_id == owner_id
                shared = couple_id is not None and expense.couple_id == couple_id
                if not (owned or shared):
                    continue
            if date_from and expense.expense_date < date_from:
                continue
            if date_to and expense.expense_date > date_to:
                continue
            results.append(expense.model_copy(deep=True))

        results.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return results

    # =========================================================================
    # GOALS
    # =========================================================================

    async def save_goal(self, goal: Goal) -> Goal:
        async with self._lock:
            if goal.id in self._goals:
                raise DuplicateError(f"Goal already exists: {goal.id}")
            self._goals[goal.id] = goal.model_copy(deep=True)
            return goal.model_copy(deep=True)

    async def get_goal(self, goal_id: UUID) -> Optional[Goal]:
        goal = self._goals.get(goal_id)
        return goal.model_copy(deep=True) if goal else None

    async def update_goal(self, goal: Goal, expected_version: int) -> Goal:
        async with self._lock:
            return self._replace_goal(goal, expected_version)

    async def delete_goal(self, goal_id: UUID) -> bool:
        async with self._lock:
            return self._goals.pop(goal_id, None) is not None

    async def list_goals(
        self,
        owner_id: Optional[UUID] = None,
        couple_id: Optional[UUID] = None,
    ) -> list[Goal]:
        results = []
        for goal in self._goals.values():
            if owner_id is not None or couple_id is not None:
                owned = owner_id is not None and goal.owner_id == owner_id
                shared = couple_id is not None and goal.couple_id == couple_id
                if not (owned or shared):
                    continue
            results.append(goal.model_copy(deep=True))

        results.sort(key=lambda g: g.created_at, reverse=True)
        return results

    def _replace_goal(self, goal: Goal, expected_version: int) -> Goal:
        """Caller must hold the lock."""
        stored = self._goals.get(goal.id)
        if stored is None or stored.version != expected_version:
            raise VersionConflictError(f"Goal {goal.id} changed before update")
        committed = goal.model_copy(deep=True, update={"version": expected_version + 1})
        self._goals[goal.id] = committed
        return committed.model_copy(deep=True)

    # =========================================================================
    # CONTRIBUTIONS
    # =========================================================================

    async def commit_contribution(
        self,
        goal: Goal,
        expected_version: int,
        event: ContributionEvent,
    ) -> Goal:
        async with self._lock:
            committed = self._replace_goal(goal, expected_version)
            self._contributions.setdefault(goal.id, []).append(event)
            return committed

    async def list_contributions(self, goal_id: UUID) -> list[ContributionEvent]:
        events = list(self._contributions.get(goal_id, []))
        events.reverse()
        return events


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log kept in a list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
