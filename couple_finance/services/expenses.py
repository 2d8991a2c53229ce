"""
Expense Service

Creates, edits, removes and approves expenses.

Rules:
- Only the creator may edit or delete an expense.
- A shared expense needs the creator to be in an active couple; the
  couple's id is stamped on the expense at creation and never changes.
- A shared expense starts PENDING when the couple's settings demand
  approval (always, or above the individual limit). Only the partner,
  never the creator, may approve or reject it.
"""

from datetime import date, datetime
from typing import Any, Callable, Optional, Union
from uuid import UUID

from couple_finance.audit import AuditLogger
from couple_finance.config import AppSettings, get_settings
from couple_finance.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    ExpenseNotFoundError,
    ExpenseNotPendingError,
    NotOwnerError,
    SharedRecordRequiresCoupleError,
    UserNotFoundError,
)
from couple_finance.models.audit import AuditEventType
from couple_finance.models.common import utc_now
from couple_finance.models.couple import CoupleStatus
from couple_finance.models.expense import Expense, ExpenseDraft, ExpensePatch, ExpenseStatus
from couple_finance.services.storage import (
    CoupleStorageInterface,
    ExpenseStorageInterface,
    UserDirectoryInterface,
    VersionConflictError,
)
from couple_finance.validation import RecordValidator


class ExpenseService:
    """Expense lifecycle for one couple-aware user base."""

    def __init__(
        self,
        users: UserDirectoryInterface,
        couples: CoupleStorageInterface,
        expenses: ExpenseStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[AppSettings] = None,
        validator: Optional[RecordValidator] = None,
    ):
        self._users = users
        self._couples = couples
        self._expenses = expenses
        self._audit_logger = audit_logger
        self._clock = clock
        self._settings = settings or get_settings().app
        self._validator = validator or RecordValidator(clock)

    async def _load(self, expense_id: UUID) -> Expense:
        expense = await self._expenses.get_expense(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(f"Expense not found: {expense_id}")
        return expense

    async def _load_owned(self, actor_id: UUID, expense_id: UUID) -> Expense:
        expense = await self._load(expense_id)
        if expense.owner_id != actor_id:
            raise NotOwnerError("Only the creator can change this expense")
        return expense

    async def _commit(self, expense: Expense, expected_version: int) -> Expense:
        try:
            return await self._expenses.update_expense(expense, expected_version)
        except VersionConflictError as e:
            raise ConcurrentModificationError(
                f"Expense {expense.id} changed while it was being updated"
            ) from e

    async def _audit(
        self,
        event_type: AuditEventType,
        expense: Expense,
        actor_id: UUID,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_expense(event_type, expense, actor_id, details)

    # =========================================================================
    # CREATE / UPDATE / DELETE
    # =========================================================================

    async def create_expense(
        self,
        owner_id: UUID,
        draft: Union[ExpenseDraft, dict[str, Any]],
    ) -> Expense:
        """
        Record a new expense.

        Raises:
            ValidationError: Malformed draft
            UserNotFoundError: Unknown owner
            SharedRecordRequiresCoupleError: Shared without an active couple
        """
        draft = self._validator.parse(ExpenseDraft, draft)
        self._validator.check_expense(draft)

        if await self._users.get_user(owner_id) is None:
            raise UserNotFoundError(f"User not found: {owner_id}")

        couple = await self._couples.find_active_couple_of(owner_id)
        if draft.is_shared and couple is None:
            raise SharedRecordRequiresCoupleError(
                "Shared expenses require an active couple relationship"
            )

        shared_percentage = draft.shared_percentage
        if draft.is_shared and shared_percentage is None:
            shared_percentage = self._settings.default_shared_percentage

        status = ExpenseStatus.APPROVED
        if draft.is_shared and couple.settings.requires_approval(draft.amount):
            status = ExpenseStatus.PENDING

        now = self._clock()
        expense = self._validator.build(
            Expense,
            **draft.model_dump(exclude={"shared_percentage"}),
            shared_percentage=shared_percentage,
            owner_id=owner_id,
            couple_id=couple.id if couple else None,
            status=status,
            created_at=now,
            updated_at=now,
        )
        expense = await self._expenses.save_expense(expense)
        await self._audit(
            AuditEventType.EXPENSE_CREATED,
            expense,
            owner_id,
            details={"is_shared": expense.is_shared, "status": expense.status.value},
        )
        return expense

    async def update_expense(
        self,
        actor_id: UUID,
        expense_id: UUID,
        patch: Union[ExpensePatch, dict[str, Any]],
    ) -> Expense:
        """
        Edit the allow-listed fields of an expense.

        Raises:
            ValidationError: Unknown or protected fields, or an invalid result
            ExpenseNotFoundError: No such expense
            NotOwnerError: The actor did not create the expense
            SharedRecordRequiresCoupleError: Sharing an expense made outside the
                owner's current active couple
        """
        patch = self._validator.parse(ExpensePatch, patch)
        self._validator.check_expense(patch)
        expense = await self._load_owned(actor_id, expense_id)

        changes = patch.model_dump(exclude_unset=True)
        if changes.get("is_shared"):
            if expense.couple_id is None:
                raise SharedRecordRequiresCoupleError(
                    "This expense was recorded outside a couple and cannot be shared"
                )
            couple = await self._couples.find_active_couple_of(actor_id)
            if couple is None or couple.id != expense.couple_id:
                raise SharedRecordRequiresCoupleError(
                    "This expense belongs to a couple that is no longer active"
                )
            if changes.get("shared_percentage") is None and expense.shared_percentage is None:
                changes["shared_percentage"] = self._settings.default_shared_percentage
        patch = self._validator.parse(ExpensePatch, changes)

        updated = self._validator.apply_patch(expense, patch)
        updated.updated_at = self._clock()
        updated = await self._commit(updated, expense.version)

        await self._audit(
            AuditEventType.EXPENSE_UPDATED,
            updated,
            actor_id,
            details={"fields": sorted(changes)},
        )
        return updated

    async def delete_expense(self, actor_id: UUID, expense_id: UUID) -> None:
        expense = await self._load_owned(actor_id, expense_id)
        await self._expenses.delete_expense(expense.id)
        await self._audit(AuditEventType.EXPENSE_DELETED, expense, actor_id)

    # =========================================================================
    # APPROVAL
    # =========================================================================

    async def _review(
        self,
        actor_id: UUID,
        expense_id: UUID,
        outcome: ExpenseStatus,
    ) -> Expense:
        expense = await self._load(expense_id)
        if expense.status != ExpenseStatus.PENDING:
            raise ExpenseNotPendingError(
                f"Expense is {expense.status.value}; only pending expenses can be reviewed"
            )
        if actor_id == expense.owner_id:
            raise AuthorizationError("You cannot review your own expense")

        couple = None
        if expense.couple_id is not None:
            couple = await self._couples.get_couple(expense.couple_id)
        if (
            couple is None
            or couple.status != CoupleStatus.ACTIVE
            or not couple.is_member(actor_id)
        ):
            raise AuthorizationError("Only the partner can review this expense")

        now = self._clock()
        reviewed = expense.model_copy(update={
            "status": outcome,
            "approved_by": actor_id,
            "approved_at": now,
            "updated_at": now,
        })
        reviewed = await self._commit(reviewed, expense.version)

        event_type = (
            AuditEventType.EXPENSE_APPROVED
            if outcome == ExpenseStatus.APPROVED
            else AuditEventType.EXPENSE_REJECTED
        )
        await self._audit(event_type, reviewed, actor_id)
        return reviewed

    async def approve_expense(self, actor_id: UUID, expense_id: UUID) -> Expense:
        """Partner approves a pending shared expense."""
        return await self._review(actor_id, expense_id, ExpenseStatus.APPROVED)

    async def reject_expense(self, actor_id: UUID, expense_id: UUID) -> Expense:
        """Partner rejects a pending shared expense."""
        return await self._review(actor_id, expense_id, ExpenseStatus.REJECTED)

    # =========================================================================
    # READS
    # =========================================================================

    async def list_expenses(
        self,
        user_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[Expense]:
        """
        The user's own expenses plus those visible through their couple.

        The partner's personal expenses are included only while the
        couple's privacy settings share individual expenses.
        """
        couple = await self._couples.find_active_couple_of(user_id)
        expenses = await self._expenses.list_expenses(
            owner_id=user_id,
            couple_id=couple.id if couple else None,
            date_from=start,
            date_to=end,
        )
        if couple is None:
            return expenses
        privacy = couple.settings.privacy
        return [e for e in expenses if privacy.shows_expense(user_id, e)]
