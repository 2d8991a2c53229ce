"""
Contribution Ledger

Records money moving into (contributions) and out of (withdrawals) a goal.
Each event is written together with the goal's new state in one
compare-and-set commit, so the goal's current_amount always equals the
amount it was seeded with at creation plus the signed_amount sum of its
ledger.

DESIGN DECISION: Concurrent contributions to one goal are serialised with
an optimistic retry loop (tenacity). Each attempt re-reads the goal,
re-applies the change and commits against the version it read. A lost
race simply tries again; only after every attempt has lost does the
caller see ConcurrentModificationError.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, NamedTuple, Optional
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from couple_finance.audit import AuditLogger, create_correlation_id
from couple_finance.calculations import progress_engine
from couple_finance.config import GoalSettings, get_settings
from couple_finance.errors import (
    AuthorizationError,
    ConcurrentModificationError,
    GoalNotFoundError,
)
from couple_finance.models.audit import AuditEventType
from couple_finance.models.common import utc_now
from couple_finance.models.contribution import ContributionEvent, ContributionType
from couple_finance.models.couple import CoupleStatus
from couple_finance.models.goal import Goal, GoalStatus, Milestone
from couple_finance.services.storage import (
    ContributionStorageInterface,
    CoupleStorageInterface,
    GoalStorageInterface,
    VersionConflictError,
)
from couple_finance.validation import RecordValidator


logger = structlog.get_logger(__name__)


class _Committed(NamedTuple):
    event: ContributionEvent
    goal: Goal
    milestones: list[Milestone]
    previous_status: GoalStatus


class ContributionLedger:
    """Append-only record of contributions and withdrawals per goal."""

    def __init__(
        self,
        goals: GoalStorageInterface,
        ledger: ContributionStorageInterface,
        couples: CoupleStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[GoalSettings] = None,
        validator: Optional[RecordValidator] = None,
    ):
        self._goals = goals
        self._ledger = ledger
        self._couples = couples
        self._audit_logger = audit_logger
        self._clock = clock
        self._settings = settings or get_settings().goals
        self._validator = validator or RecordValidator(clock)

    async def _authorize(self, goal: Goal, user_id: UUID) -> None:
        """
        The owner may always move money; for a shared goal, so may the
        owner's partner while the couple is active.
        """
        if user_id == goal.owner_id:
            return
        if goal.couple_id is not None:
            couple = await self._couples.get_couple(goal.couple_id)
            if (
                couple is not None
                and couple.status == CoupleStatus.ACTIVE
                and couple.is_member(user_id)
            ):
                return
        raise AuthorizationError(f"User {user_id} may not move money on goal {goal.id}")

    async def _attempt(
        self,
        goal_id: UUID,
        user_id: UUID,
        amount: Decimal,
        kind: ContributionType,
        note: Optional[str],
    ) -> _Committed:
        goal = await self._goals.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError(f"Goal not found: {goal_id}")
        await self._authorize(goal, user_id)

        expected_version = goal.version
        previous_status = goal.status
        already_achieved = {m.percentage for m in progress_engine.achieved_milestones(goal)}
        now = self._clock()

        if kind == ContributionType.CONTRIBUTION:
            progress_engine.apply_contribution(goal, amount, now)
        else:
            progress_engine.apply_withdrawal(
                goal,
                amount,
                now,
                reopen_completed=self._settings.reopen_completed_on_withdrawal,
            )

        event = ContributionEvent(
            goal_id=goal.id,
            user_id=user_id,
            type=kind,
            amount=amount,
            timestamp=now,
            note=note,
            balance_after=goal.current_amount,
        )
        committed = await self._ledger.commit_contribution(goal, expected_version, event)

        newly_achieved = [
            m for m in progress_engine.achieved_milestones(committed)
            if m.percentage not in already_achieved
        ]
        return _Committed(event, committed, newly_achieved, previous_status)

    async def _commit(
        self,
        goal_id: UUID,
        user_id: UUID,
        amount: Any,
        kind: ContributionType,
        note: Optional[str],
    ) -> ContributionEvent:
        amount = self._validator.validate_amount(amount)
        correlation_id = create_correlation_id()

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(VersionConflictError),
            stop=stop_after_attempt(self._settings.max_update_attempts),
            wait=wait_random_exponential(multiplier=0.01, max=0.2),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt(goal_id, user_id, amount, kind, note)
        except VersionConflictError as e:
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="concurrent_modification",
                    error_message=str(e),
                    details={"goal_id": str(goal_id), "type": kind.value},
                    correlation_id=correlation_id,
                )
            raise ConcurrentModificationError(
                f"Goal {goal_id} kept changing; gave up after "
                f"{self._settings.max_update_attempts} attempts"
            ) from e

        logger.info(
            "ledger_event_committed",
            goal_id=str(goal_id),
            type=kind.value,
            balance_after=str(result.event.balance_after),
        )
        await self._audit(result, user_id, correlation_id)
        return result.event

    async def _audit(self, result: _Committed, user_id: UUID, correlation_id: UUID) -> None:
        if not self._audit_logger:
            return

        await self._audit_logger.log_ledger_event(result.event, correlation_id)
        await self._audit_logger.log_milestones(
            result.goal.id, result.milestones, correlation_id
        )
        if result.goal.status != result.previous_status:
            event_type = (
                AuditEventType.GOAL_COMPLETED
                if result.goal.status == GoalStatus.COMPLETED
                else AuditEventType.GOAL_STATUS_CHANGED
            )
            await self._audit_logger.log_goal(
                event_type,
                result.goal.id,
                user_id,
                details={
                    "from": result.previous_status.value,
                    "to": result.goal.status.value,
                },
                correlation_id=correlation_id,
            )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def record(
        self,
        goal_id: UUID,
        user_id: UUID,
        amount: Any,
        note: Optional[str] = None,
    ) -> ContributionEvent:
        """
        Contribute to an active goal.

        Completes the goal and marks milestones as the new total crosses
        them.

        Raises:
            ValidationError: amount is not a positive 2-decimal amount
            GoalNotFoundError: no such goal
            AuthorizationError: user is neither owner nor active partner
            InactiveGoalError: goal is paused, completed or cancelled
            ConcurrentModificationError: retries exhausted
        """
        return await self._commit(goal_id, user_id, amount, ContributionType.CONTRIBUTION, note)

    async def withdraw(
        self,
        goal_id: UUID,
        user_id: UUID,
        amount: Any,
        note: Optional[str] = None,
    ) -> ContributionEvent:
        """
        Take money out of a goal, whatever its status.

        Raises:
            InsufficientGoalBalanceError: amount exceeds the saved amount
            (plus the same errors as record(), except InactiveGoalError)
        """
        return await self._commit(goal_id, user_id, amount, ContributionType.WITHDRAWAL, note)

    async def contributions_of(self, goal_id: UUID) -> list[ContributionEvent]:
        """All ledger events of a goal, newest first."""
        return await self._ledger.list_contributions(goal_id)

    async def member_totals(self, goal_id: UUID) -> dict[UUID, Decimal]:
        """Net amount each user has put into the goal."""
        totals: dict[UUID, Decimal] = defaultdict(Decimal)
        for event in await self._ledger.list_contributions(goal_id):
            totals[event.user_id] += event.signed_amount
        return dict(totals)
