"""
Goal Service

Creates and manages savings goals. Money never moves through here: the
saved amount changes only through the ContributionLedger.

Rules:
- Only the creator may edit, pause, resume, cancel or delete a goal.
- A shared goal needs the creator to be in an active couple. Its
  contribution method defaults to the couple's configured method.
- A goal whose seed amount already meets its target is created COMPLETED.
"""

from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable, Optional, Union
from uuid import UUID

from couple_finance.audit import AuditLogger
from couple_finance.calculations import progress_engine, resolve_contribution_targets
from couple_finance.config import GoalSettings, get_settings
from couple_finance.errors import (
    ConcurrentModificationError,
    GoalNotFoundError,
    NotFoundError,
    NotOwnerError,
    SharedRecordRequiresCoupleError,
    UserNotFoundError,
    ValidationError,
)
from couple_finance.models.audit import AuditEventType
from couple_finance.models.common import MONEY_QUANTUM, utc_now
from couple_finance.models.couple import Couple
from couple_finance.models.goal import (
    ContributionMethod,
    ContributionTargets,
    CustomContribution,
    EqualContribution,
    Goal,
    GoalDetails,
    GoalDraft,
    GoalPatch,
    GoalStatus,
    PercentageContribution,
)
from couple_finance.services.storage import (
    CoupleStorageInterface,
    GoalStorageInterface,
    UserDirectoryInterface,
    VersionConflictError,
)
from couple_finance.validation import RecordValidator


def default_contribution(method: ContributionMethod, target_amount: Decimal):
    """
    Contribution settings for a couple's default method.

    Percentage and custom splits start out even; the creator can patch
    them afterwards.
    """
    if method == ContributionMethod.PERCENTAGE:
        return PercentageContribution(
            member_a_percentage=Decimal("50"),
            member_b_percentage=Decimal("50"),
        )
    if method == ContributionMethod.CUSTOM:
        half = (target_amount / 2).quantize(MONEY_QUANTUM, rounding=ROUND_DOWN)
        return CustomContribution(member_a_amount=half, member_b_amount=target_amount - half)
    return EqualContribution()


class GoalService:
    """Goal lifecycle, split targets and derived details."""

    def __init__(
        self,
        users: UserDirectoryInterface,
        couples: CoupleStorageInterface,
        goals: GoalStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[GoalSettings] = None,
        validator: Optional[RecordValidator] = None,
    ):
        self._users = users
        self._couples = couples
        self._goals = goals
        self._audit_logger = audit_logger
        self._clock = clock
        self._settings = settings or get_settings().goals
        self._validator = validator or RecordValidator(clock)

    async def _load(self, goal_id: UUID) -> Goal:
        goal = await self._goals.get_goal(goal_id)
        if goal is None:
            raise GoalNotFoundError(f"Goal not found: {goal_id}")
        return goal

    async def _load_owned(self, actor_id: UUID, goal_id: UUID) -> Goal:
        goal = await self._load(goal_id)
        if goal.owner_id != actor_id:
            raise NotOwnerError("Only the creator can change this goal")
        return goal

    async def _commit(self, goal: Goal, expected_version: int) -> Goal:
        try:
            return await self._goals.update_goal(goal, expected_version)
        except VersionConflictError as e:
            raise ConcurrentModificationError(
                f"Goal {goal.id} changed while it was being updated"
            ) from e

    async def _audit(
        self,
        event_type: AuditEventType,
        goal: Goal,
        actor_id: Optional[UUID],
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_goal(event_type, goal.id, actor_id, details)

    async def _audit_status(
        self,
        goal: Goal,
        actor_id: UUID,
        previous: GoalStatus,
    ) -> None:
        if goal.status == previous:
            return
        event_type = (
            AuditEventType.GOAL_COMPLETED
            if goal.status == GoalStatus.COMPLETED
            else AuditEventType.GOAL_STATUS_CHANGED
        )
        await self._audit(
            event_type,
            goal,
            actor_id,
            details={"from": previous.value, "to": goal.status.value},
        )

    # =========================================================================
    # CREATE / UPDATE / DELETE
    # =========================================================================

    async def create_goal(
        self,
        owner_id: UUID,
        draft: Union[GoalDraft, dict[str, Any]],
    ) -> Goal:
        """
        Create a personal or shared goal.

        Raises:
            ValidationError: Malformed draft (including percentages not
                summing to 100, duplicate milestones, past target dates)
            UserNotFoundError: Unknown owner
            SharedRecordRequiresCoupleError: Shared without an active couple
        """
        draft = self._validator.parse(GoalDraft, draft)
        self._validator.check_goal(draft)

        if await self._users.get_user(owner_id) is None:
            raise UserNotFoundError(f"User not found: {owner_id}")

        couple = None
        if draft.is_shared:
            couple = await self._couples.find_active_couple_of(owner_id)
            if couple is None:
                raise SharedRecordRequiresCoupleError(
                    "Shared goals require an active couple relationship"
                )

        contribution = draft.contribution
        if contribution is None:
            method = (
                couple.settings.goal_contribution_method if couple else ContributionMethod.EQUAL
            )
            contribution = default_contribution(method, draft.target_amount)

        now = self._clock()
        goal = self._validator.build(
            Goal,
            **draft.model_dump(exclude={"is_shared", "contribution", "milestone_percentages"}),
            owner_id=owner_id,
            couple_id=couple.id if couple else None,
            contribution=contribution.model_dump(),
            milestones=[{"percentage": p} for p in draft.milestone_percentages],
            created_at=now,
            updated_at=now,
        )
        progress_engine.evaluate_completion(goal, now)
        progress_engine.update_milestones(goal, now)

        goal = await self._goals.save_goal(goal)
        await self._audit(
            AuditEventType.GOAL_CREATED,
            goal,
            owner_id,
            details={"is_shared": goal.is_shared, "method": goal.contribution_method.value},
        )
        if goal.status == GoalStatus.COMPLETED:
            await self._audit(AuditEventType.GOAL_COMPLETED, goal, owner_id)
        return goal

    async def update_goal(
        self,
        actor_id: UUID,
        goal_id: UUID,
        patch: Union[GoalPatch, dict[str, Any]],
    ) -> Goal:
        """
        Edit the allow-listed fields of a goal.

        Lowering the target of an active goal to or below the saved amount
        completes it. Milestones are replaced by percentage: existing ones
        keep their achieved state, achieved ones are never dropped, and new
        ones that are already crossed are marked achieved.

        Raises:
            ValidationError: Unknown or protected fields, or an invalid result
            GoalNotFoundError: No such goal
            NotOwnerError: The actor did not create the goal
        """
        patch = self._validator.parse(GoalPatch, patch)
        self._validator.check_goal(patch)
        goal = await self._load_owned(actor_id, goal_id)

        overrides = {}
        if patch.milestone_percentages is not None:
            merged = progress_engine.merge_milestones(goal.milestones, patch.milestone_percentages)
            overrides["milestones"] = [m.model_dump() for m in merged]

        now = self._clock()
        updated = self._validator.apply_patch(
            goal, patch, exclude={"milestone_percentages"}, **overrides
        )
        updated.updated_at = now
        progress_engine.evaluate_completion(updated, now)
        progress_engine.update_milestones(updated, now)
        updated = await self._commit(updated, goal.version)

        await self._audit(
            AuditEventType.GOAL_UPDATED,
            updated,
            actor_id,
            details={"fields": sorted(patch.model_fields_set)},
        )
        await self._audit_status(updated, actor_id, goal.status)
        return updated

    async def _transition(self, actor_id: UUID, goal_id: UUID, target: GoalStatus) -> Goal:
        goal = await self._load_owned(actor_id, goal_id)
        previous = goal.status
        expected_version = goal.version

        progress_engine.transition(goal, target, self._clock())
        goal = await self._commit(goal, expected_version)
        await self._audit_status(goal, actor_id, previous)
        return goal

    async def pause_goal(self, actor_id: UUID, goal_id: UUID) -> Goal:
        return await self._transition(actor_id, goal_id, GoalStatus.PAUSED)

    async def resume_goal(self, actor_id: UUID, goal_id: UUID) -> Goal:
        """Resume a paused goal. A goal funded while paused completes at once."""
        return await self._transition(actor_id, goal_id, GoalStatus.ACTIVE)

    async def cancel_goal(self, actor_id: UUID, goal_id: UUID) -> Goal:
        return await self._transition(actor_id, goal_id, GoalStatus.CANCELLED)

    async def delete_goal(self, actor_id: UUID, goal_id: UUID) -> None:
        goal = await self._load_owned(actor_id, goal_id)
        await self._goals.delete_goal(goal.id)
        await self._audit(AuditEventType.GOAL_DELETED, goal, actor_id)

    # =========================================================================
    # READS
    # =========================================================================

    async def list_goals(self, user_id: UUID) -> list[Goal]:
        """
        The user's own goals plus the shared goals of their couple.

        The partner's shared goals are left out while the couple's privacy
        settings do not share goals.
        """
        couple = await self._couples.find_active_couple_of(user_id)
        goals = await self._goals.list_goals(
            owner_id=user_id,
            couple_id=couple.id if couple else None,
        )
        if couple is None:
            return goals
        privacy = couple.settings.privacy
        return [g for g in goals if privacy.shows_goal(user_id, g)]

    async def _couple_of(self, goal: Goal) -> Couple:
        couple = await self._couples.get_couple(goal.couple_id)
        if couple is None:
            raise NotFoundError(f"Couple {goal.couple_id} of goal {goal.id} no longer exists")
        return couple

    async def contribution_targets(self, goal_id: UUID) -> ContributionTargets:
        """
        Each member's share of a shared goal's target.

        Raises:
            GoalNotFoundError: No such goal
            ValidationError: The goal is personal
            NotFoundError: The goal's couple has been dissolved
        """
        goal = await self._load(goal_id)
        if not goal.is_shared:
            raise ValidationError("Personal goals have no contribution split")

        couple = await self._couple_of(goal)
        return resolve_contribution_targets(goal, couple.member_a, couple.member_b)

    async def goal_details(
        self,
        goal_id: UUID,
        now: Optional[datetime] = None,
    ) -> GoalDetails:
        """Goal, progress and time-to-target figures at one instant."""
        goal = await self._load(goal_id)
        now = now or self._clock()
        return GoalDetails(
            goal=goal,
            progress=progress_engine.progress(goal),
            days_remaining=progress_engine.days_remaining(goal, now),
            required_monthly_contribution=progress_engine.required_periodic_contribution(
                goal, now, self._settings.average_month_days
            ),
        )
