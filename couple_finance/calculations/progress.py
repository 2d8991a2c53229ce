"""
Goal Progress Engine

Tracks how far a goal has come: progress snapshots, contributions and
withdrawals against the saved amount, automatic completion, milestone
achievement and time-to-target projections.

The mutating functions change the Goal passed in. Services always hand
them a private copy loaded from storage and commit the result with a
compare-and-set, so the in-place change is never visible to other callers
until it is committed.

Status graph:
    ACTIVE -> COMPLETED     (automatic only, when current >= target)
    ACTIVE <-> PAUSED       (manual)
    ACTIVE -> CANCELLED     (manual)
    PAUSED -> CANCELLED     (manual)
COMPLETED and CANCELLED are terminal (a withdrawal may reopen COMPLETED
only when the reopen policy is switched on).
"""

import math
from datetime import datetime, time, timezone
from decimal import Decimal
from typing import Optional

from couple_finance.errors import (
    InactiveGoalError,
    InsufficientGoalBalanceError,
    InvalidGoalTransitionError,
    ValidationError,
)
from couple_finance.models.common import HUNDRED
from couple_finance.models.goal import Goal, GoalStatus, Milestone, ProgressSnapshot


ZERO = Decimal("0")
AVERAGE_MONTH_DAYS = Decimal("30.44")
SECONDS_PER_DAY = 24 * 60 * 60

_MANUAL_TRANSITIONS: dict[GoalStatus, frozenset[GoalStatus]] = {
    GoalStatus.ACTIVE: frozenset({GoalStatus.PAUSED, GoalStatus.CANCELLED}),
    GoalStatus.PAUSED: frozenset({GoalStatus.ACTIVE, GoalStatus.CANCELLED}),
    GoalStatus.COMPLETED: frozenset(),
    GoalStatus.CANCELLED: frozenset(),
}


def progress(goal: Goal) -> ProgressSnapshot:
    """
    Compute a goal's progress. Pure and idempotent.

    percentage is capped at 100 even when the goal is over-funded;
    remaining_amount never goes below zero.
    """
    current = goal.current_amount
    target = goal.target_amount

    if target > 0:
        percentage = min(HUNDRED, current / target * HUNDRED)
    else:
        percentage = ZERO

    return ProgressSnapshot(
        current_amount=current,
        target_amount=target,
        remaining_amount=max(ZERO, target - current),
        percentage=percentage,
        is_completed=percentage >= HUNDRED,
    )


def apply_contribution(goal: Goal, amount: Decimal, now: datetime) -> ProgressSnapshot:
    """
    Add money to an active goal.

    Completes the goal when the new total reaches the target, then marks
    every milestone the new percentage has crossed.

    Raises:
        InactiveGoalError: goal is paused, completed or cancelled
        ValidationError: amount is not positive
    """
    if goal.status != GoalStatus.ACTIVE:
        raise InactiveGoalError(
            f"Goal {goal.id} is {goal.status.value}; contributions need an active goal"
        )
    if amount <= 0:
        raise ValidationError("Contribution amount must be greater than zero")

    goal.current_amount += amount
    goal.updated_at = now
    evaluate_completion(goal, now)
    update_milestones(goal, now)
    return progress(goal)


def apply_withdrawal(
    goal: Goal,
    amount: Decimal,
    now: datetime,
    reopen_completed: bool = False,
) -> ProgressSnapshot:
    """
    Take money out of a goal.

    Withdrawals are not blocked by completion. Milestones already achieved
    stay achieved.

    Raises:
        ValidationError: amount is not positive
        InsufficientGoalBalanceError: amount exceeds the saved amount
    """
    if amount <= 0:
        raise ValidationError("Withdrawal amount must be greater than zero")
    if amount > goal.current_amount:
        raise InsufficientGoalBalanceError(
            f"Cannot withdraw {amount} from goal {goal.id} holding {goal.current_amount}"
        )

    goal.current_amount -= amount
    goal.updated_at = now

    if (
        reopen_completed
        and goal.status == GoalStatus.COMPLETED
        and goal.current_amount < goal.target_amount
    ):
        goal.status = GoalStatus.ACTIVE
        goal.completed_at = None

    return progress(goal)


def evaluate_completion(goal: Goal, now: datetime) -> bool:
    """
    Complete an active goal whose saved amount meets its target.

    Returns True if this call performed the transition.
    """
    if goal.status == GoalStatus.ACTIVE and goal.current_amount >= goal.target_amount:
        goal.status = GoalStatus.COMPLETED
        goal.completed_at = now
        return True
    return False


def update_milestones(goal: Goal, now: datetime) -> list[Milestone]:
    """
    Mark every milestone at or below the current percentage as achieved.

    Returns the milestones achieved by this call, in ascending order.
    """
    percentage = progress(goal).percentage
    newly_achieved = []
    for milestone in sorted(goal.milestones, key=lambda m: m.percentage):
        if not milestone.achieved and milestone.percentage <= percentage:
            milestone.achieved = True
            milestone.achieved_date = now
            newly_achieved.append(milestone)
    return newly_achieved


def merge_milestones(
    existing: list[Milestone],
    percentages: list[Decimal],
) -> list[Milestone]:
    """
    Rebuild a milestone list from requested percentages.

    A percentage that already exists keeps its milestone, achieved state
    included. Achieved milestones missing from the request are kept too.
    New percentages start unachieved; run update_milestones afterwards to
    mark the ones already crossed. Duplicates in the request are passed
    through for Goal validation to reject.
    """
    by_percentage = {m.percentage: m for m in existing}
    merged = [
        by_percentage[p].model_copy() if p in by_percentage else Milestone(percentage=p)
        for p in percentages
    ]
    requested = set(percentages)
    merged.extend(
        m.model_copy() for m in existing if m.achieved and m.percentage not in requested
    )
    return merged


def achieved_milestones(goal: Goal) -> list[Milestone]:
    return [m for m in goal.milestones if m.achieved]


def transition(goal: Goal, target: GoalStatus, now: datetime) -> Goal:
    """
    Apply a manual status change (pause, resume, cancel).

    COMPLETED cannot be requested; it only happens through contributions.
    Resuming a goal that is already funded completes it immediately.

    Raises:
        InvalidGoalTransitionError: the move is not in the status graph
    """
    if target not in _MANUAL_TRANSITIONS[goal.status]:
        raise InvalidGoalTransitionError(
            f"Goal {goal.id} cannot move from {goal.status.value} to {target.value}"
        )

    goal.status = target
    goal.updated_at = now
    if target == GoalStatus.ACTIVE:
        evaluate_completion(goal, now)
    return goal


def days_remaining(goal: Goal, now: datetime) -> Optional[int]:
    """
    Whole days until the target date, rounded up.

    Negative when the target date has passed. None without a target date.
    The target date is taken as midnight UTC.
    """
    if goal.target_date is None:
        return None

    deadline = datetime.combine(goal.target_date, time.min, tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.ceil((deadline - now).total_seconds() / SECONDS_PER_DAY)


def required_periodic_contribution(
    goal: Goal,
    now: datetime,
    average_month_days: Decimal = AVERAGE_MONTH_DAYS,
) -> Optional[Decimal]:
    """
    Monthly amount needed to hit the target by the target date.

    Approximates a month as average_month_days. None when there is no
    target date or it is today or already past.
    """
    days = days_remaining(goal, now)
    if days is None or days <= 0:
        return None

    months = Decimal(days) / average_month_days
    return progress(goal).remaining_amount / months
