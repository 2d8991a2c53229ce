"""
Split Calculator

Pure functions dividing money between a couple's two members.

All arithmetic is exact Decimal. Nothing here rounds; callers round with
round_money() only when a value leaves the core.
"""

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from couple_finance.models.common import HUNDRED
from couple_finance.models.expense import Expense
from couple_finance.models.goal import (
    ContributionMethod,
    ContributionTargets,
    CustomContribution,
    EqualContribution,
    Goal,
    PercentageContribution,
)


ZERO = Decimal("0")
TWO = Decimal("2")


def shared_amount(expense: Expense) -> Decimal:
    """Part of the expense attributed to the couple. Zero for personal expenses."""
    if not expense.is_shared or expense.shared_percentage is None:
        return ZERO
    return expense.amount * expense.shared_percentage / HUNDRED


def personal_amount(expense: Expense) -> Decimal:
    """
    Part of the expense borne by the owner alone.

    Computed as a difference so that shared + personal == amount exactly.
    """
    return expense.amount - shared_amount(expense)


def split_summary(expenses: Iterable[Expense]) -> tuple[Decimal, Decimal]:
    """Return (shared_total, personal_total) over a set of expenses."""
    shared_total = ZERO
    personal_total = ZERO
    for expense in expenses:
        shared = shared_amount(expense)
        shared_total += shared
        personal_total += expense.amount - shared
    return shared_total, personal_total


def resolve_contribution_targets(
    goal: Goal,
    member_a_id: UUID,
    member_b_id: UUID,
) -> ContributionTargets:
    """
    Work out each member's share of a goal's target.

    - equal: half each
    - percentage: target * pct / 100 each (percentages were validated
      to sum to 100 when the goal was created or patched)
    - custom: the committed amounts, as given
    """
    settings = goal.contribution

    if isinstance(settings, EqualContribution):
        half = goal.target_amount / TWO
        member_a_share, member_b_share = half, half
    elif isinstance(settings, PercentageContribution):
        member_a_share = goal.target_amount * settings.member_a_percentage / HUNDRED
        member_b_share = goal.target_amount * settings.member_b_percentage / HUNDRED
    elif isinstance(settings, CustomContribution):
        member_a_share = settings.member_a_amount
        member_b_share = settings.member_b_amount
    else:
        raise TypeError(f"Unknown contribution settings: {type(settings).__name__}")

    return ContributionTargets(
        method=ContributionMethod(settings.method),
        member_a_id=member_a_id,
        member_b_id=member_b_id,
        member_a_share=member_a_share,
        member_b_share=member_b_share,
    )
