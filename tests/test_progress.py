"""
Tests for the goal progress engine.
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from couple_finance.calculations import progress_engine
from couple_finance.errors import (
    InactiveGoalError,
    InsufficientGoalBalanceError,
    InvalidGoalTransitionError,
    ValidationError,
)
from couple_finance.models import Goal, GoalStatus, Milestone


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _goal(target="1000.00", current="0", **overrides) -> Goal:
    return Goal(
        owner_id=uuid4(),
        title="Vacation",
        target_amount=Decimal(target),
        current_amount=Decimal(current),
        **overrides,
    )


class TestProgress:
    """Tests for progress snapshots."""

    def test_progress_formula(self):
        snapshot = progress_engine.progress(_goal(current="250.00"))
        assert snapshot.percentage == Decimal("25")
        assert snapshot.remaining_amount == Decimal("750.00")
        assert not snapshot.is_completed

    def test_progress_is_capped(self):
        """Over-funded goals report 100% and nothing remaining."""
        snapshot = progress_engine.progress(_goal(current="1500.00"))
        assert snapshot.percentage == Decimal("100")
        assert snapshot.remaining_amount == Decimal("0")
        assert snapshot.is_completed

    def test_progress_is_idempotent(self):
        goal = _goal(current="333.33")
        assert progress_engine.progress(goal) == progress_engine.progress(goal)
        assert goal.current_amount == Decimal("333.33")

    def test_progress_is_exact(self):
        """No rounding inside the engine."""
        snapshot = progress_engine.progress(_goal(target="3.00", current="1.00"))
        assert snapshot.percentage == Decimal("1.00") / Decimal("3.00") * 100
        assert snapshot.percentage > Decimal("33.33")


class TestContributions:
    """Tests for applying contributions and withdrawals."""

    def test_contribution_completes_goal(self):
        """1000 target, 250 saved, +750 completes at 100%."""
        goal = _goal(current="250.00")
        snapshot = progress_engine.apply_contribution(goal, Decimal("750.00"), NOW)
        assert goal.current_amount == Decimal("1000.00")
        assert goal.status == GoalStatus.COMPLETED
        assert goal.completed_at == NOW
        assert snapshot.percentage == Decimal("100")

    def test_contributions_are_monotonic(self):
        """Each contribution can only raise progress."""
        goal = _goal()
        last = Decimal("0")
        for amount in ("10.00", "0.01", "99.99", "300.00"):
            snapshot = progress_engine.apply_contribution(goal, Decimal(amount), NOW)
            assert snapshot.percentage >= last
            last = snapshot.percentage

    @pytest.mark.parametrize("status", [
        GoalStatus.PAUSED,
        GoalStatus.COMPLETED,
        GoalStatus.CANCELLED,
    ])
    def test_contribution_to_inactive_goal(self, status):
        goal = _goal(status=status)
        with pytest.raises(InactiveGoalError):
            progress_engine.apply_contribution(goal, Decimal("10.00"), NOW)
        assert goal.current_amount == Decimal("0")

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_contribution_must_be_positive(self, amount):
        with pytest.raises(ValidationError):
            progress_engine.apply_contribution(_goal(), Decimal(amount), NOW)

    def test_milestones_marked_in_order(self):
        """Crossing several milestones at once marks them all, ascending."""
        goal = _goal(milestones=[
            Milestone(percentage=Decimal("75")),
            Milestone(percentage=Decimal("25")),
            Milestone(percentage=Decimal("50")),
        ])
        progress_engine.apply_contribution(goal, Decimal("600.00"), NOW)
        achieved = progress_engine.achieved_milestones(goal)
        assert [m.percentage for m in achieved] == [Decimal("25"), Decimal("50")]
        assert all(m.achieved_date == NOW for m in achieved)

    def test_update_milestones_returns_only_new(self):
        goal = _goal(current="500.00", milestones=[Milestone(percentage=Decimal("50"))])
        assert len(progress_engine.update_milestones(goal, NOW)) == 1
        assert progress_engine.update_milestones(goal, NOW) == []

    def test_withdrawal_reduces_balance(self):
        goal = _goal(current="500.00")
        snapshot = progress_engine.apply_withdrawal(goal, Decimal("200.00"), NOW)
        assert goal.current_amount == Decimal("300.00")
        assert snapshot.percentage == Decimal("30")

    def test_withdrawal_cannot_overdraw(self):
        goal = _goal(current="100.00")
        with pytest.raises(InsufficientGoalBalanceError):
            progress_engine.apply_withdrawal(goal, Decimal("100.01"), NOW)
        assert goal.current_amount == Decimal("100.00")

    def test_withdrawal_keeps_milestones(self):
        """Achieved milestones are never un-marked."""
        goal = _goal(milestones=[Milestone(percentage=Decimal("50"))])
        progress_engine.apply_contribution(goal, Decimal("500.00"), NOW)
        progress_engine.apply_withdrawal(goal, Decimal("400.00"), NOW)
        assert goal.milestones[0].achieved

    def test_merge_milestones(self):
        """Requested percentages keep existing state; achieved ones survive omission."""
        existing = [
            Milestone(percentage=Decimal("25"), achieved=True, achieved_date=NOW),
            Milestone(percentage=Decimal("50"), achieved=True, achieved_date=NOW),
            Milestone(percentage=Decimal("75")),
        ]
        merged = progress_engine.merge_milestones(
            existing, [Decimal("50.0"), Decimal("90")]
        )

        assert [(m.percentage, m.achieved) for m in merged] == [
            (Decimal("50"), True),
            (Decimal("90"), False),
            (Decimal("25"), True),
        ]
        assert merged[0].achieved_date == NOW
        assert merged[0] is not existing[1]

    def test_withdrawal_leaves_completed_goal_completed(self):
        goal = _goal(current="1000.00", status=GoalStatus.COMPLETED)
        progress_engine.apply_withdrawal(goal, Decimal("100.00"), NOW)
        assert goal.status == GoalStatus.COMPLETED

    def test_withdrawal_reopens_when_enabled(self):
        goal = _goal(current="1000.00", status=GoalStatus.COMPLETED, completed_at=NOW)
        progress_engine.apply_withdrawal(goal, Decimal("100.00"), NOW, reopen_completed=True)
        assert goal.status == GoalStatus.ACTIVE
        assert goal.completed_at is None


class TestTransitions:
    """Tests for the manual status graph."""

    def test_pause_and_resume(self):
        goal = _goal()
        progress_engine.transition(goal, GoalStatus.PAUSED, NOW)
        assert goal.status == GoalStatus.PAUSED
        progress_engine.transition(goal, GoalStatus.ACTIVE, NOW)
        assert goal.status == GoalStatus.ACTIVE

    def test_resume_funded_goal_completes(self):
        goal = _goal(current="1000.00", status=GoalStatus.PAUSED)
        progress_engine.transition(goal, GoalStatus.ACTIVE, NOW)
        assert goal.status == GoalStatus.COMPLETED

    @pytest.mark.parametrize("start,target", [
        (GoalStatus.ACTIVE, GoalStatus.COMPLETED),
        (GoalStatus.ACTIVE, GoalStatus.ACTIVE),
        (GoalStatus.COMPLETED, GoalStatus.ACTIVE),
        (GoalStatus.CANCELLED, GoalStatus.ACTIVE),
        (GoalStatus.CANCELLED, GoalStatus.PAUSED),
    ])
    def test_illegal_transitions(self, start, target):
        goal = _goal(status=start)
        with pytest.raises(InvalidGoalTransitionError):
            progress_engine.transition(goal, target, NOW)
        assert goal.status == start


class TestProjections:
    """Tests for time-to-target figures."""

    def test_days_remaining_rounds_up(self):
        goal = _goal(target_date=date(2026, 3, 20))
        # 4.5 days to midnight of the 20th
        assert progress_engine.days_remaining(goal, NOW) == 5

    def test_days_remaining_negative_when_past(self):
        goal = _goal(target_date=date(2026, 3, 1))
        assert progress_engine.days_remaining(goal, NOW) < 0

    def test_days_remaining_without_date(self):
        assert progress_engine.days_remaining(_goal(), NOW) is None

    def test_required_contribution(self):
        """Remaining amount spread over the months left."""
        goal = _goal(current="400.00", target_date=date(2026, 3, 15) + timedelta(days=61))
        required = progress_engine.required_periodic_contribution(
            goal, NOW, Decimal("30.5")
        )
        assert required == Decimal("600.00") / (Decimal(61) / Decimal("30.5"))
        assert required == Decimal("300")

    def test_required_contribution_past_date(self):
        goal = _goal(target_date=date(2026, 3, 1))
        assert progress_engine.required_periodic_contribution(goal, NOW) is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
