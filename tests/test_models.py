"""
Tests for Couple Finance models

Test strategy:
1. Unit tests for the pydantic models and their invariants
2. Service tests drive the in-memory storage through the real services
3. A fake clock stands in for wall time everywhere
"""

import pytest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from couple_finance.models import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
    ContributionEvent,
    ContributionMethod,
    ContributionType,
    Couple,
    CouplePatch,
    CoupleSettings,
    CoupleStatus,
    CustomContribution,
    EqualContribution,
    Expense,
    ExpenseCategory,
    ExpensePatch,
    Goal,
    GoalDraft,
    GoalPatch,
    Milestone,
    PercentageContribution,
    UserAccount,
    round_money,
)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _pending_couple(**overrides) -> Couple:
    fields = dict(
        member_a=uuid4(),
        member_b=uuid4(),
        invitation_token="a" * 64,
        invitation_expiry=NOW + timedelta(hours=24),
    )
    fields.update(overrides)
    return Couple(**fields)


class TestMoney:
    """Tests for presentation rounding."""

    def test_round_money_uses_bankers_rounding(self):
        """Halves round to the even cent."""
        assert round_money(Decimal("0.125")) == Decimal("0.12")
        assert round_money(Decimal("0.135")) == Decimal("0.14")

    def test_round_money_keeps_two_places(self):
        assert str(round_money(Decimal("10"))) == "10.00"


class TestCoupleModels:
    """Tests for Couple invariants and settings."""

    def test_pending_couple_creation(self):
        """A new couple is pending and unversioned."""
        couple = _pending_couple()
        assert couple.status == CoupleStatus.PENDING
        assert couple.version == 0
        assert couple.shared_budget == Decimal("0")

    def test_couple_rejects_same_member_twice(self):
        """A user cannot be coupled with themselves."""
        user_id = uuid4()
        with pytest.raises(PydanticValidationError, match="themselves"):
            _pending_couple(member_a=user_id, member_b=user_id)

    def test_pending_couple_requires_token(self):
        with pytest.raises(PydanticValidationError, match="token"):
            _pending_couple(invitation_token=None)

    def test_active_couple_cannot_hold_invitation(self):
        """Token and expiry exist only while pending."""
        with pytest.raises(PydanticValidationError, match="Only a pending couple"):
            _pending_couple(status=CoupleStatus.ACTIVE)

    def test_activated_clears_invitation(self):
        """Activation drops the token and sets the start date."""
        active = _pending_couple().activated(NOW)
        assert active.status == CoupleStatus.ACTIVE
        assert active.invitation_token is None
        assert active.invitation_expiry is None
        assert active.relationship_start_date == NOW.date()

    def test_invitation_expiry_is_inclusive(self):
        """The invitation is still valid at the exact expiry instant."""
        couple = _pending_couple()
        expiry = couple.invitation_expiry
        assert couple.is_invitation_valid(expiry)
        assert not couple.is_invitation_valid(expiry + timedelta(seconds=1))

    def test_partner_of(self):
        couple = _pending_couple()
        assert couple.partner_of(couple.member_a) == couple.member_b
        assert couple.partner_of(couple.member_b) == couple.member_a
        with pytest.raises(ValueError):
            couple.partner_of(uuid4())

    def test_settings_reject_unknown_keys(self):
        """A misspelt setting is an error, not a silent no-op."""
        with pytest.raises(PydanticValidationError):
            CoupleSettings.model_validate({"expense_aproval_required": True})

    def test_requires_approval(self):
        """Approval is required always, or only above the individual limit."""
        assert not CoupleSettings().requires_approval(Decimal("1000000"))
        assert CoupleSettings(expense_approval_required=True).requires_approval(Decimal("1"))

        limited = CoupleSettings(expense_limit_individual=Decimal("500.00"))
        assert not limited.requires_approval(Decimal("500.00"))
        assert limited.requires_approval(Decimal("500.01"))

    def test_couple_patch_forbids_status(self):
        """Status and member slots cannot be patched."""
        with pytest.raises(PydanticValidationError):
            CouplePatch.model_validate({"status": "active"})
        with pytest.raises(PydanticValidationError):
            CouplePatch.model_validate({"member_b": str(uuid4())})

    def test_user_label_falls_back_to_email(self):
        user = UserAccount(email="sam@example.com")
        assert user.label == "sam"


class TestExpenseModels:
    """Tests for Expense sharing rules."""

    def _expense(self, **overrides) -> Expense:
        fields = dict(
            owner_id=uuid4(),
            title="Groceries",
            amount=Decimal("150000.00"),
            category=ExpenseCategory.GROCERIES,
            expense_date=date(2026, 3, 10),
        )
        fields.update(overrides)
        return Expense(**fields)

    def test_personal_expense_creation(self):
        expense = self._expense()
        assert not expense.is_shared
        assert expense.shared_percentage is None

    def test_shared_expense_requires_percentage(self):
        """A shared expense without a percentage is rejected."""
        with pytest.raises(PydanticValidationError, match="shared_percentage"):
            self._expense(is_shared=True, couple_id=uuid4())

    def test_shared_expense_requires_couple(self):
        with pytest.raises(PydanticValidationError, match="couple"):
            self._expense(is_shared=True, shared_percentage=Decimal("50"))

    def test_amount_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            self._expense(amount=Decimal("0"))

    def test_amount_limited_to_cents(self):
        with pytest.raises(PydanticValidationError):
            self._expense(amount=Decimal("10.001"))

    def test_percentage_out_of_range(self):
        with pytest.raises(PydanticValidationError):
            self._expense(is_shared=True, couple_id=uuid4(), shared_percentage=Decimal("101"))

    def test_unknown_category_rejected(self):
        with pytest.raises(PydanticValidationError):
            self._expense(category="lottery")

    def test_patch_forbids_protected_fields(self):
        """owner_id and status cannot be set through a patch."""
        with pytest.raises(PydanticValidationError):
            ExpensePatch.model_validate({"owner_id": str(uuid4())})
        with pytest.raises(PydanticValidationError):
            ExpensePatch.model_validate({"status": "approved"})


class TestGoalModels:
    """Tests for Goal, milestones and contribution settings."""

    def _goal(self, **overrides) -> Goal:
        fields = dict(
            owner_id=uuid4(),
            title="Emergency fund",
            target_amount=Decimal("1000.00"),
        )
        fields.update(overrides)
        return Goal(**fields)

    def test_goal_defaults(self):
        goal = self._goal()
        assert goal.current_amount == Decimal("0")
        assert goal.contribution_method == ContributionMethod.EQUAL
        assert not goal.is_shared

    def test_milestones_sorted_ascending(self):
        """Milestones are kept in ascending percentage order."""
        goal = self._goal(milestones=[
            Milestone(percentage=Decimal("75")),
            Milestone(percentage=Decimal("25")),
            Milestone(percentage=Decimal("50")),
        ])
        assert [m.percentage for m in goal.milestones] == [
            Decimal("25"), Decimal("50"), Decimal("75"),
        ]

    def test_duplicate_milestones_rejected(self):
        with pytest.raises(PydanticValidationError, match="unique"):
            self._goal(milestones=[
                Milestone(percentage=Decimal("50")),
                Milestone(percentage=Decimal("50")),
            ])

    def test_milestone_percentage_range(self):
        with pytest.raises(PydanticValidationError):
            Milestone(percentage=Decimal("0"))
        with pytest.raises(PydanticValidationError):
            Milestone(percentage=Decimal("101"))

    def test_contribution_discriminator(self):
        """The method tag selects the settings shape."""
        goal = self._goal(contribution={
            "method": "custom",
            "member_a_amount": "600.00",
            "member_b_amount": "400.00",
        })
        assert isinstance(goal.contribution, CustomContribution)
        assert goal.contribution_method == ContributionMethod.CUSTOM

    def test_unknown_contribution_method_rejected(self):
        with pytest.raises(PydanticValidationError):
            self._goal(contribution={"method": "whoever_pays"})

    def test_percentages_must_sum_to_100(self):
        """70/25 is rejected; 60/40 is accepted."""
        with pytest.raises(PydanticValidationError, match="sum to 100"):
            PercentageContribution(
                member_a_percentage=Decimal("70"),
                member_b_percentage=Decimal("25"),
            )
        ok = PercentageContribution(
            member_a_percentage=Decimal("60"),
            member_b_percentage=Decimal("40"),
        )
        assert ok.method == "percentage"

    def test_percentage_settings_need_both_fields(self):
        with pytest.raises(PydanticValidationError):
            PercentageContribution.model_validate({"member_a_percentage": "100"})

    def test_equal_settings_reject_extra_fields(self):
        with pytest.raises(PydanticValidationError):
            EqualContribution.model_validate({"method": "equal", "member_a_amount": "5"})

    def test_goal_patch_forbids_protected_fields(self):
        """Amounts and status never move through a patch."""
        for field, value in (
            ("current_amount", "500.00"),
            ("status", "completed"),
            ("owner_id", str(uuid4())),
            ("couple_id", str(uuid4())),
        ):
            with pytest.raises(PydanticValidationError):
                GoalPatch.model_validate({field: value})

    def test_goal_draft_seed_cannot_be_negative(self):
        with pytest.raises(PydanticValidationError):
            GoalDraft(title="Trip", target_amount=Decimal("100"), current_amount=Decimal("-1"))


class TestContributionEvent:
    """Tests for ledger events."""

    def test_event_is_frozen(self):
        """Ledger events are immutable once built."""
        event = ContributionEvent(
            goal_id=uuid4(),
            user_id=uuid4(),
            amount=Decimal("250.00"),
            balance_after=Decimal("250.00"),
        )
        with pytest.raises(PydanticValidationError):
            event.amount = Decimal("1")

    def test_signed_amount(self):
        withdrawal = ContributionEvent(
            goal_id=uuid4(),
            user_id=uuid4(),
            type=ContributionType.WITHDRAWAL,
            amount=Decimal("40.00"),
            balance_after=Decimal("60.00"),
        )
        assert withdrawal.signed_amount == Decimal("-40.00")

    def test_amount_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            ContributionEvent(
                goal_id=uuid4(),
                user_id=uuid4(),
                amount=Decimal("0"),
                balance_after=Decimal("0"),
            )


class TestAuditModels:
    """Tests for audit event models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.COUPLE_INVITED,
            entity_type="couple",
            entity_id=uuid4(),
            description="Invitation created",
        )
        assert event.event_type == AuditEventType.COUPLE_INVITED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.GOAL_COMPLETED,
            entity_type="goal",
            entity_id=uuid4(),
            description="Goal completed",
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "goal_completed"
        assert log_dict["entity_type"] == "goal"

    def test_builder_couple_invited_omits_token(self):
        """Invitation tokens never reach the audit trail."""
        couple_id, inviter, invitee = uuid4(), uuid4(), uuid4()
        event = AuditEventBuilder.couple_invited(
            couple_id, inviter, invitee, NOW + timedelta(hours=24)
        )
        assert event.entity_id == couple_id
        assert event.actor_id == inviter
        assert set(event.details) == {"invitee_id", "expires_at"}

    def test_builder_accept_rejected_is_warning(self):
        event = AuditEventBuilder.couple_accept_rejected(uuid4(), "invitation_expired")
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "invitation_expired"

    def test_builder_ledger_recorded(self):
        event = AuditEventBuilder.ledger_recorded(
            AuditEventType.WITHDRAWAL_RECORDED,
            uuid4(),
            uuid4(),
            amount="40.00",
            balance_after="60.00",
        )
        assert event.description == "Withdrawal of 40.00 recorded"
        assert event.details["balance_after"] == "60.00"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
