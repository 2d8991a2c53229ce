"""
Couple Models

A Couple binds exactly two user accounts. It is created PENDING by the
inviting member, becomes ACTIVE when the invited member accepts before the
invitation expires, and is deleted outright when either member leaves.

DESIGN DECISION: Couple settings are a typed structure, not a JSON blob.
Unknown keys are rejected so a typo never silently disables a feature.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from couple_finance.models.common import utc_now
from couple_finance.models.expense import Expense
from couple_finance.models.goal import ContributionMethod, Goal


COUPLE_NAME_MAX_LENGTH = 100


class CoupleStatus(str, Enum):
    """
    Couple lifecycle status.

    INACTIVE is part of the stored contract but no operation produces it:
    leaving a couple deletes the record instead of archiving it.
    """
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class BudgetPeriod(str, Enum):
    """Period the shared budget applies to."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class UserAccount(BaseModel):
    """
    Minimal mirror of the identity collaborator's user record.

    Only the fields the core reads or writes are modelled.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    email: str = Field(..., min_length=3, max_length=254)
    display_name: Optional[str] = Field(default=None, max_length=100)
    couple_id: Optional[UUID] = Field(
        default=None,
        description="The user's ACTIVE couple, if any"
    )

    @property
    def label(self) -> str:
        return self.display_name or self.email.split("@")[0]


# =============================================================================
# SETTINGS
# =============================================================================

class NotificationSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    expense_alerts: bool = True
    goal_reminders: bool = True
    budget_warnings: bool = True


class PrivacySettings(BaseModel):
    """
    What a member sees of the partner's records.

    A viewer always sees their own records. With share_individual_expenses
    off, the partner's personal expenses are hidden but shared ones stay
    visible. With share_goals off, the partner's goals are hidden from
    lists and reports.
    """
    model_config = ConfigDict(extra="forbid")

    share_individual_expenses: bool = True
    share_goals: bool = True

    def shows_expense(self, viewer_id: UUID, expense: Expense) -> bool:
        return (
            expense.owner_id == viewer_id
            or expense.is_shared
            or self.share_individual_expenses
        )

    def shows_goal(self, viewer_id: UUID, goal: Goal) -> bool:
        return goal.owner_id == viewer_id or self.share_goals


class CoupleSettings(BaseModel):
    """Recognized couple configuration keys."""
    model_config = ConfigDict(extra="forbid")

    expense_approval_required: bool = Field(
        default=False,
        description="Shared expenses start pending until the partner approves"
    )
    expense_limit_individual: Optional[Decimal] = Field(
        default=None,
        ge=0,
        decimal_places=2,
        description="Shared expenses above this amount need partner approval"
    )
    goal_contribution_method: ContributionMethod = Field(
        default=ContributionMethod.EQUAL,
        description="Default contribution method for new shared goals"
    )
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    privacy: PrivacySettings = Field(default_factory=PrivacySettings)

    def requires_approval(self, amount: Decimal) -> bool:
        """Does a shared expense of this amount need partner approval?"""
        if self.expense_approval_required:
            return True
        if self.expense_limit_individual is not None:
            return amount > self.expense_limit_individual
        return False


# =============================================================================
# COUPLE
# =============================================================================

class Couple(BaseModel):
    """
    A two-member financial relationship.

    member_a is always the inviter and member_b the invitee. The slots are
    fixed for the lifetime of the record.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    member_a: UUID = Field(..., description="Inviting member")
    member_b: UUID = Field(..., description="Invited member")
    couple_name: Optional[str] = Field(
        default=None, min_length=2, max_length=COUPLE_NAME_MAX_LENGTH
    )
    relationship_start_date: Optional[date] = None

    status: CoupleStatus = CoupleStatus.PENDING
    invitation_token: Optional[str] = Field(
        default=None,
        description="Opaque secret, present only while pending"
    )
    invitation_expiry: Optional[datetime] = Field(
        default=None,
        description="Acceptance deadline, present only while pending"
    )

    shared_budget: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    budget_period: BudgetPeriod = BudgetPeriod.MONTHLY
    settings: CoupleSettings = Field(default_factory=CoupleSettings)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(
        default=0,
        ge=0,
        description="Incremented on every committed change (compare-and-set key)"
    )

    @model_validator(mode='after')
    def validate_invariants(self) -> 'Couple':
        if self.member_a == self.member_b:
            raise ValueError("User cannot be in a couple with themselves")

        has_token = self.invitation_token is not None
        has_expiry = self.invitation_expiry is not None
        if self.status == CoupleStatus.PENDING:
            if not (has_token and has_expiry):
                raise ValueError("Pending couple requires invitation token and expiry")
        elif has_token or has_expiry:
            raise ValueError("Only a pending couple may hold an invitation")
        return self

    @property
    def members(self) -> tuple[UUID, UUID]:
        return (self.member_a, self.member_b)

    def is_member(self, user_id: UUID) -> bool:
        return user_id in self.members

    def partner_of(self, user_id: UUID) -> UUID:
        """Return the other member. Raises ValueError for non-members."""
        if user_id == self.member_a:
            return self.member_b
        if user_id == self.member_b:
            return self.member_a
        raise ValueError(f"User {user_id} is not a member of couple {self.id}")

    def is_invitation_valid(self, now: datetime) -> bool:
        """Expiry is inclusive: the invitation is dead only once now > expiry."""
        return (
            self.status == CoupleStatus.PENDING
            and self.invitation_token is not None
            and self.invitation_expiry is not None
            and now <= self.invitation_expiry
        )

    def activated(self, now: datetime) -> 'Couple':
        """Return the ACTIVE version of this pending couple."""
        return self.model_copy(update={
            "status": CoupleStatus.ACTIVE,
            "invitation_token": None,
            "invitation_expiry": None,
            "relationship_start_date": self.relationship_start_date or now.date(),
            "updated_at": now,
        })


class CouplePatch(BaseModel):
    """
    Fields a member may change on an active couple.

    Status, member slots and invitation fields are deliberately absent;
    extra="forbid" turns any attempt to send them into a validation error.
    """
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    couple_name: Optional[str] = Field(
        default=None, min_length=2, max_length=COUPLE_NAME_MAX_LENGTH
    )
    relationship_start_date: Optional[date] = None
    shared_budget: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    budget_period: Optional[BudgetPeriod] = None
    settings: Optional[CoupleSettings] = None
