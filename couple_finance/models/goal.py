"""
Savings Goal Models

A Goal is a savings target owned by its creator and, when couple_id is
set, shared with the creator's partner.

DESIGN DECISION: The contribution split is a tagged union keyed on
``method``. Each method carries exactly the fields it needs, so a
percentage split without percentages (or a custom split with negative
amounts) cannot be constructed at all.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)

from couple_finance.models.common import HUNDRED, round_money, utc_now


# =============================================================================
# ENUMS
# =============================================================================

class GoalStatus(str, Enum):
    """
    Goal status.

    COMPLETED is reached automatically when the saved amount meets the
    target. COMPLETED and CANCELLED are terminal.
    """
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class GoalPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class GoalCategory(str, Enum):
    EMERGENCY_FUND = "emergency_fund"
    VACATION_TRAVEL = "vacation_travel"
    HOME_PURCHASE = "home_purchase"
    CAR_PURCHASE = "car_purchase"
    WEDDING = "wedding"
    EDUCATION = "education"
    RETIREMENT = "retirement"
    INVESTMENT = "investment"
    DEBT_PAYOFF = "debt_payoff"
    HOME_IMPROVEMENT = "home_improvement"
    HEALTHCARE = "healthcare"
    BUSINESS = "business"
    GADGETS_ELECTRONICS = "gadgets_electronics"
    OTHER = "other"


class ContributionMethod(str, Enum):
    """How a shared goal's target is divided between the two members."""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    CUSTOM = "custom"


# =============================================================================
# CONTRIBUTION SETTINGS (tagged union)
# =============================================================================

class EqualContribution(BaseModel):
    model_config = ConfigDict(extra="forbid")

    method: Literal["equal"] = "equal"


class PercentageContribution(BaseModel):
    """Each member covers a percentage of the target. Must sum to 100."""
    model_config = ConfigDict(extra="forbid")

    method: Literal["percentage"] = "percentage"
    member_a_percentage: Decimal = Field(..., ge=0, le=100)
    member_b_percentage: Decimal = Field(..., ge=0, le=100)

    @model_validator(mode='after')
    def validate_total(self) -> 'PercentageContribution':
        total = self.member_a_percentage + self.member_b_percentage
        if total != HUNDRED:
            raise ValueError(f"Contribution percentages must sum to 100, got {total}")
        return self


class CustomContribution(BaseModel):
    """
    Each member commits a fixed amount.

    Amounts are not checked against the goal's target; partners may
    over- or under-commit.
    """
    model_config = ConfigDict(extra="forbid")

    method: Literal["custom"] = "custom"
    member_a_amount: Decimal = Field(..., ge=0, decimal_places=2)
    member_b_amount: Decimal = Field(..., ge=0, decimal_places=2)


ContributionSettings = Annotated[
    Union[EqualContribution, PercentageContribution, CustomContribution],
    Field(discriminator="method"),
]


# =============================================================================
# GOAL
# =============================================================================

class Milestone(BaseModel):
    """A percentage checkpoint. Once achieved it is never un-marked."""

    percentage: Decimal = Field(..., gt=0, le=100)
    achieved: bool = False
    achieved_date: Optional[datetime] = None


class Goal(BaseModel):
    """A savings target, personal or shared."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID = Field(..., description="Creator; the only user who may edit or delete")
    couple_id: Optional[UUID] = Field(
        default=None,
        description="Set for shared goals. May outlive the couple it points to."
    )

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: GoalCategory = GoalCategory.OTHER
    priority: GoalPriority = GoalPriority.MEDIUM

    target_amount: Decimal = Field(..., gt=0, decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    target_date: Optional[date] = None

    status: GoalStatus = GoalStatus.ACTIVE
    completed_at: Optional[datetime] = None

    contribution: ContributionSettings = Field(default_factory=EqualContribution)
    milestones: list[Milestone] = Field(default_factory=list)

    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_milestones(self) -> 'Goal':
        """Milestones are kept in ascending percentage order, no duplicates."""
        percentages = [m.percentage for m in self.milestones]
        if len(set(percentages)) != len(percentages):
            raise ValueError("Milestone percentages must be unique")
        self.milestones.sort(key=lambda m: m.percentage)
        return self

    @property
    def is_shared(self) -> bool:
        return self.couple_id is not None

    @property
    def contribution_method(self) -> ContributionMethod:
        return ContributionMethod(self.contribution.method)


# =============================================================================
# INPUT MODELS
# =============================================================================

class GoalDraft(BaseModel):
    """Caller input for creating a goal."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: GoalCategory = GoalCategory.OTHER
    priority: GoalPriority = GoalPriority.MEDIUM
    target_amount: Decimal = Field(..., gt=0, decimal_places=2)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    target_date: Optional[date] = None
    is_shared: bool = False
    contribution: Optional[ContributionSettings] = None
    milestone_percentages: list[Decimal] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=1000)


class GoalPatch(BaseModel):
    """
    Fields the creator may change after creation.

    status, current_amount, completed_at, owner_id and couple_id are
    protected: status moves only through pause/resume/cancel and automatic
    completion, amounts only through the contribution ledger. Milestones
    are set by percentage only; achievement is never set by hand.
    """
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[GoalCategory] = None
    priority: Optional[GoalPriority] = None
    target_amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    target_date: Optional[date] = None
    contribution: Optional[ContributionSettings] = None
    milestone_percentages: Optional[list[Annotated[Decimal, Field(gt=0, le=100)]]] = Field(
        default=None,
        description="Requested checkpoints; achieved ones are kept regardless"
    )
    tags: Optional[list[str]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class ProgressSnapshot(BaseModel):
    """Point-in-time progress of a goal. Exact decimals, never rounded."""

    current_amount: Decimal
    target_amount: Decimal
    remaining_amount: Decimal
    percentage: Decimal
    is_completed: bool


class ContributionTargets(BaseModel):
    """How much each member of a couple is expected to put towards a goal."""

    method: ContributionMethod
    member_a_id: UUID
    member_b_id: UUID
    member_a_share: Decimal
    member_b_share: Decimal

    def rounded(self) -> dict:
        """Presentation view with shares rounded to cents."""
        return {
            "method": self.method.value,
            "member_a_id": str(self.member_a_id),
            "member_b_id": str(self.member_b_id),
            "member_a_share": str(round_money(self.member_a_share)),
            "member_b_share": str(round_money(self.member_b_share)),
        }

    def share_of(self, user_id: UUID) -> Decimal:
        if user_id == self.member_a_id:
            return self.member_a_share
        if user_id == self.member_b_id:
            return self.member_b_share
        raise ValueError(f"User {user_id} has no share in these targets")


class GoalDetails(BaseModel):
    """A goal plus everything derived from it at one instant."""

    goal: Goal
    progress: ProgressSnapshot
    days_remaining: Optional[int] = None
    required_monthly_contribution: Optional[Decimal] = None
