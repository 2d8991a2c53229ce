"""
Expense Models

An Expense is a single spend event. It is personal unless is_shared is set,
in which case shared_percentage of it is attributed to the owner's couple.

DESIGN DECISION: shared and personal amounts are never stored. They are
derived on demand by the split calculator so they can never drift from
amount and shared_percentage.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from couple_finance.models.common import utc_now


class ExpenseCategory(str, Enum):
    """Closed set of expense categories."""
    FOOD_DINING = "food_dining"
    TRANSPORTATION = "transportation"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    BILLS_UTILITIES = "bills_utilities"
    HEALTHCARE = "healthcare"
    EDUCATION = "education"
    TRAVEL = "travel"
    GROCERIES = "groceries"
    PERSONAL_CARE = "personal_care"
    GIFTS_DONATIONS = "gifts_donations"
    HOME_GARDEN = "home_garden"
    SPORTS_FITNESS = "sports_fitness"
    TECHNOLOGY = "technology"
    INSURANCE = "insurance"
    INVESTMENTS = "investments"
    OTHER = "other"


class PaymentMethod(str, Enum):
    CASH = "cash"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    E_WALLET = "e_wallet"
    OTHER = "other"


class ExpenseStatus(str, Enum):
    """
    Approval status.

    Personal expenses are always APPROVED. Shared expenses start PENDING
    only when the couple's settings demand partner approval.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Expense(BaseModel):
    """A single spend event, optionally shared with the owner's couple."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: UUID = Field(..., description="Creator")
    couple_id: Optional[UUID] = Field(
        default=None,
        description="Owner's active couple at creation time; None means personal"
    )

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: ExpenseCategory
    expense_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    location: Optional[str] = Field(default=None, max_length=200)

    is_shared: bool = False
    shared_percentage: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=100,
        decimal_places=2,
        description="Part of the amount attributed to the couple. Ignored unless shared."
    )

    status: ExpenseStatus = ExpenseStatus.APPROVED
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None

    tags: list[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_sharing(self) -> 'Expense':
        if self.is_shared:
            if self.shared_percentage is None:
                raise ValueError("Shared expense requires shared_percentage")
            if self.couple_id is None:
                raise ValueError("Shared expense requires a couple")
        return self


class ExpenseDraft(BaseModel):
    """Caller input for creating an expense."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    category: ExpenseCategory
    expense_date: date
    payment_method: PaymentMethod = PaymentMethod.CASH
    location: Optional[str] = Field(default=None, max_length=200)
    is_shared: bool = False
    shared_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100, decimal_places=2)
    tags: list[str] = Field(default_factory=list)


class ExpensePatch(BaseModel):
    """
    Fields the creator may change.

    owner_id, couple_id, status and the approval stamp are protected.
    """
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)
    category: Optional[ExpenseCategory] = None
    expense_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    location: Optional[str] = Field(default=None, max_length=200)
    is_shared: Optional[bool] = None
    shared_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100, decimal_places=2)
    tags: Optional[list[str]] = None
