"""
Contribution Ledger Models

DESIGN DECISION: Ledger events are append-only. A contribution or
withdrawal is never edited or deleted once written; corrections are new
events.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from couple_finance.models.common import utc_now


class ContributionType(str, Enum):
    CONTRIBUTION = "contribution"
    WITHDRAWAL = "withdrawal"


class ContributionEvent(BaseModel):
    """One movement of money into or out of a goal."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    user_id: UUID
    type: ContributionType = ContributionType.CONTRIBUTION
    amount: Decimal = Field(..., gt=0, decimal_places=2, description="Always positive")
    timestamp: datetime = Field(default_factory=utc_now)
    note: Optional[str] = Field(default=None, max_length=500)
    balance_after: Decimal = Field(
        ...,
        ge=0,
        description="Goal's current_amount right after this event"
    )

    @property
    def signed_amount(self) -> Decimal:
        if self.type == ContributionType.WITHDRAWAL:
            return -self.amount
        return self.amount
