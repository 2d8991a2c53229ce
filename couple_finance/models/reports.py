"""
Report Models

Read-only views produced by the finance aggregator. Absence of data is
represented by zeros and empty lists, never by an error.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from couple_finance.models.couple import BudgetPeriod
from couple_finance.models.expense import ExpenseCategory
from couple_finance.models.goal import GoalCategory, GoalPriority


ZERO = Decimal("0")


class CategoryTotal(BaseModel):
    category: ExpenseCategory
    total: Decimal
    count: int = Field(ge=0)


class MonthlyBucket(BaseModel):
    """Spending of one calendar month."""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    total: Decimal
    average: Decimal
    count: int = Field(ge=0)


class CategoryMonthTotal(BaseModel):
    category: ExpenseCategory
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    total: Decimal


class Prediction(BaseModel):
    """Naive forecast for one future month."""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$")
    predicted_amount: Decimal
    confidence: str = "medium"


class TrendInsights(BaseModel):
    total_months: int = 0
    average_monthly_spending: Decimal = ZERO
    highest_spending_month: Optional[str] = None
    lowest_spending_month: Optional[str] = None


class SpendingTrends(BaseModel):
    monthly_trends: list[MonthlyBucket] = Field(default_factory=list)
    category_trends: list[CategoryMonthTotal] = Field(default_factory=list)
    predictions: list[Prediction] = Field(default_factory=list)
    insights: TrendInsights = Field(default_factory=TrendInsights)


class BudgetUsage(BaseModel):
    """How much of a couple's shared budget the current period has used."""

    couple_id: UUID
    budget_period: BudgetPeriod
    period_start: date
    period_end: date
    budget: Decimal
    used: Decimal
    remaining: Decimal
    ratio: Decimal = Field(description="used / budget, 0 when no budget is set")
    percentage: Decimal

    @property
    def is_over_budget(self) -> bool:
        return self.budget > 0 and self.used > self.budget


class FinancialSummary(BaseModel):
    period: str = Field(..., pattern="^(week|month|year)$")
    period_start: date
    total_expenses: Decimal = ZERO
    shared_expenses: Decimal = ZERO
    personal_expenses: Decimal = ZERO
    monthly_spending: Decimal = ZERO
    total_goals_value: Decimal = ZERO
    total_savings: Decimal = ZERO
    goal_completion_rate: Decimal = ZERO
    net_worth: Decimal = ZERO
    savings_rate: Decimal = ZERO


class CategoryGoalStats(BaseModel):
    category: GoalCategory
    count: int = 0
    completed: int = 0
    total_target: Decimal = ZERO
    total_current: Decimal = ZERO
    progress: Decimal = ZERO


class PriorityGoalStats(BaseModel):
    priority: GoalPriority
    count: int = 0
    completed: int = 0


class GoalOverview(BaseModel):
    total_goals: int = 0
    active_goals: int = 0
    completed_goals: int = 0
    shared_goals: int = 0
    total_target_amount: Decimal = ZERO
    total_current_amount: Decimal = ZERO
    overall_progress: Decimal = ZERO
    completion_rate: Decimal = ZERO
    by_category: list[CategoryGoalStats] = Field(default_factory=list)
    by_priority: list[PriorityGoalStats] = Field(default_factory=list)
