"""Report aggregation package."""

from couple_finance.queries.aggregator import (
    FinanceAggregator,
    budget_usage,
    financial_summary,
    forecast,
    goal_overview,
    monthly_trend,
    spending_trends,
    totals_by_category,
)

__all__ = [
    "FinanceAggregator",
    "budget_usage",
    "financial_summary",
    "forecast",
    "goal_overview",
    "monthly_trend",
    "spending_trends",
    "totals_by_category",
]
