"""
Finance Aggregator

DESIGN DECISION: Aggregation is DETERMINISTIC and read-only.
The module-level functions are pure: given expenses, goals and a clock
reading they compute report views, never write, and never raise domain
errors. Absence of data yields zeros and empty lists.

FinanceAggregator is a thin async facade that loads what a user can see
from storage and feeds it to those functions.

Money in report views is rounded to cents (banker's rounding); ratios are
left exact.
"""

import calendar
from collections import defaultdict
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

from couple_finance.calculations.split import split_summary
from couple_finance.models.common import HUNDRED, round_money, utc_now
from couple_finance.models.couple import BudgetPeriod, Couple, PrivacySettings
from couple_finance.models.expense import Expense, ExpenseStatus
from couple_finance.models.goal import Goal, GoalPriority, GoalStatus
from couple_finance.models.reports import (
    BudgetUsage,
    CategoryGoalStats,
    CategoryMonthTotal,
    CategoryTotal,
    FinancialSummary,
    GoalOverview,
    MonthlyBucket,
    Prediction,
    PriorityGoalStats,
    SpendingTrends,
    TrendInsights,
)
from couple_finance.services.storage import (
    CoupleStorageInterface,
    ExpenseStorageInterface,
    GoalStorageInterface,
)


ZERO = Decimal("0")
FORECAST_WINDOW = 3


# =============================================================================
# CALENDAR HELPERS
# =============================================================================

def add_months(day: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def period_bounds(period: BudgetPeriod, today: date) -> tuple[date, date]:
    """First and last day (inclusive) of the period containing today."""
    if period == BudgetPeriod.WEEKLY:
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)
    if period == BudgetPeriod.YEARLY:
        return date(today.year, 1, 1), date(today.year, 12, 31)
    last_day = calendar.monthrange(today.year, today.month)[1]
    return date(today.year, today.month, 1), date(today.year, today.month, last_day)


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return round_money(part / whole * HUNDRED)


def _counted(expenses: Iterable[Expense]) -> list[Expense]:
    """Rejected expenses never count as spending."""
    return [e for e in expenses if e.status != ExpenseStatus.REJECTED]


def _between(expenses: Iterable[Expense], start: Optional[date], end: Optional[date]) -> list[Expense]:
    return [
        e for e in _counted(expenses)
        if (start is None or e.expense_date >= start)
        and (end is None or e.expense_date <= end)
    ]


# =============================================================================
# EXPENSE VIEWS
# =============================================================================

def totals_by_category(
    expenses: Iterable[Expense],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[CategoryTotal]:
    """Spending per category within [start, end], largest first."""
    totals: dict = defaultdict(lambda: [ZERO, 0])
    for expense in _between(expenses, start, end):
        entry = totals[expense.category]
        entry[0] += expense.amount
        entry[1] += 1

    rows = [
        CategoryTotal(category=category, total=round_money(total), count=count)
        for category, (total, count) in totals.items()
    ]
    rows.sort(key=lambda row: (-row.total, row.category.value))
    return rows


def monthly_trend(
    expenses: Iterable[Expense],
    months: int = 6,
    now: Optional[datetime] = None,
) -> list[MonthlyBucket]:
    """
    Spending per calendar month over the last ``months`` months.

    Only months that have expenses get a bucket. Ascending by month.
    """
    today = (now or utc_now()).date()
    window = _between(expenses, add_months(today, -months), today)

    grouped: dict[str, list[Decimal]] = defaultdict(list)
    for expense in window:
        grouped[month_key(expense.expense_date)].append(expense.amount)

    buckets = []
    for month in sorted(grouped):
        amounts = grouped[month]
        total = sum(amounts, ZERO)
        buckets.append(MonthlyBucket(
            month=month,
            total=round_money(total),
            average=round_money(total / len(amounts)),
            count=len(amounts),
        ))
    return buckets


def forecast(
    buckets: list[MonthlyBucket],
    now: Optional[datetime] = None,
    periods: int = 3,
) -> list[Prediction]:
    """
    Naive forecast: the average of the trailing three monthly totals,
    repeated for each of the next ``periods`` months.

    Fewer than three buckets gives no forecast.
    """
    if len(buckets) < FORECAST_WINDOW:
        return []

    recent = buckets[-FORECAST_WINDOW:]
    average = sum((b.total for b in recent), ZERO) / FORECAST_WINDOW
    first_of_month = (now or utc_now()).date().replace(day=1)

    return [
        Prediction(
            month=month_key(add_months(first_of_month, offset)),
            predicted_amount=round_money(average),
            confidence="medium",
        )
        for offset in range(1, periods + 1)
    ]


def budget_usage(
    couple: Couple,
    expenses: Iterable[Expense],
    now: Optional[datetime] = None,
) -> BudgetUsage:
    """
    How much of the couple's shared budget the current period has used.

    Counts every non-rejected expense carrying the couple's id and dated
    inside the current weekly, monthly or yearly period.
    """
    start, end = period_bounds(couple.budget_period, (now or utc_now()).date())
    used = sum(
        (e.amount for e in _between(expenses, start, end) if e.couple_id == couple.id),
        ZERO,
    )
    budget = couple.shared_budget
    ratio = used / budget if budget > 0 else ZERO

    return BudgetUsage(
        couple_id=couple.id,
        budget_period=couple.budget_period,
        period_start=start,
        period_end=end,
        budget=budget,
        used=round_money(used),
        remaining=round_money(max(ZERO, budget - used)),
        ratio=ratio,
        percentage=round_money(ratio * HUNDRED),
    )


def spending_trends(
    expenses: Iterable[Expense],
    months: int = 12,
    now: Optional[datetime] = None,
) -> SpendingTrends:
    """Monthly and category-by-month trends, a forecast and headline insights."""
    now = now or utc_now()
    expenses = list(expenses)
    buckets = monthly_trend(expenses, months, now)

    today = now.date()
    by_category_month: dict = defaultdict(Decimal)
    for expense in _between(expenses, add_months(today, -months), today):
        by_category_month[(month_key(expense.expense_date), expense.category)] += expense.amount

    category_trends = [
        CategoryMonthTotal(category=category, month=month, total=round_money(total))
        for (month, category), total in sorted(by_category_month.items())
    ]

    insights = TrendInsights()
    if buckets:
        grand_total = sum((b.total for b in buckets), ZERO)
        insights = TrendInsights(
            total_months=len(buckets),
            average_monthly_spending=round_money(grand_total / len(buckets)),
            highest_spending_month=max(buckets, key=lambda b: b.total).month,
            lowest_spending_month=min(buckets, key=lambda b: b.total).month,
        )

    return SpendingTrends(
        monthly_trends=buckets,
        category_trends=category_trends,
        predictions=forecast(buckets, now),
        insights=insights,
    )


# =============================================================================
# SUMMARY AND GOAL VIEWS
# =============================================================================

def _summary_start(period: str, today: date) -> date:
    if period == "week":
        return today - timedelta(days=7)
    if period == "year":
        return date(today.year, 1, 1)
    return today.replace(day=1)


def financial_summary(
    user_id: UUID,
    couple_id: Optional[UUID],
    expenses: Iterable[Expense],
    goals: Iterable[Goal],
    period: str = "month",
    now: Optional[datetime] = None,
    privacy: Optional[PrivacySettings] = None,
) -> FinancialSummary:
    """
    Headline figures for a user and their couple over a week, month or year.

    Records of the couple that the privacy settings hide from the user
    are left out. net_worth is savings minus the period's spending;
    savings_rate is savings as a percentage of that spending.
    """
    today = (now or utc_now()).date()
    start = _summary_start(period, today)
    privacy = privacy or PrivacySettings()

    def in_scope(record) -> bool:
        return record.owner_id == user_id or (
            couple_id is not None and record.couple_id == couple_id
        )

    expenses = [
        e for e in expenses if in_scope(e) and privacy.shows_expense(user_id, e)
    ]
    goals = [g for g in goals if in_scope(g) and privacy.shows_goal(user_id, g)]

    in_period = _between(expenses, start, today)
    total_expenses = sum((e.amount for e in in_period), ZERO)
    shared_total, personal_total = split_summary(in_period)
    monthly_spending = sum(
        (e.amount for e in _between(expenses, today.replace(day=1), today)),
        ZERO,
    )

    total_goals_value = sum(
        (g.target_amount for g in goals if g.status == GoalStatus.ACTIVE), ZERO
    )
    total_savings = sum(
        (
            g.current_amount for g in goals
            if g.status in (GoalStatus.ACTIVE, GoalStatus.COMPLETED)
        ),
        ZERO,
    )
    completed = sum(1 for g in goals if g.status == GoalStatus.COMPLETED)

    return FinancialSummary(
        period=period,
        period_start=start,
        total_expenses=round_money(total_expenses),
        shared_expenses=round_money(shared_total),
        personal_expenses=round_money(personal_total),
        monthly_spending=round_money(monthly_spending),
        total_goals_value=round_money(total_goals_value),
        total_savings=round_money(total_savings),
        goal_completion_rate=_percent(Decimal(completed), Decimal(len(goals))),
        net_worth=round_money(total_savings - total_expenses),
        savings_rate=_percent(total_savings, total_expenses),
    )


def goal_overview(goals: Iterable[Goal]) -> GoalOverview:
    """
    Counts, progress and breakdowns across a set of goals.

    overall_progress covers active goals only; the category breakdown
    covers every goal, busiest category first.
    """
    goals = list(goals)
    if not goals:
        return GoalOverview()

    active = [g for g in goals if g.status == GoalStatus.ACTIVE]
    completed = [g for g in goals if g.status == GoalStatus.COMPLETED]
    active_target = sum((g.target_amount for g in active), ZERO)
    active_current = sum((g.current_amount for g in active), ZERO)

    by_category: dict = {}
    for goal in goals:
        stats = by_category.setdefault(goal.category, CategoryGoalStats(category=goal.category))
        stats.count += 1
        if goal.status == GoalStatus.COMPLETED:
            stats.completed += 1
        stats.total_target += goal.target_amount
        stats.total_current += goal.current_amount
    for stats in by_category.values():
        stats.progress = _percent(stats.total_current, stats.total_target)

    by_priority = []
    for priority in GoalPriority:
        matching = [g for g in goals if g.priority == priority]
        if matching:
            by_priority.append(PriorityGoalStats(
                priority=priority,
                count=len(matching),
                completed=sum(1 for g in matching if g.status == GoalStatus.COMPLETED),
            ))

    return GoalOverview(
        total_goals=len(goals),
        active_goals=len(active),
        completed_goals=len(completed),
        shared_goals=sum(1 for g in goals if g.is_shared),
        total_target_amount=round_money(active_target),
        total_current_amount=round_money(active_current),
        overall_progress=_percent(active_current, active_target),
        completion_rate=_percent(Decimal(len(completed)), Decimal(len(goals))),
        by_category=sorted(
            by_category.values(),
            key=lambda s: (-s.count, s.category.value),
        ),
        by_priority=by_priority,
    )


# =============================================================================
# STORAGE-BACKED FACADE
# =============================================================================

class FinanceAggregator:
    """
    Answers report questions for one user from stored data.

    GUARANTEES:
    - Only returns figures computed from real stored records
    - Never writes
    - A user with no data gets zero-valued views, not errors
    """

    def __init__(
        self,
        couples: CoupleStorageInterface,
        expenses: ExpenseStorageInterface,
        goals: GoalStorageInterface,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._couples = couples
        self._expenses = expenses
        self._goals = goals
        self._clock = clock

    async def _scope(self, user_id: UUID) -> tuple[Optional[Couple], list[Expense], list[Goal]]:
        """The user's records plus what their couple's privacy settings let them see."""
        couple = await self._couples.find_active_couple_of(user_id)
        couple_id = couple.id if couple else None
        expenses = await self._expenses.list_expenses(owner_id=user_id, couple_id=couple_id)
        goals = await self._goals.list_goals(owner_id=user_id, couple_id=couple_id)
        if couple is not None:
            privacy = couple.settings.privacy
            expenses = [e for e in expenses if privacy.shows_expense(user_id, e)]
            goals = [g for g in goals if privacy.shows_goal(user_id, g)]
        return couple, expenses, goals

    async def summary(self, user_id: UUID, period: str = "month") -> FinancialSummary:
        couple, expenses, goals = await self._scope(user_id)
        return financial_summary(
            user_id,
            couple.id if couple else None,
            expenses,
            goals,
            period,
            self._clock(),
            couple.settings.privacy if couple else None,
        )

    async def category_breakdown(self, user_id: UUID, months: int = 6) -> list[CategoryTotal]:
        _, expenses, _ = await self._scope(user_id)
        today = self._clock().date()
        return totals_by_category(expenses, add_months(today, -months), today)

    async def trends(self, user_id: UUID, months: int = 12) -> SpendingTrends:
        _, expenses, _ = await self._scope(user_id)
        return spending_trends(expenses, months, self._clock())

    async def goals(self, user_id: UUID) -> GoalOverview:
        _, _, goals = await self._scope(user_id)
        return goal_overview(goals)

    async def budget(self, user_id: UUID) -> Optional[BudgetUsage]:
        """Budget usage of the user's active couple; None outside a couple."""
        couple = await self._couples.find_active_couple_of(user_id)
        if couple is None:
            return None
        expenses = await self._expenses.list_expenses(couple_id=couple.id)
        return budget_usage(couple, expenses, self._clock())
