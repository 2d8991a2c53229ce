"""
Data Models Package

This package contains all Pydantic models used in the Couple Finance core.
All data flowing through the system must conform to these schemas.
"""

from couple_finance.models.common import (
    ValidationIssue,
    round_money,
    utc_now,
)
from couple_finance.models.goal import (
    ContributionMethod,
    ContributionSettings,
    ContributionTargets,
    CustomContribution,
    EqualContribution,
    Goal,
    GoalCategory,
    GoalDetails,
    GoalDraft,
    GoalPatch,
    GoalPriority,
    GoalStatus,
    Milestone,
    PercentageContribution,
    ProgressSnapshot,
)
from couple_finance.models.couple import (
    BudgetPeriod,
    Couple,
    CouplePatch,
    CoupleSettings,
    CoupleStatus,
    NotificationSettings,
    PrivacySettings,
    UserAccount,
)
from couple_finance.models.expense import (
    Expense,
    ExpenseCategory,
    ExpenseDraft,
    ExpensePatch,
    ExpenseStatus,
    PaymentMethod,
)
from couple_finance.models.contribution import (
    ContributionEvent,
    ContributionType,
)
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
from couple_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Common
    "ValidationIssue",
    "round_money",
    "utc_now",
    # Goal models
    "ContributionMethod",
    "ContributionSettings",
    "ContributionTargets",
    "CustomContribution",
    "EqualContribution",
    "Goal",
    "GoalCategory",
    "GoalDetails",
    "GoalDraft",
    "GoalPatch",
    "GoalPriority",
    "GoalStatus",
    "Milestone",
    "PercentageContribution",
    "ProgressSnapshot",
    # Couple models
    "BudgetPeriod",
    "Couple",
    "CouplePatch",
    "CoupleSettings",
    "CoupleStatus",
    "NotificationSettings",
    "PrivacySettings",
    "UserAccount",
    # Expense models
    "Expense",
    "ExpenseCategory",
    "ExpenseDraft",
    "ExpensePatch",
    "ExpenseStatus",
    "PaymentMethod",
    # Ledger models
    "ContributionEvent",
    "ContributionType",
    # Report models
    "BudgetUsage",
    "CategoryGoalStats",
    "CategoryMonthTotal",
    "CategoryTotal",
    "FinancialSummary",
    "GoalOverview",
    "MonthlyBucket",
    "Prediction",
    "PriorityGoalStats",
    "SpendingTrends",
    "TrendInsights",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
