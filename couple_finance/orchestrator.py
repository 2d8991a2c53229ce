"""
Wiring for Couple Finance

This module ties together all the components: one storage backend, the
audit logger, the rate limiter and the domain services built on them.

DESIGN DECISION: Every collaborator is injected. The factory below only
picks defaults (in-memory storage, local-only audit log, settings from the
environment); callers embedding the core pass their own storage, clock or
token factory instead.
"""

from datetime import datetime
from typing import Callable, NamedTuple, Optional

import structlog

from couple_finance.audit import AuditLogger
from couple_finance.config import get_settings, validate_all_settings
from couple_finance.models.common import utc_now
from couple_finance.queries import FinanceAggregator
from couple_finance.services.couples import CoupleLifecycle
from couple_finance.services.expenses import ExpenseService
from couple_finance.services.goals import GoalService
from couple_finance.services.ledger import ContributionLedger
from couple_finance.services.ratelimit import RateLimiter, SlidingWindowRateLimiter
from couple_finance.services.storage import AuditStorageInterface, InMemoryStorage
from couple_finance.validation import RecordValidator


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    storage: InMemoryStorage
    audit_logger: AuditLogger
    couples: CoupleLifecycle
    expenses: ExpenseService
    goals: GoalService
    ledger: ContributionLedger
    reports: FinanceAggregator


def create_app_components(
    storage: Optional[InMemoryStorage] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Callable[[], datetime] = utc_now,
    token_factory: Optional[Callable[[], str]] = None,
    rate_limiter: Optional[RateLimiter] = None,
    use_rate_limit: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        storage: Backend implementing every storage interface.
                 Defaults to a fresh InMemoryStorage.
        audit_storage: Where audit events are persisted.
                       If None, audit events are only logged locally.
        clock: Shared clock for every service
        token_factory: Invitation token generator (tests pass a fixed one)
        rate_limiter: Limiter consulted before invitations
        use_rate_limit: Build a SlidingWindowRateLimiter when none is given

    Returns:
        AppComponents with every service wired to the same storage
    """
    settings = get_settings()
    checks = validate_all_settings()
    failed = [name for name, ok in checks.items() if ok is False]
    if failed:
        logger.warning("settings_invalid", sections=failed)

    storage = storage or InMemoryStorage()
    audit_logger = AuditLogger(audit_storage)
    validator = RecordValidator(clock)

    if rate_limiter is None and use_rate_limit:
        rate_limiter = SlidingWindowRateLimiter(clock=clock)

    couples = CoupleLifecycle(
        users=storage,
        couples=storage,
        audit_logger=audit_logger,
        rate_limiter=rate_limiter,
        clock=clock,
        token_factory=token_factory,
        settings=settings.invitation,
        validator=validator,
    )
    expenses = ExpenseService(
        users=storage,
        couples=storage,
        expenses=storage,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.app,
        validator=validator,
    )
    goals = GoalService(
        users=storage,
        couples=storage,
        goals=storage,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.goals,
        validator=validator,
    )
    ledger = ContributionLedger(
        goals=storage,
        ledger=storage,
        couples=storage,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.goals,
        validator=validator,
    )
    reports = FinanceAggregator(
        couples=storage,
        expenses=storage,
        goals=storage,
        clock=clock,
    )

    return AppComponents(
        storage=storage,
        audit_logger=audit_logger,
        couples=couples,
        expenses=expenses,
        goals=goals,
        ledger=ledger,
        reports=reports,
    )
