"""
Audit Logger

DESIGN DECISION: Every committed transition on shared money is logged.
This provides:
1. Complete traceability
2. Debugging capability when partners disagree about history
3. Members can see the history of their couple and goals

The audit logger:
- Is async to not block main flow
- Gracefully handles storage failures (an audit write never undoes a commit)
- Supports correlation IDs to trace related events
- Never receives invitation tokens
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from couple_finance.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from couple_finance.models.common import round_money
from couple_finance.models.contribution import ContributionEvent, ContributionType
from couple_finance.models.expense import Expense
from couple_finance.models.goal import Milestone
from couple_finance.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An AuditStorageInterface, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("couple_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # =========================================================================
    # COUPLE LIFECYCLE
    # =========================================================================

    async def log_couple_invited(
        self,
        couple_id: UUID,
        inviter_id: UUID,
        invitee_id: UUID,
        expires_at: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.couple_invited(
            couple_id=couple_id,
            inviter_id=inviter_id,
            invitee_id=invitee_id,
            expires_at=expires_at,
            correlation_id=correlation_id,
        ))

    async def log_couple_activated(
        self,
        couple_id: UUID,
        accepter_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.couple_activated(
            couple_id=couple_id,
            accepter_id=accepter_id,
            correlation_id=correlation_id,
        ))

    async def log_accept_rejected(
        self,
        accepter_id: UUID,
        error_code: str,
        couple_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a refused invitation acceptance."""
        await self.log(AuditEventBuilder.couple_accept_rejected(
            accepter_id=accepter_id,
            error_code=error_code,
            couple_id=couple_id,
            correlation_id=correlation_id,
        ))

    async def log_couple_dissolved(
        self,
        couple_id: UUID,
        user_id: UUID,
        partner_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.couple_dissolved(
            couple_id=couple_id,
            user_id=user_id,
            partner_id=partner_id,
            correlation_id=correlation_id,
        ))

    async def log_couple_updated(
        self,
        couple_id: UUID,
        user_id: UUID,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.couple_updated(
            couple_id=couple_id,
            user_id=user_id,
            fields=fields,
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # EXPENSES AND GOALS
    # =========================================================================

    async def log_expense(
        self,
        event_type: AuditEventType,
        expense: Expense,
        actor_id: UUID,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense lifecycle event."""
        await self.log(AuditEventBuilder.expense_changed(
            event_type=event_type,
            expense_id=expense.id,
            actor_id=actor_id,
            amount=str(round_money(expense.amount)),
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_goal(
        self,
        event_type: AuditEventType,
        goal_id: UUID,
        actor_id: Optional[UUID],
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a goal lifecycle event."""
        await self.log(AuditEventBuilder.goal_changed(
            event_type=event_type,
            goal_id=goal_id,
            actor_id=actor_id,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_milestones(
        self,
        goal_id: UUID,
        milestones: list[Milestone],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        for milestone in milestones:
            await self.log(AuditEventBuilder.milestone_achieved(
                goal_id=goal_id,
                percentage=str(milestone.percentage),
                correlation_id=correlation_id,
            ))

    async def log_ledger_event(
        self,
        event: ContributionEvent,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed contribution or withdrawal."""
        if event.type == ContributionType.WITHDRAWAL:
            event_type = AuditEventType.WITHDRAWAL_RECORDED
        else:
            event_type = AuditEventType.CONTRIBUTION_RECORDED

        await self.log(AuditEventBuilder.ledger_recorded(
            event_type=event_type,
            goal_id=event.goal_id,
            user_id=event.user_id,
            amount=str(round_money(event.amount)),
            balance_after=str(round_money(event.balance_after)),
            correlation_id=correlation_id,
        ))

    # =========================================================================
    # SYSTEM
    # =========================================================================

    async def log_rate_limited(
        self,
        user_id: UUID,
        operation: str,
    ) -> None:
        await self.log(AuditEventBuilder.rate_limited(
            user_id=user_id,
            operation=operation,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a member action (e.g., a contribution).
    Pass it through all subsequent operations.
    """
    return uuid4()
