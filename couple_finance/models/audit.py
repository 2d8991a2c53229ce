"""
Audit Models for Couple Finance

Every state transition in the core is logged for audit purposes.
This provides:
1. Complete traceability of who changed shared money and when
2. Debugging information when two partners disagree about history
3. Ability to reconstruct a goal's or couple's timeline

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
Invitation tokens are secrets and never appear in audit details.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from couple_finance.models.common import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Couple lifecycle
    COUPLE_INVITED = "couple_invited"
    COUPLE_ACTIVATED = "couple_activated"
    COUPLE_ACCEPT_REJECTED = "couple_accept_rejected"
    COUPLE_DISSOLVED = "couple_dissolved"
    COUPLE_UPDATED = "couple_updated"

    # Expenses
    EXPENSE_CREATED = "expense_created"
    EXPENSE_UPDATED = "expense_updated"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"

    # Goals
    GOAL_CREATED = "goal_created"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    GOAL_STATUS_CHANGED = "goal_status_changed"
    GOAL_COMPLETED = "goal_completed"
    MILESTONE_ACHIEVED = "milestone_achieved"

    # Ledger
    CONTRIBUTION_RECORDED = "contribution_recorded"
    WITHDRAWAL_RECORDED = "withdrawal_recorded"

    # System events
    RATE_LIMITED = "rate_limited"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every committed transition creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'couple', 'goal', 'expense')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    actor_id: Optional[UUID] = Field(
        default=None,
        description="User who triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a contribution and the milestones it crossed)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.couple_invited(couple_id, inviter_id, invitee_id)
        event = AuditEventBuilder.contribution_recorded(goal_id, user_id, "250.00", "1000.00")
    """

    @staticmethod
    def couple_invited(
        couple_id: UUID,
        inviter_id: UUID,
        invitee_id: UUID,
        expires_at: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUPLE_INVITED,
            entity_type="couple",
            entity_id=couple_id,
            actor_id=inviter_id,
            correlation_id=correlation_id,
            description="Couple invitation created",
            details={
                "invitee_id": str(invitee_id),
                "expires_at": expires_at.isoformat(),
            },
        )

    @staticmethod
    def couple_activated(
        couple_id: UUID,
        accepter_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUPLE_ACTIVATED,
            entity_type="couple",
            entity_id=couple_id,
            actor_id=accepter_id,
            correlation_id=correlation_id,
            description="Couple invitation accepted",
        )

    @staticmethod
    def couple_accept_rejected(
        accepter_id: UUID,
        error_code: str,
        couple_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUPLE_ACCEPT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="couple",
            entity_id=couple_id,
            actor_id=accepter_id,
            correlation_id=correlation_id,
            description=f"Invitation acceptance refused: {error_code}",
            error_code=error_code,
        )

    @staticmethod
    def couple_dissolved(
        couple_id: UUID,
        user_id: UUID,
        partner_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUPLE_DISSOLVED,
            entity_type="couple",
            entity_id=couple_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description="Member left the couple; couple deleted",
            details={"partner_id": str(partner_id)},
        )

    @staticmethod
    def couple_updated(
        couple_id: UUID,
        user_id: UUID,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUPLE_UPDATED,
            entity_type="couple",
            entity_id=couple_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description=f"Couple updated: {', '.join(fields)}",
            details={"fields": fields},
        )

    @staticmethod
    def expense_changed(
        event_type: AuditEventType,
        expense_id: UUID,
        actor_id: UUID,
        amount: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        action = event_type.value.replace("expense_", "")
        return AuditEvent(
            event_type=event_type,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense {action}: {amount}",
            details={"amount": amount, **(details or {})},
        )

    @staticmethod
    def goal_changed(
        event_type: AuditEventType,
        goal_id: UUID,
        actor_id: Optional[UUID],
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        action = event_type.value.replace("goal_", "").replace("_", " ")
        return AuditEvent(
            event_type=event_type,
            entity_type="goal",
            entity_id=goal_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Goal {action}",
            details=details or {},
        )

    @staticmethod
    def milestone_achieved(
        goal_id: UUID,
        percentage: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MILESTONE_ACHIEVED,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Milestone {percentage}% achieved",
            details={"percentage": percentage},
        )

    @staticmethod
    def ledger_recorded(
        event_type: AuditEventType,
        goal_id: UUID,
        user_id: UUID,
        amount: str,
        balance_after: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = "Contribution" if event_type == AuditEventType.CONTRIBUTION_RECORDED else "Withdrawal"
        return AuditEvent(
            event_type=event_type,
            entity_type="goal",
            entity_id=goal_id,
            actor_id=user_id,
            correlation_id=correlation_id,
            description=f"{verb} of {amount} recorded",
            details={
                "amount": amount,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def rate_limited(
        user_id: UUID,
        operation: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RATE_LIMITED,
            severity=AuditSeverity.WARNING,
            actor_id=user_id,
            description=f"Rate limit refused {operation}",
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
