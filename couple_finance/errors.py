"""
Domain Errors

Every failure the core reports carries a machine-readable ``kind`` and a
stable ``code`` so collaborators (HTTP layer, workers) can map it without
parsing messages.

Four families:
- ValidationError: malformed input, rejected before any state change
- NotFoundError: a referenced entity is absent
- ConflictError: the request clashes with current state
- AuthorizationError: the actor is not permitted
"""

from enum import Enum
from typing import Optional

from couple_finance.models.common import ValidationIssue


class ErrorKind(str, Enum):
    """Machine-readable error families."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    AUTHORIZATION = "authorization"


class DomainError(Exception):
    """Base class for all errors raised by the core."""

    kind: ErrorKind = ErrorKind.CONFLICT
    code: str = "domain_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
        }


# =============================================================================
# FAMILIES
# =============================================================================

class ValidationError(DomainError):
    """Input rejected before any state change."""

    kind = ErrorKind.VALIDATION
    code = "validation_failed"

    def __init__(
        self,
        message: str,
        issues: Optional[list[ValidationIssue]] = None,
    ):
        super().__init__(message)
        self.issues = issues or []

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["issues"] = [issue.model_dump() for issue in self.issues]
        return data


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"


class ConflictError(DomainError):
    kind = ErrorKind.CONFLICT
    code = "conflict"


class AuthorizationError(DomainError):
    kind = ErrorKind.AUTHORIZATION
    code = "not_authorized"


# =============================================================================
# COUPLE LIFECYCLE
# =============================================================================

class AlreadyInCoupleError(ConflictError):
    code = "already_in_couple"


class PartnerNotFoundError(NotFoundError):
    code = "partner_not_found"


class PartnerAlreadyCoupledError(ConflictError):
    code = "partner_already_coupled"


class SelfInvitationError(ValidationError):
    code = "self_invitation"


class InvitationNotFoundError(NotFoundError):
    code = "invitation_not_found"


class InvitationExpiredError(ConflictError):
    code = "invitation_expired"


class NotAuthorizedAccepterError(AuthorizationError):
    code = "not_authorized_accepter"


class NotInCoupleError(NotFoundError):
    code = "not_in_couple"


class RateLimitExceededError(AuthorizationError):
    code = "rate_limit_exceeded"


# =============================================================================
# EXPENSES AND GOALS
# =============================================================================

class UserNotFoundError(NotFoundError):
    code = "user_not_found"


class ExpenseNotFoundError(NotFoundError):
    code = "expense_not_found"


class GoalNotFoundError(NotFoundError):
    code = "goal_not_found"


class NotOwnerError(AuthorizationError):
    code = "not_owner"


class SharedRecordRequiresCoupleError(ConflictError):
    code = "shared_record_requires_couple"


class ExpenseNotPendingError(ConflictError):
    code = "expense_not_pending"


class InactiveGoalError(ConflictError):
    code = "inactive_goal"


class InvalidGoalTransitionError(ConflictError):
    code = "invalid_goal_transition"


class InsufficientGoalBalanceError(ConflictError):
    code = "insufficient_goal_balance"


class ConcurrentModificationError(ConflictError):
    code = "concurrent_modification"
