"""
Shared model helpers: money rounding, clock and validation issue types.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Optional

from pydantic import BaseModel, Field


MONEY_QUANTUM = Decimal("0.01")
HUNDRED = Decimal("100")


def utc_now() -> datetime:
    """Default clock for the core. Always timezone-aware UTC."""
    return datetime.now(timezone.utc)


def round_money(value: Decimal) -> Decimal:
    """
    Round an amount for presentation.

    Banker's rounding to two places. Internal arithmetic never calls this;
    only values leaving the core (reports, display payloads) are rounded.
    """
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_EVEN)


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'forbidden_field')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )
