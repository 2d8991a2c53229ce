"""Pure shared-finance calculations."""

from couple_finance.calculations import progress as progress_engine
from couple_finance.calculations.split import (
    personal_amount,
    resolve_contribution_targets,
    shared_amount,
    split_summary,
)

__all__ = [
    "personal_amount",
    "progress_engine",
    "resolve_contribution_targets",
    "shared_amount",
    "split_summary",
]
