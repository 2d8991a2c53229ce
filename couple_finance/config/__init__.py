"""Configuration package."""

from couple_finance.config.settings import (
    AppSettings,
    GoalSettings,
    InvitationSettings,
    RateLimitSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoalSettings",
    "InvitationSettings",
    "RateLimitSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
