"""
Configuration Management for Couple Finance

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable number the domain logic relies on (invitation lifetime,
token entropy, average month length, retry attempts) is read from one
place and validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class InvitationSettings(BaseSettings):
    """Couple invitation configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COUPLE_INVITATION_",
        extra="ignore"
    )

    token_bytes: int = Field(
        default=32,
        ge=16,
        le=128,
        description="Random bytes per invitation token (hex encoded, so twice as many characters)"
    )
    ttl_hours: int = Field(
        default=24,
        ge=1,
        le=24 * 30,
        description="How long an invitation stays acceptable"
    )


class GoalSettings(BaseSettings):
    """Savings goal configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOAL_",
        extra="ignore"
    )

    average_month_days: Decimal = Field(
        default=Decimal("30.44"),
        gt=0,
        description="Average month length used for required contribution projections"
    )
    reopen_completed_on_withdrawal: bool = Field(
        default=False,
        description="Whether a withdrawal that drops a completed goal below target reopens it"
    )
    max_update_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Optimistic retry attempts for concurrent contributions to one goal"
    )


class RateLimitSettings(BaseSettings):
    """Per-user rate limit configuration."""

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        extra="ignore"
    )

    max_requests: int = Field(
        default=100,
        ge=1,
        description="Requests allowed per user within one window"
    )
    window_seconds: int = Field(
        default=15 * 60,
        ge=1,
        description="Length of the sliding window in seconds"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Expense defaults
    default_shared_percentage: Decimal = Field(
        default=Decimal("50"),
        ge=0,
        le=100,
        description="Shared percentage applied when a shared expense omits one"
    )
    currency_code: str = Field(
        default="IDR",
        min_length=3,
        max_length=3,
        description="Currency all amounts are expressed in"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def invitation(self) -> InvitationSettings:
        return InvitationSettings()

    @property
    def goals(self) -> GoalSettings:
        return GoalSettings()

    @property
    def rate_limit(self) -> RateLimitSettings:
        return RateLimitSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus
    {setting_name}_error entries describing failures.
    Useful for startup checks.
    """
    results = {}
    settings = get_settings()

    for name in ("invitation", "goals", "rate_limit", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except ValueError as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
