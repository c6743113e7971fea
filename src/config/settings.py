"""
Configuration Management for Chama Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The group every storage path is scoped to is configuration too
(GROUP_ID), passed into storage and flows at construction time.
Nothing in the codebase hardcodes which group it is working on.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Worksheet names within the spreadsheet
    members_sheet_name: str = Field(default="Members")
    transactions_sheet_name: str = Field(default="Transactions")
    loans_sheet_name: str = Field(default="Loans")
    policies_sheet_name: str = Field(default="InsurancePolicies")
    payment_records_sheet_name: str = Field(
        default="InsurancePayments",
        description="One row per (member, policy) payment record"
    )
    payment_months_sheet_name: str = Field(
        default="InsurancePaymentMonths",
        description="One row per (payment record, month) status cell"
    )
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-1.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )


class GroupSettings(BaseSettings):
    """
    The group this deployment serves.

    Every storage path and record is scoped by `id`.
    """

    model_config = SettingsConfigDict(
        env_prefix="GROUP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    id: str = Field(
        default="primary-group",
        min_length=1,
        description="Identifier used to scope all stored records"
    )
    name: str = Field(
        default="Our Chama",
        description="Display name of the group"
    )
    currency: str = Field(
        default="KES",
        min_length=3,
        max_length=3,
        description="ISO currency code used for display"
    )
    contribution_amount: Decimal = Field(
        default=Decimal("5000"),
        gt=0,
        description="Fixed monthly merry-go-round contribution per member"
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

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    # CSV import limits
    max_csv_upload_size_mb: int = Field(
        default=2,
        ge=1,
        le=20,
        description="Maximum CSV upload size in MB"
    )
    max_csv_rows: int = Field(
        default=2000,
        ge=1,
        description="Maximum rows accepted in a single CSV import"
    )

    # Validation thresholds
    future_date_tolerance_days: int = Field(
        default=7,
        description="How many days in the future a transaction date can be"
    )

    @property
    def max_csv_upload_size_bytes(self) -> int:
        """Get max CSV upload size in bytes."""
        return self.max_csv_upload_size_mb * 1024 * 1024


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

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def group(self) -> GroupSettings:
        return GroupSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an extra
    "<name>_error" entry for each failing section.
    Useful for startup checks and the settings page.
    """
    results = {}
    settings = get_settings()

    sections = {
        "google_sheets": lambda: settings.google_sheets,
        "gemini": lambda: settings.gemini,
        "group": lambda: settings.group,
        "app": lambda: settings.app,
    }

    for name, load in sections.items():
        try:
            load()
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
