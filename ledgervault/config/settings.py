"""
Configuration Management for LedgerVault

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All deployment configuration is centralized here.
Per-user state that changes at runtime (currency, encryption mode, salt)
is NOT configuration; it lives in the local config file, see
ledgervault.config.local.
"""

import warnings
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
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

    # Sheet names within the spreadsheet, one per table
    transactions_sheet_name: str = Field(
        default="transactions",
        description="Name of the sheet for transactions"
    )
    goals_sheet_name: str = Field(
        default="goals",
        description="Name of the sheet for savings goals"
    )
    user_settings_sheet_name: str = Field(
        default="user_settings",
        description="Name of the sheet mirroring the active currency"
    )
    audit_sheet_name: str = Field(
        default="AuditLog",
        description="Name of the sheet for audit logs"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v

    @property
    def sheet_names(self) -> dict[str, str]:
        """Table name -> worksheet name."""
        return {
            "transactions": self.transactions_sheet_name,
            "goals": self.goals_sheet_name,
            "user_settings": self.user_settings_sheet_name,
        }


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

    # Local state
    config_path: str = Field(
        default="~/.ledgervault/config.json",
        description="Where the local (non-sensitive) config JSON is kept"
    )
    default_currency: str = Field(
        default="USD",
        min_length=3,
        max_length=3,
        description="Currency used before the user picks one"
    )

    # Encryption
    min_password_length: int = Field(
        default=8,
        ge=1,
        le=128,
        description="Minimum master password length at setup"
    )

    # Currency rebase
    rebase_batch_size: int = Field(
        default=1,
        ge=1,
        le=50,
        description="Records rewritten concurrently per batch during a convert"
    )

    @field_validator('default_currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def config_file(self) -> Path:
        """Local config path with ~ expanded."""
        return Path(self.config_path).expanduser()


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
    # (e.g. running fully in memory without Google credentials).

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
