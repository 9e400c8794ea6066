"""Configuration package."""

from ledgervault.config.local import LocalConfig, LocalConfigStore
from ledgervault.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LocalConfig",
    "LocalConfigStore",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
