"""Configuration package."""

from shopledger.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    MigrationSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "MigrationSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
