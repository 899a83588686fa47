"""
Configuration Management for Shop Ledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets document store configuration."""

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

    # One worksheet per collection
    products_sheet_name: str = Field(
        default="Products",
        description="Name of the sheet backing the products collection"
    )
    bills_sheet_name: str = Field(
        default="Bills",
        description="Name of the sheet backing the bills collection"
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
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class MigrationSettings(BaseSettings):
    """Tunables for the migration, validation and rollback engines."""

    model_config = SettingsConfigDict(
        env_prefix="MIGRATION_",
        extra="ignore"
    )

    total_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Allowed difference between stored and recomputed bill totals"
    )
    default_vendor: str = Field(
        default="Unknown",
        min_length=1,
        description="Vendor used when no product in a group names one"
    )
    orphan_bill_prefix: str = Field(
        default="B",
        min_length=1,
        max_length=5,
        description="Prefix of generated bill numbers"
    )
    orphan_bill_number_width: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Zero-padded width of the numeric part of generated bill numbers"
    )

    # Rollback preview
    rollback_items_per_second: int = Field(
        default=10,
        ge=1,
        description="Throughput assumed when estimating rollback duration"
    )
    rollback_bill_risk_threshold: int = Field(
        default=100,
        ge=0,
        description="Bill count above which rollback is flagged as slow"
    )
    rollback_product_risk_threshold: int = Field(
        default=1000,
        ge=0,
        description="Product count above which rollback is flagged as heavy"
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
    storage_backend: str = Field(
        default="google_sheets",
        pattern="^(google_sheets|memory)$",
        description="Document store backing the products and bills collections"
    )

    @property
    def uses_google_sheets(self) -> bool:
        return self.storage_backend == "google_sheets"


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def migration(self) -> MigrationSettings:
        return MigrationSettings()

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
        _ = settings.migration
        results["migration"] = True
    except Exception as e:
        results["migration"] = False
        results["migration_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
