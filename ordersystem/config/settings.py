"""
Configuration Management for the Order System

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Every tunable of the persistence layer (quota, retention), the monitors
(tick intervals) and the optional remote services lives in one place and
is validated at startup.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseSettings):
    """Keyed store, quota and backup retention configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERSYSTEM_STORAGE_",
        extra="ignore"
    )

    key_prefix: str = Field(
        default="orderSystem_",
        min_length=1,
        description="Namespace prefix for every persisted key"
    )
    backend: Literal["memory", "file"] = Field(
        default="memory",
        description="Storage medium implementation"
    )
    data_dir: str = Field(
        default=".ordersystem",
        description="Directory used by the file medium"
    )
    # Browser localStorage gives roughly 5 MiB per origin
    quota_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Maximum bytes the medium accepts"
    )
    warning_ratio: float = Field(
        default=0.80,
        gt=0.0,
        le=1.0,
        description="Usage ratio at which health turns 'warning'"
    )
    error_ratio: float = Field(
        default=0.95,
        gt=0.0,
        le=1.0,
        description="Usage ratio at which health turns 'error'"
    )
    backup_keep: int = Field(
        default=5,
        ge=1,
        description="Newest backups always retained per key"
    )
    backup_max_age_hours: float = Field(
        default=24.0,
        ge=0.0,
        description="Backups younger than this are retained regardless of count"
    )

    @model_validator(mode="after")
    def check_thresholds(self) -> "StorageSettings":
        """Warning threshold must come before the error threshold."""
        if self.warning_ratio >= self.error_ratio:
            raise ValueError("warning_ratio must be lower than error_ratio")
        return self


class MonitorSettings(BaseSettings):
    """Health monitor and export reminder configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERSYSTEM_MONITOR_",
        extra="ignore"
    )

    health_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Seconds between storage health samples"
    )
    reminder_interval_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="Seconds between export reminder checks"
    )
    export_reminder_days: int = Field(
        default=7,
        ge=1,
        description="Days without a manual export before reminding"
    )


class HistorySettings(BaseSettings):
    """Undo/redo history configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERSYSTEM_HISTORY_",
        extra="ignore"
    )

    undo_capacity: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Maximum commands kept on the undo stack"
    )


class ReportSettings(BaseSettings):
    """Reporting configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERSYSTEM_REPORTS_",
        extra="ignore"
    )

    trend_flat_threshold_pct: float = Field(
        default=1.0,
        ge=0.0,
        description="Velocity (in %) below which the trend is reported flat"
    )


class RemoteStoreSettings(BaseSettings):
    """Google Sheets row-store configuration (optional)."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERSYSTEM_SHEETS_",
        extra="ignore"
    )

    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: Optional[str] = Field(
        default=None,
        description="ID of the spreadsheet used as the row-store"
    )

    # Worksheet names within the spreadsheet
    orders_sheet_name: str = Field(default="orders")
    clients_sheet_name: str = Field(default="clients")
    expenses_sheet_name: str = Field(default="expenses")
    inventory_sheet_name: str = Field(default="inventory")
    settings_sheet_name: str = Field(default="settings")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before enabling the remote store."
            )
        return v

    @property
    def is_configured(self) -> bool:
        return bool(self.credentials_path and self.spreadsheet_id)


class ImageSettings(BaseSettings):
    """Order image normalisation and Cloudinary upload configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ORDERSYSTEM_IMAGES_",
        extra="ignore"
    )

    cloud_name: Optional[str] = Field(default=None, description="Cloudinary cloud name")
    api_key: Optional[str] = Field(default=None, description="Cloudinary API key")
    api_secret: Optional[str] = Field(default=None, description="Cloudinary API secret")
    folder: str = Field(
        default="orders",
        description="Cloudinary folder for uploaded order photos"
    )
    max_dimension: int = Field(
        default=1280,
        ge=64,
        le=8192,
        description="Longest side of a stored order photo, in pixels"
    )
    jpeg_quality: int = Field(
        default=80,
        ge=10,
        le=95,
        description="JPEG quality used when re-encoding photos"
    )

    @property
    def upload_enabled(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)


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
    log_level: str = Field(
        default="INFO",
        description="Minimum level written by the structured logger"
    )
    log_json: bool = Field(
        default=True,
        description="Render logs as JSON (False renders for the console)"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def monitor(self) -> MonitorSettings:
        return MonitorSettings()

    @property
    def history(self) -> HistorySettings:
        return HistorySettings()

    @property
    def reports(self) -> ReportSettings:
        return ReportSettings()

    @property
    def remote(self) -> RemoteStoreSettings:
        return RemoteStoreSettings()

    @property
    def images(self) -> ImageSettings:
        return ImageSettings()

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

    for name in ("storage", "monitor", "history", "reports", "remote", "images", "app"):
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
