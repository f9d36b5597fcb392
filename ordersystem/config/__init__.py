"""Configuration package."""

from ordersystem.config.settings import (
    AppSettings,
    HistorySettings,
    ImageSettings,
    MonitorSettings,
    RemoteStoreSettings,
    ReportSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "HistorySettings",
    "ImageSettings",
    "MonitorSettings",
    "RemoteStoreSettings",
    "ReportSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
