"""
Data Models Package

This package contains all Pydantic models used in the Order System.
All records entering the state hub pass through these schemas.
"""

from ordersystem.models.records import (
    DEFAULT_FACTORY_SHIPPING,
    DEFAULT_ORIGINS,
    DEFAULT_USD_RATE,
    DEFAULT_VENDORS,
    BusinessSettings,
    Client,
    DefaultExpense,
    ExpenseLine,
    InventoryItem,
    InventoryType,
    Order,
    OrderStatus,
    StockStatus,
    StoredRecord,
    normalize_name,
    unique_ordered,
)
from ordersystem.models.storage import (
    BackupRecord,
    HealthStatus,
    StorageHealth,
)
from ordersystem.models.events import (
    Event,
    NotificationLevel,
    Topics,
    notification,
)

__all__ = [
    # Records
    "DEFAULT_FACTORY_SHIPPING",
    "DEFAULT_ORIGINS",
    "DEFAULT_USD_RATE",
    "DEFAULT_VENDORS",
    "BusinessSettings",
    "Client",
    "DefaultExpense",
    "ExpenseLine",
    "InventoryItem",
    "InventoryType",
    "Order",
    "OrderStatus",
    "StockStatus",
    "StoredRecord",
    "normalize_name",
    "unique_ordered",
    # Storage
    "BackupRecord",
    "HealthStatus",
    "StorageHealth",
    # Events
    "Event",
    "NotificationLevel",
    "Topics",
    "notification",
]
