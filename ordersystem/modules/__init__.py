"""
Domain Modules Package

Typed, asynchronous CRUD over the slices of the state hub. Every mutation
is one undoable command followed by one domain event.
"""

from ordersystem.modules.base import (
    DomainError,
    DomainModule,
    DuplicateClientError,
    InvalidRecordError,
    NegativeStockError,
    NotFoundError,
)
from ordersystem.modules.clients import ClientsModule
from ordersystem.modules.expenses import DEFAULT_EXPENSES_BGN, ExpensesModule
from ordersystem.modules.inventory import DEFAULT_INVENTORY_BGN, InventoryModule
from ordersystem.modules.months import MonthsModule
from ordersystem.modules.orders import OrderFilter, OrdersModule
from ordersystem.modules.settings import SettingsModule

__all__ = [
    # Base
    "DomainModule",
    # Exceptions
    "DomainError",
    "DuplicateClientError",
    "InvalidRecordError",
    "NegativeStockError",
    "NotFoundError",
    # Modules
    "ClientsModule",
    "ExpensesModule",
    "InventoryModule",
    "MonthsModule",
    "OrdersModule",
    "SettingsModule",
    "OrderFilter",
    "DEFAULT_EXPENSES_BGN",
    "DEFAULT_INVENTORY_BGN",
]
