"""
Storage Services Package

Local persistence: a quota-bound string medium, the namespaced JSON keyed
store on top of it, and the rolling backup vault the store writes into.
"""

from ordersystem.services.storage.interface import (
    BackupMissingError,
    CorruptDataError,
    QuotaExceededError,
    SerializationError,
    StorageError,
    StorageMedium,
)
from ordersystem.services.storage.medium import FileMedium, MemoryMedium
from ordersystem.services.storage.backups import BackupVault
from ordersystem.services.storage.keyed_store import (
    LAST_MANUAL_EXPORT_KEY,
    LAST_SAVE_KEY,
    KeyedStore,
    serialize,
)

__all__ = [
    # Interface
    "StorageMedium",
    # Exceptions
    "BackupMissingError",
    "CorruptDataError",
    "QuotaExceededError",
    "SerializationError",
    "StorageError",
    # Implementations
    "BackupVault",
    "FileMedium",
    "KeyedStore",
    "MemoryMedium",
    "LAST_MANUAL_EXPORT_KEY",
    "LAST_SAVE_KEY",
    "serialize",
]
