"""
Abstract Storage Medium Interface

DESIGN DECISION: The keyed store never touches a concrete backend.
It talks to a StorageMedium: a flat string -> string map with a byte quota,
the same contract as browser localStorage. This allows us to:
1. Keep everything in memory for tests
2. Persist to a directory of files on a desktop install
3. Simulate a full disk by shrinking the quota

The interface is intentionally tiny. Serialization, namespacing, backups
and health reporting live in the KeyedStore on top of it.
"""

from abc import ABC, abstractmethod
from typing import Optional


class StorageMedium(ABC):
    """
    Abstract string key/value medium.

    `set` must be all-or-nothing: when it raises, the previous value of the
    key is still in place.
    """

    quota_bytes: int

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """
        Read a value.

        Returns:
            The stored text, or None if the key is absent
        """
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """
        Write a value, replacing any previous one.

        Raises:
            QuotaExceededError: If the write would exceed the quota
            StorageError: If the backend fails
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """All keys currently stored."""
        pass

    @abstractmethod
    def used_bytes(self) -> int:
        """Bytes consumed by all keys and values."""
        pass

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    @staticmethod
    def entry_size(key: str, value: str) -> int:
        """Bytes an entry counts against the quota."""
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))


# =============================================================================
# EXCEPTIONS
# =============================================================================

class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class QuotaExceededError(StorageError):
    """The medium rejected a write because it would exceed the quota."""

    def __init__(self, key: str, required_bytes: int, quota_bytes: int):
        self.key = key
        self.required_bytes = required_bytes
        self.quota_bytes = quota_bytes
        super().__init__(
            f"Storage quota exceeded writing '{key}': "
            f"{required_bytes} bytes needed, quota is {quota_bytes}"
        )


class SerializationError(StorageError):
    """A value could not be serialized to JSON."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Cannot serialize value for '{key}': {reason}")


class CorruptDataError(StorageError):
    """A stored value could not be parsed."""

    def __init__(self, key: str, reason: str):
        self.key = key
        super().__init__(f"Corrupt data under '{key}': {reason}")


class BackupMissingError(StorageError):
    """No backup exists for the requested key and timestamp."""

    def __init__(self, key: str, timestamp: int):
        self.key = key
        self.timestamp = timestamp
        super().__init__(f"No backup of '{key}' at {timestamp}")
