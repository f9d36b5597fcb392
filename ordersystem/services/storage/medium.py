"""
Storage Medium Implementations

- MemoryMedium: a dict with a quota. Used in tests and ephemeral sessions.
- FileMedium: one file per key in a data directory, written atomically
  (temp file in the same directory, fsync, os.replace) so a crash never
  leaves a half-written value behind.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

import structlog

from ordersystem.services.storage.interface import (
    QuotaExceededError,
    StorageError,
    StorageMedium,
)

logger = structlog.get_logger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class MemoryMedium(StorageMedium):
    """In-memory medium with a byte quota."""

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}
        self._used = 0

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        old = self._data.get(key)
        old_size = self.entry_size(key, old) if old is not None else 0
        new_size = self.entry_size(key, value)
        required = self._used - old_size + new_size

        if required > self.quota_bytes:
            raise QuotaExceededError(key, required, self.quota_bytes)

        self._data[key] = value
        self._used = required

    def delete(self, key: str) -> None:
        old = self._data.pop(key, None)
        if old is not None:
            self._used -= self.entry_size(key, old)

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def used_bytes(self) -> int:
        return self._used


class FileMedium(StorageMedium):
    """
    Directory-backed medium.

    Keys are percent-encoded into file names. The quota is enforced on the
    same key+value byte count as the memory medium.
    """

    SUFFIX = ".json"

    def __init__(
        self,
        directory: str,
        quota_bytes: int = DEFAULT_QUOTA_BYTES,
        fsync: bool = True,
    ):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.quota_bytes = quota_bytes
        self._fsync = fsync

        # key -> entry size, rebuilt from disk once
        self._sizes: dict[str, int] = {}
        for key in self._scan_keys():
            value = self.get(key)
            if value is not None:
                self._sizes[key] = self.entry_size(key, value)

    def _path(self, key: str) -> Path:
        return self.directory / (quote(key, safe="") + self.SUFFIX)

    def _scan_keys(self) -> list[str]:
        return [
            unquote(path.name[: -len(self.SUFFIX)])
            for path in self.directory.iterdir()
            if path.is_file() and path.name.endswith(self.SUFFIX) and not path.name.startswith(".")
        ]

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read '{key}': {e}") from e

    def set(self, key: str, value: str) -> None:
        new_size = self.entry_size(key, value)
        required = self.used_bytes() - self._sizes.get(key, 0) + new_size
        if required > self.quota_bytes:
            raise QuotaExceededError(key, required, self.quota_bytes)

        self._atomic_write(self._path(key), value)
        self._sizes[key] = new_size

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Failed to delete '{key}': {e}") from e
        self._sizes.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._sizes.keys())

    def used_bytes(self) -> int:
        return sum(self._sizes.values())

    def _atomic_write(self, target: Path, content: str) -> None:
        """Write to a temp file next to the target, then rename into place."""
        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=self.directory,
                prefix=f".{target.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp_file:
                tmp_path = tmp_file.name
                tmp_file.write(content)
                tmp_file.flush()
                if self._fsync:
                    os.fsync(tmp_file.fileno())

            os.replace(tmp_path, target)
            tmp_path = None
        except OSError as e:
            logger.error("atomic_write_failed", path=str(target), error=str(e))
            raise StorageError(f"Failed to write '{target.name}': {e}") from e
        finally:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.warning("temp_file_cleanup_failed", path=tmp_path)
