"""
Backup Vault

Rolling backups of every persisted key, written as part of each save.

Backup keys live outside the store prefix:

    backup_<prefix><key>_<epoch-ms>

and hold a JSON record `{timestamp, size, payload}` where `payload` is the
exact text that was saved.

Retention per key: the newest `keep` records, plus any record younger than
`max_age_ms`. Older records are evicted on every insert.

DESIGN DECISION: A backup that does not fit never fails the save it belongs
to. The vault first runs an emergency cleanup (newest 1 per key), retries
once, and otherwise logs and skips.
"""

import json
from collections import defaultdict
from typing import TYPE_CHECKING, Iterable, Optional, Union

import structlog

from ordersystem.models.storage import BackupRecord
from ordersystem.services.storage.interface import (
    BackupMissingError,
    QuotaExceededError,
)

if TYPE_CHECKING:
    from ordersystem.services.storage.keyed_store import KeyedStore

logger = structlog.get_logger(__name__)


class BackupVault:
    """Owns backup records of one KeyedStore."""

    def __init__(
        self,
        store: "KeyedStore",
        keep: int = 5,
        max_age_ms: int = 24 * 3600 * 1000,
    ):
        self._store = store
        self.keep = keep
        self.max_age_ms = max_age_ms

    @property
    def backup_prefix(self) -> str:
        return f"backup_{self._store.prefix}"

    def backup_key(self, key: str, timestamp: int) -> str:
        return f"{self.backup_prefix}{key}_{timestamp}"

    # -------------------------------------------------------------------------
    # Insert
    # -------------------------------------------------------------------------

    def snapshot(
        self,
        key: str,
        payload: str,
        timestamp: Optional[int] = None,
    ) -> Optional[BackupRecord]:
        """
        Store a backup of `payload` for `key`.

        Returns the record, or None when the backup had to be skipped.
        """
        medium = self._store.medium
        timestamp = timestamp if timestamp is not None else self._store.clock.now_ms()

        # Two saves in the same millisecond get consecutive timestamps
        while medium.contains(self.backup_key(key, timestamp)):
            timestamp += 1

        storage_key = self.backup_key(key, timestamp)
        size = len(payload.encode("utf-8"))
        record = json.dumps(
            {"timestamp": timestamp, "size": size, "payload": payload},
            ensure_ascii=False,
        )

        try:
            medium.set(storage_key, record)
        except QuotaExceededError:
            removed = self.emergency_cleanup()
            logger.warning("backup_quota_exceeded", key=key, cleaned=removed)
            try:
                medium.set(storage_key, record)
            except QuotaExceededError as e:
                logger.error("backup_skipped", key=key, error=str(e))
                return None

        self._evict(key, now=timestamp)
        return BackupRecord(
            key=key,
            storage_key=storage_key,
            timestamp=timestamp,
            size=size,
            payload=payload,
        )

    def force_backup(self, keys: Optional[Iterable[str]] = None) -> int:
        """
        Back up the current value of every given key (default: all data keys).

        Returns the number of backups written.
        """
        from ordersystem.services.storage.keyed_store import UNBACKED_KEYS

        targets = list(keys) if keys is not None else self._store.keys()
        written = 0
        now = self._store.clock.now_ms()
        for key in targets:
            if key in UNBACKED_KEYS:
                continue
            payload = self._store.load_raw(key)
            if payload is None:
                continue
            if self.snapshot(key, payload, timestamp=now) is not None:
                written += 1
        logger.info("backup_forced", written=written)
        return written

    # -------------------------------------------------------------------------
    # Query
    # -------------------------------------------------------------------------

    def _index(self) -> dict[str, list[tuple[int, str]]]:
        """key -> [(timestamp, storage_key)], newest first."""
        index: dict[str, list[tuple[int, str]]] = defaultdict(list)
        prefix = self.backup_prefix
        for storage_key in self._store.medium.keys():
            if not storage_key.startswith(prefix):
                continue
            key, _, stamp = storage_key[len(prefix):].rpartition("_")
            if not key or not stamp.isdigit():
                continue
            index[key].append((int(stamp), storage_key))
        for entries in index.values():
            entries.sort(reverse=True)
        return index

    def _read(self, key: str, storage_key: str) -> Optional[BackupRecord]:
        raw = self._store.medium.get(storage_key)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return BackupRecord(
                key=key,
                storage_key=storage_key,
                timestamp=int(data["timestamp"]),
                size=int(data.get("size", len(data["payload"].encode("utf-8")))),
                payload=data["payload"],
            )
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("backup_unreadable", storage_key=storage_key, error=str(e))
            return None

    def list_backups(
        self,
        key: Optional[str] = None,
    ) -> Union[list[BackupRecord], dict[str, list[BackupRecord]]]:
        """
        Backups newest first.

        With a key: a list for that key. Without: a dict grouped by key.
        """
        index = self._index()

        def records_for(k: str) -> list[BackupRecord]:
            records = (self._read(k, storage_key) for _, storage_key in index.get(k, []))
            return [r for r in records if r is not None]

        if key is not None:
            return records_for(key)
        return {k: records_for(k) for k in sorted(index)}

    def latest(self, key: str) -> Optional[BackupRecord]:
        for _, storage_key in self._index().get(key, []):
            record = self._read(key, storage_key)
            if record is not None:
                return record
        return None

    def count(self) -> int:
        return sum(len(entries) for entries in self._index().values())

    # -------------------------------------------------------------------------
    # Restore / cleanup
    # -------------------------------------------------------------------------

    def restore(self, key: str, timestamp: int):
        """
        Write a backed-up payload back through the store and return the value.

        Raises:
            BackupMissingError: If no backup of `key` exists at `timestamp`
        """
        record = self._read(key, self.backup_key(key, timestamp))
        if record is None:
            raise BackupMissingError(key, timestamp)

        value = json.loads(record.payload)
        self._store.save(key, value)
        logger.info("backup_restored", key=key, timestamp=timestamp)
        return value

    def emergency_cleanup(self) -> int:
        """Delete all but the newest backup of every key. Returns how many were removed."""
        removed = 0
        for entries in self._index().values():
            for _, storage_key in entries[1:]:
                self._store.medium.delete(storage_key)
                removed += 1
        logger.warning("backup_emergency_cleanup", removed=removed)
        return removed

    def _evict(self, key: str, now: int) -> None:
        entries = self._index().get(key, [])
        for position, (stamp, storage_key) in enumerate(entries):
            if position < self.keep or now - stamp < self.max_age_ms:
                continue
            self._store.medium.delete(storage_key)
            logger.debug("backup_evicted", key=key, timestamp=stamp)
