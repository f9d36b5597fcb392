"""
Keyed Store

Namespaced JSON persistence on top of a StorageMedium.

DESIGN DECISION: Values are serialized as stable JSON (sorted keys,
compact separators, NaN rejected). Two saves of structurally equal data
produce byte-identical payloads, which keeps backups comparable and the
quota arithmetic predictable.

Every successful save:
1. writes the payload atomically through the medium
2. records the last-save timestamp (epoch ms) under `<prefix>lastSave`
3. hands the payload to the BackupVault

A rejected write leaves the previous value untouched, notifies the
failure listeners (the HealthMonitor subscribes here) and turns health to
`error` until the next successful save.
"""

import json
from typing import Any, Callable, Optional

import structlog

from ordersystem.config.settings import StorageSettings
from ordersystem.models.storage import HealthStatus, StorageHealth
from ordersystem.services.storage.backups import BackupVault
from ordersystem.services.storage.interface import (
    CorruptDataError,
    QuotaExceededError,
    SerializationError,
    StorageError,
    StorageMedium,
)
from ordersystem.services.storage.medium import FileMedium, MemoryMedium
from ordersystem.utils.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)

LAST_SAVE_KEY = "lastSave"
LAST_MANUAL_EXPORT_KEY = "lastManualExport"

# Bookkeeping keys that never get backups
UNBACKED_KEYS = frozenset({LAST_SAVE_KEY, LAST_MANUAL_EXPORT_KEY})

FailureListener = Callable[[str, StorageError], None]


def serialize(key: str, value: Any) -> str:
    """Stable JSON text of a value."""
    try:
        return json.dumps(
            value,
            sort_keys=True,
            separators=(",", ":"),
            allow_nan=False,
            ensure_ascii=False,
        )
    except (TypeError, ValueError) as e:
        raise SerializationError(key, str(e)) from e


class KeyedStore:
    """
    Mapping from namespaced keys to JSON values.

    Usage:
        store = KeyedStore(MemoryMedium())
        store.save("settings", {"usdRate": 1.71})
        store.load("settings")
    """

    def __init__(
        self,
        medium: StorageMedium,
        clock: Optional[Clock] = None,
        prefix: str = "orderSystem_",
        warning_ratio: float = 0.80,
        error_ratio: float = 0.95,
        backup_keep: int = 5,
        backup_max_age_hours: float = 24.0,
    ):
        self.medium = medium
        self.clock = clock or SystemClock()
        self.prefix = prefix
        self.warning_ratio = warning_ratio
        self.error_ratio = error_ratio

        self._last_error: Optional[str] = None
        self._last_save: Optional[int] = None
        self._failure_listeners: list[FailureListener] = []

        self.vault = BackupVault(
            self,
            keep=backup_keep,
            max_age_ms=int(backup_max_age_hours * 3600 * 1000),
        )

    @classmethod
    def from_settings(
        cls,
        settings: StorageSettings,
        medium: Optional[StorageMedium] = None,
        clock: Optional[Clock] = None,
    ) -> "KeyedStore":
        """Build a store (and, unless given, its medium) from configuration."""
        if medium is None:
            if settings.backend == "file":
                medium = FileMedium(settings.data_dir, quota_bytes=settings.quota_bytes)
            else:
                medium = MemoryMedium(quota_bytes=settings.quota_bytes)

        return cls(
            medium,
            clock=clock,
            prefix=settings.key_prefix,
            warning_ratio=settings.warning_ratio,
            error_ratio=settings.error_ratio,
            backup_keep=settings.backup_keep,
            backup_max_age_hours=settings.backup_max_age_hours,
        )

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def storage_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def keys(self) -> list[str]:
        """Logical keys (prefix stripped) currently stored under this prefix."""
        return sorted(
            k[len(self.prefix):]
            for k in self.medium.keys()
            if k.startswith(self.prefix)
        )

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def save(self, key: str, value: Any, backup: bool = True) -> bool:
        """
        Persist a value.

        Raises:
            SerializationError: If the value cannot be encoded as JSON
            QuotaExceededError: If the medium rejects the write
        """
        try:
            payload = serialize(key, value)
            self.medium.set(self.storage_key(key), payload)
        except (SerializationError, QuotaExceededError) as e:
            self._record_failure(key, e)
            raise

        self._last_error = None
        now = self.clock.now_ms()
        self._record_last_save(now)

        if backup and key not in UNBACKED_KEYS:
            self.vault.snapshot(key, payload, timestamp=now)

        logger.debug("store_saved", key=key, size=len(payload.encode("utf-8")))
        return True

    def save_raw(self, key: str, payload: str) -> None:
        """Write pre-serialized text as-is, without backup. Used by rollbacks."""
        self.medium.set(self.storage_key(key), payload)

    def remove(self, key: str) -> None:
        self.medium.delete(self.storage_key(key))

    def clear_prefix(self, keep: tuple[str, ...] = ()) -> int:
        """
        Remove every key under this prefix except the ones in `keep`.

        Backups live under `backup_<prefix>` and are not touched.
        """
        removed = 0
        for key in self.keys():
            if key in keep:
                continue
            self.remove(key)
            removed += 1
        logger.info("store_cleared", prefix=self.prefix, removed=removed)
        return removed

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def load_raw(self, key: str) -> Optional[str]:
        return self.medium.get(self.storage_key(key))

    def load(self, key: str) -> Any:
        """
        Read a value; None when absent.

        Raises:
            CorruptDataError: If the stored text is not valid JSON
        """
        raw = self.load_raw(key)
        if raw is None:
            return None
        return self.decode(key, raw)

    @staticmethod
    def decode(key: str, raw: str) -> Any:
        """Parse stored text; CorruptDataError when it is not JSON."""
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptDataError(key, str(e)) from e

    def load_or_none(self, key: str) -> Any:
        """Read a value, degrading corrupt data to None with a log line."""
        try:
            return self.load(key)
        except CorruptDataError as e:
            logger.warning(
                "store_corrupt_data",
                key=key,
                error=str(e),
                backups=len(self.vault.list_backups(key)),
            )
            return None

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @property
    def last_save(self) -> Optional[int]:
        if self._last_save is None:
            stored = self.load_raw(LAST_SAVE_KEY)
            if stored and stored.isdigit():
                self._last_save = int(stored)
        return self._last_save

    def health(self) -> StorageHealth:
        used = self.medium.used_bytes()
        quota = self.medium.quota_bytes
        ratio = used / quota if quota else 0.0

        if self._last_error or ratio >= self.error_ratio:
            status = HealthStatus.ERROR
        elif ratio >= self.warning_ratio:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.OK

        return StorageHealth(
            status=status,
            used_bytes=used,
            quota_bytes=quota,
            backup_count=self.vault.count(),
            last_save=self.last_save,
            error=self._last_error,
        )

    def add_failure_listener(self, listener: FailureListener) -> Callable[[], None]:
        """Register a callback for rejected writes. Returns an unsubscribe callable."""
        self._failure_listeners.append(listener)
        return lambda: self._failure_listeners.remove(listener)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _record_last_save(self, now: int) -> None:
        self._last_save = now
        try:
            self.medium.set(self.storage_key(LAST_SAVE_KEY), str(now))
        except QuotaExceededError:
            # The data itself is saved; only the bookkeeping stamp is lost
            logger.warning("last_save_not_recorded", timestamp=now)

    def _record_failure(self, key: str, error: StorageError) -> None:
        if isinstance(error, QuotaExceededError):
            self._last_error = str(error)
        logger.error("store_save_failed", key=key, error=str(error), error_type=type(error).__name__)

        for listener in list(self._failure_listeners):
            try:
                listener(key, error)
            except Exception as e:
                logger.error("failure_listener_error", key=key, error=str(e))
