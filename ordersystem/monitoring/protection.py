"""
Protection Dashboard

The data-protection status as plain data, plus the maintenance actions
behind it (force a backup, clean up, test recovery, restore a backup).
Rendering is someone else's job.
"""

from datetime import datetime
from typing import Any, Optional

import structlog

from ordersystem.core.event_bus import EventBus
from ordersystem.core.history import CommandStack
from ordersystem.core.state import STATE_KEYS, StateHub
from ordersystem.models.events import NotificationLevel, Topics, notification
from ordersystem.models.storage import HealthStatus
from ordersystem.monitoring.health import HealthMonitor
from ordersystem.services.storage.interface import BackupMissingError, StorageError

logger = structlog.get_logger(__name__)

# Keys the "Force backup" action covers
CRITICAL_KEYS = ("monthlyData", "clientsData", "settings", "inventory")


class ProtectionDashboard:
    """Derived protection status and backup actions."""

    def __init__(
        self,
        hub: StateHub,
        bus: EventBus,
        monitor: HealthMonitor,
        commands: Optional[CommandStack] = None,
    ):
        self.hub = hub
        self.bus = bus
        self.monitor = monitor
        self.commands = commands

    @property
    def store(self):
        return self.hub.store

    @property
    def vault(self):
        return self.hub.store.vault

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        """
        Everything the protection widget shows.

        alerts is a list of {level, message}, most severe first.
        """
        health = self.store.health()
        days = self.monitor.days_since_export()
        export_due = days is None or days >= self.monitor.settings.export_reminder_days

        alerts = []
        if health.status != HealthStatus.OK:
            alerts.append({
                "level": health.status.value,
                "message": health.error or "Хранилището е почти пълно.",
            })
        if export_due:
            alerts.append({
                "level": NotificationLevel.WARNING.value,
                "message": "Препоръчва се експорт на данните.",
            })

        return {
            "status": health.status.value,
            "usedMB": health.used_mb,
            "usagePercent": round(health.usage_ratio * 100, 1),
            "quotaBytes": health.quota_bytes,
            "backupCount": health.backup_count,
            "lastSave": health.last_save,
            "daysSinceExport": days,
            "exportRecommended": export_due,
            "alerts": alerts,
        }

    def get_backup_overview(self, limit_per_key: int = 3) -> dict[str, list[dict]]:
        """{key: [{timestamp, size, createdAt}]}, newest first, `limit_per_key` each."""
        overview = {}
        for key, records in self.vault.list_backups().items():
            overview[key] = [
                {
                    "timestamp": record.timestamp,
                    "size": record.size,
                    "createdAt": datetime.fromtimestamp(record.timestamp / 1000).isoformat(timespec="seconds"),
                }
                for record in records[:limit_per_key]
            ]
        return overview

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def force_backup(self) -> int:
        """Back up the critical keys now. Returns how many were written."""
        written = self.vault.force_backup(CRITICAL_KEYS)
        self._notify(f"Създадени резервни копия: {written}", NotificationLevel.SUCCESS)
        return written

    def cleanup_storage(self) -> int:
        """Keep only the newest backup of every key. Returns how many were removed."""
        removed = self.vault.emergency_cleanup()
        self._notify(f"Изтрити стари копия: {removed}", NotificationLevel.SUCCESS)
        return removed

    def test_recovery(self) -> dict[str, Any]:
        """
        Check that every backed-up key has a readable latest backup.

        Returns {passed, backupCount, keys, unreadable}.
        """
        backups = self.vault.list_backups()
        count = sum(len(records) for records in backups.values())
        unreadable = []
        for key in backups:
            record = self.vault.latest(key)
            if record is None:
                logger.warning("recovery_check_failed", key=key, error="no readable backup")
                unreadable.append(key)
                continue
            try:
                self.store.decode(key, record.payload)
            except StorageError as e:
                logger.warning("recovery_check_failed", key=key, error=str(e))
                unreadable.append(key)

        passed = count > 0 and not unreadable
        if passed:
            self._notify(f"Тестът за възстановяване е успешен: {count} копия", NotificationLevel.SUCCESS)
        elif count == 0:
            self._notify("Няма резервни копия за възстановяване", NotificationLevel.WARNING)
        else:
            self._notify(f"Нечетими копия: {', '.join(unreadable)}", NotificationLevel.ERROR)

        return {
            "passed": passed,
            "backupCount": count,
            "keys": sorted(backups),
            "unreadable": unreadable,
        }

    def restore_from_backup(self, key: str, timestamp: int) -> Any:
        """
        Put a backed-up value back in the store and in the hub.

        The undo history is cleared: its commands were recorded against the
        value that has just been replaced.

        Raises:
            BusyError: During an import
            BackupMissingError: If there is no such backup
        """
        self.hub.ensure_idle("restore")
        try:
            value = self.vault.restore(key, timestamp)
        except BackupMissingError as e:
            self._notify(f"Възстановяването неуспешно: {e}", NotificationLevel.ERROR)
            raise

        if key in STATE_KEYS:
            self.hub.reload_key(key)
            if self.commands is not None:
                self.commands.clear()

        self._notify(f"'{key}' е възстановен от копие", NotificationLevel.SUCCESS)
        logger.info("restored_from_backup", key=key, timestamp=timestamp)
        return value

    def _notify(self, message: str, level: NotificationLevel) -> None:
        self.bus.emit(Topics.NOTIFICATION_SHOW, notification(message, level, source="protection"))
