"""
Health Monitor

Watches the keyed store and reminds the user to export.

Two cooperative asyncio loops:
- storage health every `health_interval_seconds`
- export reminder every `reminder_interval_seconds`

A check that raises is logged and the loop goes on; only stop() ends them.

DESIGN DECISION: Storage failures are surfaced here and nowhere else.
The monitor registers itself as a failure listener of the store, so every
rejected write turns into exactly one `notification:show` event, whichever
component attempted it.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from ordersystem.config.settings import MonitorSettings
from ordersystem.core.event_bus import EventBus
from ordersystem.models.events import NotificationLevel, Topics, notification
from ordersystem.models.storage import HealthStatus, StorageHealth
from ordersystem.services.storage.interface import QuotaExceededError, StorageError
from ordersystem.services.storage.keyed_store import LAST_MANUAL_EXPORT_KEY, KeyedStore
from ordersystem.utils.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)

MS_PER_DAY = 24 * 60 * 60 * 1000


class HealthMonitor:
    """Periodic storage checks and export reminders."""

    def __init__(
        self,
        store: KeyedStore,
        bus: EventBus,
        clock: Optional[Clock] = None,
        settings: Optional[MonitorSettings] = None,
    ):
        self.store = store
        self.bus = bus
        self.clock = clock or SystemClock()
        self.settings = settings or MonitorSettings()

        self._tasks: list[asyncio.Task] = []
        self._unsubscribe = store.add_failure_listener(self.report_storage_error)

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def check_storage(self) -> StorageHealth:
        """
        Sample storage health.

        Every sample in `warning` or `error` is announced, so the reminder
        repeats on each tick until space is freed.
        """
        health = self.store.health()

        logger.info("storage_health", **health.to_log_dict())

        if health.status != HealthStatus.OK:
            level = NotificationLevel.ERROR if health.status == HealthStatus.ERROR else NotificationLevel.WARNING
            message = health.error or (
                f"Хранилището е запълнено на {health.usage_ratio:.0%} "
                f"({health.used_mb} MB). Експортирайте данните."
            )
            self.bus.emit(
                Topics.NOTIFICATION_SHOW,
                notification(message, level, source="storage", status=health.status.value),
            )
        return health

    def days_since_export(self) -> Optional[int]:
        """Whole days since the last manual export, None if never exported."""
        last_export = self.store.load_or_none(LAST_MANUAL_EXPORT_KEY)
        if not isinstance(last_export, (int, float)) or isinstance(last_export, bool):
            return None
        return max(0, int((self.clock.now_ms() - last_export) // MS_PER_DAY))

    def check_export_reminder(self) -> bool:
        """Remind when the last manual export is too old (or never happened)."""
        days = self.days_since_export()
        if days is not None and days < self.settings.export_reminder_days:
            return False

        if days is None:
            message = "Данните никога не са експортирани. Направете резервно копие."
        else:
            message = f"Последният експорт е преди {days} дни. Препоръчително е ново копие."

        logger.info("export_reminder", days_since_export=days)
        self.bus.emit(
            Topics.NOTIFICATION_SHOW,
            notification(message, NotificationLevel.WARNING, source="export", daysSinceExport=days),
        )
        return True

    def tick(self) -> dict[str, Any]:
        """Run both checks once."""
        health = self.check_storage()
        reminded = self.check_export_reminder()
        return {"health": health, "reminded": reminded}

    # -------------------------------------------------------------------------
    # Storage failures
    # -------------------------------------------------------------------------

    def report_storage_error(self, key: str, error: StorageError) -> None:
        """Failure listener of the store: announce a rejected write."""
        if isinstance(error, QuotaExceededError):
            message = f"Няма място за запис на '{key}'. Промяната е отменена."
        else:
            message = f"Грешка при запис на '{key}': {error}"

        self.bus.emit(
            Topics.NOTIFICATION_SHOW,
            notification(
                message,
                NotificationLevel.ERROR,
                source="storage",
                key=key,
                error_type=type(error).__name__,
            ),
        )

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        """Start both loops on the running event loop."""
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(
                self._loop("storage", self.settings.health_interval_seconds, self._storage_step)
            ),
            asyncio.create_task(
                self._loop("export_reminder", self.settings.reminder_interval_seconds, self._reminder_step)
            ),
        ]
        logger.info("health_monitor_started")

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("health_monitor_stopped")

    def close(self) -> None:
        """Stop listening to store failures."""
        self._unsubscribe()

    async def _storage_step(self) -> None:
        self.check_storage()

    async def _reminder_step(self) -> None:
        self.check_export_reminder()

    async def _loop(
        self,
        name: str,
        interval: float,
        step: Callable[[], Awaitable[None]],
    ) -> None:
        while True:
            try:
                await step()
            except Exception as e:
                logger.error("health_check_failed", check=name, error=str(e), exc_info=True)
            await asyncio.sleep(interval)
