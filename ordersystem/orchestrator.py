"""
Main Orchestrator for the Order System

This module ties together all the components:

    caller -> DomainModule -> StateHub -> KeyedStore (+BackupVault)

and the listeners hanging off the event bus (reports invalidation, health
monitor, audit log).

DESIGN DECISION: There is exactly one of each component per application.
They share one bus, one hub and one command stack; everything is injected
so tests can swap the medium, the clock and the remote services.
"""

from typing import Any, Optional

import structlog

from ordersystem.audit import AuditLogger, configure_logging
from ordersystem.config import Settings, get_settings
from ordersystem.core.event_bus import EventBus
from ordersystem.core.history import Command, CommandStack
from ordersystem.core.state import StateHub
from ordersystem.modules import (
    ClientsModule,
    ExpensesModule,
    InventoryModule,
    MonthsModule,
    OrdersModule,
    SettingsModule,
)
from ordersystem.monitoring import HealthMonitor, ProtectionDashboard
from ordersystem.reports import ReportsEngine
from ordersystem.services.image import OrderImageService
from ordersystem.services.remote import (
    GoogleSheetsClient,
    GoogleSheetsRowStore,
    RemoteMirror,
    RowStoreInterface,
)
from ordersystem.services.storage import KeyedStore, StorageMedium
from ordersystem.transfer import ImportExportEnvelope
from ordersystem.utils.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)


class AppContext:
    """
    Every component of one running application.

    Flow:
    1. load() -> state from the store, current month ensured
    2. modules mutate through the hub; commands and events follow
    3. monitor.start() runs the health and reminder loops
    4. close() stops listeners and loops
    """

    def __init__(
        self,
        settings: Settings,
        store: KeyedStore,
        clock: Clock,
        remote: Optional[RowStoreInterface] = None,
        image_service: Optional[OrderImageService] = None,
    ):
        self.settings = settings
        self.clock = clock
        self.store = store

        self.bus = EventBus()
        self.audit = AuditLogger(self.bus)
        self.hub = StateHub(store, self.bus, clock=clock)
        self.commands = CommandStack(
            self.hub,
            self.bus,
            capacity=settings.history.undo_capacity,
            clock=clock,
        )

        # Domain modules
        module_args = (self.hub, self.bus, self.commands)
        self.settings_module = SettingsModule(*module_args, clock=clock)
        self.clients = ClientsModule(*module_args, clock=clock)
        self.orders = OrdersModule(*module_args, clock=clock, image_service=image_service)
        self.expenses = ExpensesModule(*module_args, clock=clock)
        self.inventory = InventoryModule(*module_args, clock=clock)
        self.reports = ReportsEngine(self.hub, self.bus, clock=clock, settings=settings.reports)
        self.months = MonthsModule(
            *module_args,
            clock=clock,
            expenses=self.expenses,
            caches=(self.clients, self.orders, self.reports),
        )

        # Resilience
        self.monitor = HealthMonitor(store, self.bus, clock=clock, settings=settings.monitor)
        self.dashboard = ProtectionDashboard(self.hub, self.bus, self.monitor, commands=self.commands)
        self.envelope = ImportExportEnvelope(self.hub, self.bus, self.commands, clock=clock)

        self.mirror = RemoteMirror(self.hub, remote, bus=self.bus) if remote is not None else None

    async def load(self) -> str:
        """
        Populate the hub from the store and make sure the current month exists.

        Returns the current month key.
        """
        self.hub.load_from_store()
        current = await self.months.ensure_current_month()
        logger.info("app_loaded", current_month=current, keys=len(self.store.keys()))
        return current

    async def undo(self) -> Optional[Command]:
        return self.commands.undo()

    async def redo(self) -> Optional[Command]:
        return self.commands.redo()

    async def sync_remote(self) -> Optional[dict[str, Any]]:
        """Push local state to the remote row-store, if one is configured."""
        if self.mirror is None:
            return None
        return await self.mirror.push_all()

    async def close(self) -> None:
        await self.monitor.stop()
        self.monitor.close()
        self.reports.invalidations.detach()
        self.audit.close()


def create_app_components(
    settings: Optional[Settings] = None,
    medium: Optional[StorageMedium] = None,
    clock: Optional[Clock] = None,
    remote: Optional[RowStoreInterface] = None,
    image_service: Optional[OrderImageService] = None,
) -> AppContext:
    """
    Factory function to create all application components.

    Args:
        settings: Configuration; the cached environment settings if None.
        medium: Storage medium; built from the storage settings if None.
        clock: Time source; the system clock if None.
        remote: Remote row-store. If None and Google Sheets is configured,
                a GoogleSheetsRowStore is created.
        image_service: Order photo normaliser; one is created if None.

    Returns:
        AppContext (call `await ctx.load()` before use)
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()

    app_settings = settings.app
    configure_logging(app_settings.log_level, json_output=app_settings.log_json)

    store = KeyedStore.from_settings(settings.storage, medium=medium, clock=clock)

    if remote is None:
        remote_settings = settings.remote
        if remote_settings.is_configured:
            remote = GoogleSheetsRowStore(GoogleSheetsClient(remote_settings))
        else:
            logger.info("remote_store_not_configured")

    if image_service is None:
        image_service = OrderImageService(settings.images)

    return AppContext(
        settings,
        store,
        clock,
        remote=remote,
        image_service=image_service,
    )
