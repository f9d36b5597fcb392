"""
Shared fixtures for the Order System tests.

Test strategy:
1. Unit tests for individual components (currency, models, storage)
2. Module tests through a real hub on an in-memory medium
3. No real API calls in tests (Google Sheets and Cloudinary are mocked)
"""

from datetime import datetime, timedelta

import pytest

from ordersystem.core.event_bus import EventBus
from ordersystem.core.history import CommandStack
from ordersystem.core.state import StateHub
from ordersystem.models.events import Topics
from ordersystem.modules import (
    ClientsModule,
    ExpensesModule,
    InventoryModule,
    MonthsModule,
    OrdersModule,
    SettingsModule,
)
from ordersystem.monitoring import HealthMonitor
from ordersystem.reports import ReportsEngine
from ordersystem.services.storage import KeyedStore, MemoryMedium
from ordersystem.transfer import ImportExportEnvelope
from ordersystem.utils.clock import FixedClock


@pytest.fixture
def clock():
    """20 Nov 2024, advancing 1 ms per read so every save gets its own timestamp."""
    return FixedClock(datetime(2024, 11, 20, 10, 0, 0), step=timedelta(milliseconds=1))


@pytest.fixture
def medium():
    return MemoryMedium()


@pytest.fixture
def store(medium, clock):
    return KeyedStore(medium, clock=clock)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def events(bus):
    """Every event emitted on the bus, in order."""
    seen = []
    bus.on("*", seen.append)
    return seen


@pytest.fixture
def notifications(bus):
    """Payloads of every `notification:show` event."""
    seen = []
    bus.on(Topics.NOTIFICATION_SHOW, lambda event: seen.append(event.payload))
    return seen


@pytest.fixture
def hub(store, bus, clock):
    return StateHub(store, bus, clock=clock)


@pytest.fixture
def commands(hub, bus, clock):
    return CommandStack(hub, bus, clock=clock)


@pytest.fixture
def monitor(store, bus, clock):
    return HealthMonitor(store, bus, clock=clock)


@pytest.fixture
def clients(hub, bus, commands, clock):
    return ClientsModule(hub, bus, commands, clock=clock)


@pytest.fixture
def orders(hub, bus, commands, clock):
    return OrdersModule(hub, bus, commands, clock=clock)


@pytest.fixture
def expenses(hub, bus, commands, clock):
    return ExpensesModule(hub, bus, commands, clock=clock)


@pytest.fixture
def inventory(hub, bus, commands, clock):
    return InventoryModule(hub, bus, commands, clock=clock)


@pytest.fixture
def settings_module(hub, bus, commands, clock):
    return SettingsModule(hub, bus, commands, clock=clock)


@pytest.fixture
def months(hub, bus, commands, clock, expenses, clients, orders):
    return MonthsModule(hub, bus, commands, clock=clock, expenses=expenses, caches=(clients, orders))


@pytest.fixture
def reports(hub, bus, clock):
    return ReportsEngine(hub, bus, clock=clock)


@pytest.fixture
def envelope(hub, bus, commands, clock):
    return ImportExportEnvelope(hub, bus, commands, clock=clock)


@pytest.fixture
def sample_order():
    """The order of the export/import round-trip scenario."""
    return {
        "date": "2024-11-15",
        "client": "Иван",
        "origin": "OLX",
        "vendor": "A",
        "model": "Rolex",
        "costUSD": 100,
        "shippingUSD": 10,
        "extrasEUR": 5,
        "sellEUR": 200,
        "status": "Доставен",
    }
