"""
State Hub

The single in-memory record of the business data, mirrored key by key into
the KeyedStore.

Keys:
- monthlyData      {MonthKey: {orders, expenses, lastOrderSeq}}
- clientsData      {clientId: Client}
- settings         BusinessSettings
- inventory        {boxId: InventoryItem}
- availableMonths  [{key, name}] sorted, duplicate-free
- currentMonth     MonthKey the user is looking at
- envelopeExtras   unknown top-level keys of the last imported bundle

DESIGN DECISION: The hub holds plain JSON-compatible data and hands out
deep copies. Nobody can mutate state behind its back, so every change goes
through `set` / `update`, where it is persisted and announced.

`update` is all-or-nothing. If any save in the batch is rejected, every key
of the batch is put back in memory, keys already written are re-saved with
their old value, and the storage error propagates.
"""

import copy
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, Optional

import structlog

from ordersystem.core.event_bus import EventBus
from ordersystem.models.events import Topics
from ordersystem.models.records import BusinessSettings
from ordersystem.services.storage.interface import StorageError
from ordersystem.services.storage.keyed_store import KeyedStore
from ordersystem.utils.clock import Clock, SystemClock
from ordersystem.utils.dates import is_month_key, month_entry, month_key

logger = structlog.get_logger(__name__)

MONTHLY_DATA = "monthlyData"
CLIENTS_DATA = "clientsData"
SETTINGS = "settings"
INVENTORY = "inventory"
AVAILABLE_MONTHS = "availableMonths"
CURRENT_MONTH = "currentMonth"
ENVELOPE_EXTRAS = "envelopeExtras"

STATE_KEYS = (
    MONTHLY_DATA,
    CLIENTS_DATA,
    SETTINGS,
    INVENTORY,
    AVAILABLE_MONTHS,
    CURRENT_MONTH,
    ENVELOPE_EXTRAS,
)

StateListener = Callable[[Any], None]


class BusyError(Exception):
    """The hub is held exclusively (an import is running). Retry later."""

    def __init__(self, operation: str = "operation"):
        self.operation = operation
        super().__init__(f"Cannot run {operation}: an import is in progress")


def normalize_months(months: Any, monthly_data: Optional[dict] = None) -> list[dict]:
    """
    Sorted, duplicate-free month list.

    Accepts `[{key, name}]` or bare keys; merges in the keys of monthlyData.
    Entries that are not month keys are dropped.
    """
    keys: set[str] = set()
    for entry in months or []:
        key = entry.get("key") if isinstance(entry, dict) else entry
        if is_month_key(key):
            keys.add(key)
    for key in (monthly_data or {}):
        if is_month_key(key):
            keys.add(key)
    return [month_entry(key) for key in sorted(keys)]


class StateHub:
    """In-memory state, persisted on every change."""

    def __init__(
        self,
        store: KeyedStore,
        bus: EventBus,
        clock: Optional[Clock] = None,
    ):
        self._store = store
        self._bus = bus
        self._clock = clock or SystemClock()
        self._state: dict[str, Any] = self.default_state()
        self._listeners: dict[str, list[StateListener]] = {}
        self._busy = False

    @property
    def store(self) -> KeyedStore:
        return self._store

    @property
    def busy(self) -> bool:
        return self._busy

    def default_state(self) -> dict[str, Any]:
        current = month_key(self._clock.now())
        return {
            MONTHLY_DATA: {},
            CLIENTS_DATA: {},
            SETTINGS: BusinessSettings().to_store(),
            INVENTORY: {},
            AVAILABLE_MONTHS: [month_entry(current)],
            CURRENT_MONTH: current,
            ENVELOPE_EXTRAS: {},
        }

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    def get(self, key: str) -> Any:
        """Deep copy of a state value."""
        self._check_key(key)
        return copy.deepcopy(self._state.get(key))

    def snapshot(self, keys: Optional[Iterable[str]] = None) -> dict[str, Any]:
        """Deep copy of several keys (default: all)."""
        return {key: self.get(key) for key in (keys or STATE_KEYS)}

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    def set(self, key: str, value: Any, notify: bool = True) -> None:
        self.update({key: value}, notify=notify)

    def update(self, changes: dict[str, Any], notify: bool = True) -> None:
        """
        Replace several keys as one batch.

        Raises:
            StorageError: If any save is rejected (the batch is rolled back)
        """
        for key in changes:
            self._check_key(key)

        new_values = {key: copy.deepcopy(value) for key, value in changes.items()}
        old_values = {key: self._state.get(key) for key in changes}
        saved: list[str] = []

        try:
            for key, value in new_values.items():
                self._state[key] = value
            for key, value in new_values.items():
                self._store.save(key, value)
                saved.append(key)
        except StorageError as e:
            for key, value in old_values.items():
                self._state[key] = value
            for key in saved:
                try:
                    self._store.save(key, old_values[key], backup=False)
                except StorageError as restore_error:
                    logger.error("state_rollback_save_failed", key=key, error=str(restore_error))
            logger.warning("state_update_rolled_back", keys=list(changes), error=str(e))
            raise

        if notify:
            self.notify(changes.keys())

    def notify(self, keys: Iterable[str]) -> None:
        """Announce committed changes: key listeners first, then the bus."""
        for key in keys:
            for listener in list(self._listeners.get(key, [])):
                try:
                    listener(self.get(key))
                except Exception as e:
                    logger.error("state_listener_failed", key=key, error=str(e))
            self._bus.emit(Topics.state_changed(key), {"key": key})

    def subscribe(self, key: str, listener: StateListener) -> Callable[[], None]:
        """Call `listener(new_value)` after every committed change of `key`."""
        self._check_key(key)
        self._listeners.setdefault(key, []).append(listener)
        return lambda: self._listeners[key].remove(listener)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def load_from_store(self) -> None:
        """Replace memory with what the store holds, defaults for absent keys."""
        defaults = self.default_state()
        loaded = 0
        for key in STATE_KEYS:
            value = self._store.load_or_none(key)
            if value is None:
                value = defaults[key]
            else:
                loaded += 1
            self._state[key] = value

        # Older data may carry partial settings
        self._state[SETTINGS] = BusinessSettings.from_store(self._state[SETTINGS] or {}).to_store()
        self._state[AVAILABLE_MONTHS] = normalize_months(
            self._state[AVAILABLE_MONTHS], self._state[MONTHLY_DATA]
        )
        if not is_month_key(self._state[CURRENT_MONTH]):
            self._state[CURRENT_MONTH] = defaults[CURRENT_MONTH]

        logger.info("state_loaded", keys_loaded=loaded)
        self.notify(STATE_KEYS)

    def reload_key(self, key: str) -> None:
        """Re-read one key from the store (after a backup restore)."""
        self._check_key(key)
        value = self._store.load_or_none(key)
        self._state[key] = value if value is not None else self.default_state()[key]
        self.notify([key])

    @contextmanager
    def exclusive(self, operation: str = "import") -> Iterator[None]:
        """Hold the hub exclusively; other mutations raise BusyError meanwhile."""
        self.ensure_idle(operation)
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def ensure_idle(self, operation: str = "operation") -> None:
        if self._busy:
            raise BusyError(operation)

    @staticmethod
    def _check_key(key: str) -> None:
        if key not in STATE_KEYS:
            raise KeyError(f"Unknown state key: {key}")
