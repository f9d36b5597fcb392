"""
Import / Export Envelope

The versioned JSON bundle the user downloads as a manual backup and loads
back into a fresh installation.

Bundle layout (version 1.2):

    {version, exportDate, monthlyData, clientsData, settings, inventory,
     availableMonths, currentMonth, ...unknown keys of the last import}

DESIGN DECISION: Import is all-or-nothing.
1. parse and validate (schema, then version) before touching anything
2. upgrade older bundles in memory (BGN money -> EUR, once)
3. take the hub exclusively; every other mutation raises BusyError
4. snapshot every prefixed key raw, and force a vault backup
5. clear the prefixed store (keeping lastManualExport), write all keys
6. reload the hub, clear the undo history, emit `store:imported`

Any failure in steps 5-6, cancellation included, writes the raw snapshot
back and reloads the hub from it.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional, Union
from uuid import uuid4

import structlog
from pydantic import ValidationError

from ordersystem.core.event_bus import EventBus
from ordersystem.core.history import CommandStack
from ordersystem.core.state import (
    AVAILABLE_MONTHS,
    CLIENTS_DATA,
    CURRENT_MONTH,
    ENVELOPE_EXTRAS,
    INVENTORY,
    MONTHLY_DATA,
    SETTINGS,
    STATE_KEYS,
    BusyError,
    StateHub,
    normalize_months,
)
from ordersystem.currency.engine import BGN_PER_EUR, Currency, convert_bgn_to_eur
from ordersystem.models.events import NotificationLevel, Topics, notification
from ordersystem.models.records import BusinessSettings, Client, ExpenseLine, InventoryItem, Order
from ordersystem.modules.base import ensure_month_snapshot
from ordersystem.services.storage.interface import StorageError
from ordersystem.services.storage.keyed_store import LAST_MANUAL_EXPORT_KEY
from ordersystem.utils.clock import Clock, SystemClock
from ordersystem.utils.dates import is_month_key, month_key
from ordersystem.validation.validator import (
    CURRENT_VERSION,
    LEGACY_VERSIONS,
    BundleValidationResult,
    BundleValidator,
)

logger = structlog.get_logger(__name__)

BUNDLE_KEYS = (MONTHLY_DATA, CLIENTS_DATA, SETTINGS, INVENTORY, AVAILABLE_MONTHS, CURRENT_MONTH)
META_KEYS = ("version", "exportDate")

# Derived BGN figures written by older releases; recomputed in EUR now
LEGACY_DERIVED = ("totalBGN", "balanceBGN", "totalEUR", "balanceEUR")


# =============================================================================
# EXCEPTIONS
# =============================================================================

class EnvelopeError(Exception):
    """Base exception for bundle import/export."""
    pass


class InvalidEnvelopeError(EnvelopeError):
    """The bundle is not structurally valid."""

    def __init__(self, message: str, result: Optional[BundleValidationResult] = None):
        self.result = result
        super().__init__(message)


class IncompatibleVersionError(EnvelopeError):
    """The bundle was written by a version we cannot upgrade."""

    def __init__(self, version: Any):
        self.version = version
        super().__init__(f"Bundle version {version} is not supported")


# =============================================================================
# UPGRADE
# =============================================================================

def _bgn_to_eur_field(record: dict, bgn_field: str, eur_field: str) -> None:
    if bgn_field in record:
        amount = record.pop(bgn_field)
        if eur_field not in record:
            record[eur_field] = convert_bgn_to_eur(amount)


def _upgrade_order(raw: dict, legacy: bool, eur_rate: float) -> dict:
    order = {k: v for k, v in raw.items() if k not in LEGACY_DERIVED}
    if legacy:
        _bgn_to_eur_field(order, "sellBGN", "sellEUR")
        _bgn_to_eur_field(order, "extrasBGN", "extrasEUR")
        # Older orders captured a USD->BGN rate
        if order.get("rate"):
            order["rate"] = round(float(order["rate"]) / float(BGN_PER_EUR), 4)
    # Orders without a captured rate use the bundle's USD->EUR rate
    if not order.get("rate"):
        order["rate"] = eur_rate
    return Order.model_validate(order).to_store()


def _upgrade_expense(raw: dict, month: str, legacy: bool) -> dict:
    expense = dict(raw)
    if "name" not in expense and "category" in expense:
        expense["name"] = expense.pop("category")
    if "note" not in expense and "description" in expense:
        expense["note"] = expense.pop("description")
    expense.pop("month", None)

    in_bgn = legacy or expense.get("currency") == Currency.BGN.value
    if in_bgn and expense.get("currency") != Currency.EUR.value:
        amount = float(expense.get("amount") or 0)
        expense["amountBGN"] = amount
        expense["amount"] = convert_bgn_to_eur(amount)
    expense["currency"] = Currency.EUR.value
    expense["monthKey"] = month
    expense["id"] = expense.get("id") or f"exp_{uuid4().hex[:12]}"
    return ExpenseLine.model_validate(expense).to_store()


def _upgrade_item(item_id: str, raw: dict, legacy: bool) -> dict:
    item = {**raw, "id": raw.get("id") or item_id}
    if legacy:
        for field in ("purchasePrice", "sellPrice"):
            if field in item:
                item[field] = convert_bgn_to_eur(item[field])
    return InventoryItem.model_validate(item).to_store()


def _upgrade_settings(raw: dict, legacy: bool) -> dict:
    settings = dict(raw)
    if legacy and settings.get("defaultExpenses"):
        settings["defaultExpenses"] = [
            {**entry, "amount": convert_bgn_to_eur(entry.get("amount"))}
            for entry in settings["defaultExpenses"]
            if isinstance(entry, dict)
        ]
    return BusinessSettings.model_validate(settings).to_store()


def upgrade_bundle(data: dict, version: str, today_month: str) -> dict[str, Any]:
    """
    Turn a validated bundle of any supported version into state values.

    Money from 1.0/1.1 bundles (and 1.2 expense lines tagged BGN) is
    converted to EUR here, once. Orders are regrouped by the month of their
    date.

    Raises:
        ValidationError: If a record does not fit its model
    """
    legacy = version in LEGACY_VERSIONS
    settings = _upgrade_settings(data[SETTINGS], legacy)

    monthly_data: dict[str, dict] = {}
    for month in sorted(data[MONTHLY_DATA]):
        snapshot = data[MONTHLY_DATA][month] or {}
        target = ensure_month_snapshot(monthly_data, month)
        target["lastOrderSeq"] = max(target["lastOrderSeq"], int(snapshot.get("lastOrderSeq") or 0))
        for raw in snapshot.get("orders") or []:
            order = _upgrade_order(raw, legacy, settings["eurRate"])
            ensure_month_snapshot(monthly_data, order["monthKey"])["orders"].append(order)
        for raw in snapshot.get("expenses") or []:
            target["expenses"].append(_upgrade_expense(raw, month, legacy))

    clients = {}
    for client_id, raw in data[CLIENTS_DATA].items():
        client = Client.model_validate({**raw, "id": raw.get("id") or client_id}).to_store()
        clients[client["id"]] = client

    inventory = {}
    for item_id, raw in (data.get(INVENTORY) or {}).items():
        item = _upgrade_item(item_id, raw, legacy)
        inventory[item["id"]] = item

    current = data.get(CURRENT_MONTH)
    if not is_month_key(current):
        current = today_month

    return {
        MONTHLY_DATA: monthly_data,
        CLIENTS_DATA: clients,
        SETTINGS: settings,
        INVENTORY: inventory,
        AVAILABLE_MONTHS: normalize_months((data.get(AVAILABLE_MONTHS) or []) + [current], monthly_data),
        CURRENT_MONTH: current,
        ENVELOPE_EXTRAS: {k: v for k, v in data.items() if k not in BUNDLE_KEYS + META_KEYS},
    }


# =============================================================================
# ENVELOPE
# =============================================================================

class ImportExportEnvelope:
    """Exports the state as a bundle and imports bundles atomically."""

    def __init__(
        self,
        hub: StateHub,
        bus: EventBus,
        commands: CommandStack,
        clock: Optional[Clock] = None,
        validator: Optional[BundleValidator] = None,
    ):
        self.hub = hub
        self.bus = bus
        self.commands = commands
        self.clock = clock or SystemClock()
        self.validator = validator or BundleValidator()

    @property
    def store(self):
        return self.hub.store

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_bundle(self) -> dict[str, Any]:
        state = self.hub.snapshot()
        extras = state.get(ENVELOPE_EXTRAS) or {}
        return {
            **extras,
            "version": CURRENT_VERSION,
            "exportDate": self.clock.now().isoformat(),
            MONTHLY_DATA: state[MONTHLY_DATA],
            CLIENTS_DATA: state[CLIENTS_DATA],
            SETTINGS: state[SETTINGS],
            INVENTORY: state[INVENTORY],
            AVAILABLE_MONTHS: state[AVAILABLE_MONTHS],
            CURRENT_MONTH: state[CURRENT_MONTH],
        }

    def export_json(self) -> str:
        return json.dumps(self.export_bundle(), indent=2, ensure_ascii=False)

    def export_filename(self) -> str:
        return f"orders-backup-{self.clock.now().date().isoformat()}.json"

    def export_to_file(self, directory: Union[str, Path]) -> Path:
        """Write the bundle into `directory` and record the manual export."""
        target = Path(directory) / self.export_filename()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.export_json(), encoding="utf-8")

        self.store.save(LAST_MANUAL_EXPORT_KEY, self.clock.now_ms())
        logger.info("bundle_exported", path=str(target), size=target.stat().st_size)
        self.bus.emit(
            Topics.NOTIFICATION_SHOW,
            notification(f"Данните са експортирани: {target.name}", NotificationLevel.SUCCESS),
        )
        return target

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    def parse(self, source: Union[dict, str, bytes]) -> tuple[str, dict[str, Any]]:
        """
        (version, state values) of a validated, upgraded bundle. Nothing is written.

        Raises:
            InvalidEnvelopeError: If the bundle is malformed
            IncompatibleVersionError: If its version cannot be read
        """
        if isinstance(source, (str, bytes)):
            try:
                source = json.loads(source)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidEnvelopeError(f"Bundle is not valid JSON: {e}")

        result = self.validator.validate(source)
        if not result.schema_valid:
            raise InvalidEnvelopeError(self.validator.get_user_friendly_summary(result), result)
        if not result.version_supported:
            raise IncompatibleVersionError(source.get("version"))

        for warning in result.warnings:
            logger.warning("bundle_validation_warning", warning=warning)

        try:
            return result.version, upgrade_bundle(source, result.version, month_key(self.clock.now()))
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors(include_url=False)
            )
            raise InvalidEnvelopeError(f"Bundle contains invalid records: {details}")

    async def import_bundle(self, source: Union[dict, str, bytes]) -> dict[str, Any]:
        """
        Replace all data with the bundle's.

        Returns {version, months, orders, clients, expenses, inventory}.

        Raises:
            InvalidEnvelopeError / IncompatibleVersionError: Nothing changed
            BusyError: Another import is running
            StorageError: Writing failed; the previous data is restored
        """
        try:
            version, state = self.parse(source)
            with self.hub.exclusive("import"):
                await self._replace(state)
        except BusyError as e:
            self._announce_failure(e, NotificationLevel.WARNING)
            raise
        except Exception as e:
            self._announce_failure(e, NotificationLevel.ERROR)
            raise

        self.commands.clear()
        summary = {
            "version": version,
            "months": len(state[MONTHLY_DATA]),
            "orders": sum(len(s["orders"]) for s in state[MONTHLY_DATA].values()),
            "expenses": sum(len(s["expenses"]) for s in state[MONTHLY_DATA].values()),
            "clients": len(state[CLIENTS_DATA]),
            "inventory": len(state[INVENTORY]),
        }
        logger.info("bundle_imported", **summary)
        self.bus.emit(Topics.STORE_IMPORTED, summary)
        return summary

    async def import_file(self, path: Union[str, Path]) -> dict[str, Any]:
        try:
            text = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            error = InvalidEnvelopeError(f"Cannot read {path}: {e}")
            self._announce_failure(error, NotificationLevel.ERROR)
            raise error
        return await self.import_bundle(text)

    async def _replace(self, state: dict[str, Any]) -> None:
        store = self.store
        previous = {key: store.load_raw(key) for key in store.keys()}
        store.vault.force_backup()

        try:
            store.clear_prefix(keep=(LAST_MANUAL_EXPORT_KEY,))
            for key in STATE_KEYS:
                store.save(key, state[key])
                # Yield between writes; a cancellation lands in the rollback below
                await asyncio.sleep(0)
            self.hub.load_from_store()
        except (Exception, asyncio.CancelledError) as e:
            logger.error("import_failed_rolling_back", error=str(e), error_type=type(e).__name__)
            self._rollback(previous)
            raise

    def _rollback(self, previous: dict[str, Optional[str]]) -> None:
        store = self.store
        store.clear_prefix(keep=(LAST_MANUAL_EXPORT_KEY,))
        failed = []
        for key, payload in previous.items():
            if payload is None or key == LAST_MANUAL_EXPORT_KEY:
                continue
            try:
                store.save_raw(key, payload)
            except StorageError as e:
                failed.append(key)
                logger.error("import_rollback_key_failed", key=key, error=str(e))
        self.hub.load_from_store()
        logger.warning("import_rolled_back", keys=len(previous), failed=failed)

    def _announce_failure(self, error: Exception, level: NotificationLevel) -> None:
        # Quota failures were already announced by the store's failure listeners
        if isinstance(error, StorageError):
            return
        logger.warning("bundle_import_rejected", error=str(error), error_type=type(error).__name__)
        self.bus.emit(
            Topics.NOTIFICATION_SHOW,
            notification(f"Импортът е неуспешен: {error}", level, error_type=type(error).__name__),
        )
