"""
Domain Module Base

Every domain module (orders, clients, expenses, inventory, settings,
months) mutates state the same way:

1. refuse while an import holds the hub (BusyError)
2. validate input and compute the new value of the affected keys
3. snapshot the affected keys ("before")
4. commit the new values through StateHub.update (all-or-nothing)
5. push ONE Command whose inverse restores "before" and whose forward
   re-applies "after"
6. announce: state change notifications, then the domain event

DESIGN DECISION: The command is pushed before any event goes out, so an
event handler that calls undo() undoes the operation it was told about.

Rejected operations (unknown id, duplicate name, negative stock, invalid
input) emit exactly one `notification:show` and raise; state is untouched.
"""

import copy
from typing import Any, Iterator, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ordersystem.core.event_bus import EventBus
from ordersystem.core.history import CommandStack
from ordersystem.core.state import AVAILABLE_MONTHS, MONTHLY_DATA, BusyError, StateHub, normalize_months
from ordersystem.models.events import NotificationLevel, Topics, notification
from ordersystem.models.records import Order
from ordersystem.utils.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class DomainError(Exception):
    """Base exception for rejected domain operations."""
    pass


class NotFoundError(DomainError):
    """No record with the given id."""

    def __init__(self, entity: str, record_id: Any):
        self.entity = entity
        self.record_id = record_id
        super().__init__(f"{entity} '{record_id}' not found")


class DuplicateClientError(DomainError):
    """A client with the same (case-insensitive, trimmed) name exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Client '{name}' already exists")


class NegativeStockError(DomainError):
    """A stock change would take a box below zero."""

    def __init__(self, item_id: str, current: int, requested: int):
        self.item_id = item_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Insufficient stock for '{item_id}': have {current}, change would leave {requested}"
        )


class InvalidRecordError(DomainError):
    """Input failed schema validation."""

    def __init__(self, entity: str, errors: list[dict]):
        self.entity = entity
        self.errors = errors
        details = "; ".join(
            f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg')}" for e in errors
        )
        super().__init__(f"Invalid {entity}: {details}")


# =============================================================================
# HELPERS
# =============================================================================

def empty_month() -> dict:
    return {"orders": [], "expenses": [], "lastOrderSeq": 0}


def ensure_month_snapshot(monthly_data: dict, month: str) -> dict:
    """The month's snapshot, created (and missing lists filled) in place."""
    snapshot = monthly_data.setdefault(month, empty_month())
    snapshot.setdefault("orders", [])
    snapshot.setdefault("expenses", [])
    snapshot.setdefault("lastOrderSeq", 0)
    return snapshot


def iter_orders(monthly_data: dict) -> Iterator[tuple[str, dict]]:
    """(monthKey, stored order) across every month, oldest month first."""
    for month in sorted(monthly_data):
        for order in (monthly_data[month] or {}).get("orders", []) or []:
            yield month, order


def order_view(stored: dict) -> dict:
    """Stored order plus derived totals."""
    return Order.from_store(stored).to_view()


def to_aliases(model: Type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    """Rewrite snake_case field names in `data` to the model's camelCase aliases."""
    result = {}
    for key, value in data.items():
        info = model.model_fields.get(key)
        result[info.alias if info is not None and info.alias else key] = value
    return result


# =============================================================================
# BASE MODULE
# =============================================================================

class DomainModule:
    """Shared plumbing of the domain modules."""

    entity = "record"

    def __init__(
        self,
        hub: StateHub,
        bus: EventBus,
        commands: CommandStack,
        clock: Optional[Clock] = None,
    ):
        self.hub = hub
        self.bus = bus
        self.commands = commands
        self.clock = clock or SystemClock()

    def clear_cache(self) -> None:
        """Drop memoized reads. Modules with caches override this."""
        pass

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def _ensure_idle(self, operation: str) -> None:
        try:
            self.hub.ensure_idle(operation)
        except BusyError as e:
            raise self._fail(e, NotificationLevel.WARNING)

    def _validate(self, model: Type[ModelT], data: dict[str, Any]) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise self._fail(InvalidRecordError(self.entity, e.errors(include_url=False)))

    def _fail(
        self,
        error: Exception,
        level: NotificationLevel = NotificationLevel.ERROR,
    ) -> Exception:
        """Announce a rejected operation; returns the error for `raise`."""
        logger.warning(
            "domain_operation_rejected",
            entity=self.entity,
            error=str(error),
            error_type=type(error).__name__,
        )
        self.bus.emit(
            Topics.NOTIFICATION_SHOW,
            notification(str(error), level, error_type=type(error).__name__),
        )
        return error

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    def _commit(
        self,
        kind: str,
        label: str,
        changes: dict[str, Any],
        topic: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Apply `changes` as one undoable command and announce it.

        Raises:
            BusyError: During an import
            StorageError: If persisting fails (nothing is changed)
        """
        self._ensure_idle(kind)

        keys = list(changes)
        before = self.hub.snapshot(keys)
        self.hub.update(changes, notify=False)
        after = copy.deepcopy(changes)

        self.commands.record(
            kind,
            label,
            forward=lambda: self.hub.update(after),
            inverse=lambda: self.hub.update(before),
        )

        self.hub.notify(keys)
        if topic:
            self.bus.emit(topic, payload or {})

        logger.info(kind.replace(":", "_"), label=label, keys=keys)

    def _monthly_data(self) -> dict:
        return self.hub.get(MONTHLY_DATA) or {}

    def _months_change(self, month: str) -> dict[str, Any]:
        """availableMonths change needed to list `month`, if any."""
        months = self.hub.get(AVAILABLE_MONTHS) or []
        if any(entry.get("key") == month for entry in months):
            return {}
        return {AVAILABLE_MONTHS: normalize_months(months + [month])}
