"""
Orders Module

Orders live inside the month partition their date falls in
(`monthlyData[YYYY-MM].orders`), which may differ from the month the user
is currently looking at.

Order ids are `YYYYMM * 10000 + seq`, where `seq` grows monotonically per
month (tracked as `lastOrderSeq` in the month snapshot, so a deleted
order's id is never reused).

Changing an order's date across a month boundary moves it to the other
partition. The move is one command: a single undo puts it back.

`totalEUR` and `balanceEUR` are derived on every read through the
currency engine.
"""

from typing import Any, Callable, Optional, Union

from pydantic import BaseModel, Field

from ordersystem.core.state import CURRENT_MONTH, MONTHLY_DATA, SETTINGS
from ordersystem.models.events import Event, Topics
from ordersystem.models.records import STATUS_CLASSES, BusinessSettings, Order
from ordersystem.modules.base import (
    DomainModule,
    NotFoundError,
    ensure_month_snapshot,
    iter_orders,
    order_view,
    to_aliases,
)
from ordersystem.services.image.image_service import ImageError

MAX_SEQ = 10000


class OrderFilter(BaseModel):
    """Criteria of the orders list view."""

    month: Optional[str] = Field(default=None, description="Month key; the current month when omitted")
    status: Optional[str] = Field(
        default=None,
        description="Status class (delivered, pending, free, other) or 'all'"
    )
    search: Optional[str] = Field(default=None, description="Matches client, phone or model")
    origin: Optional[str] = None
    vendor: Optional[str] = None

    def matches(self, order: dict) -> bool:
        if self.status and self.status != "all":
            if STATUS_CLASSES.get(order.get("status"), "other") != self.status:
                return False
        if self.search:
            term = self.search.casefold()
            haystack = (order.get("client", ""), order.get("phone", ""), order.get("model", ""))
            if not any(term in (field or "").casefold() for field in haystack):
                return False
        if self.origin and order.get("origin") != self.origin:
            return False
        if self.vendor and order.get("vendor") != self.vendor:
            return False
        return True


def month_number(month: str) -> int:
    """`2024-11` -> 202411."""
    return int(month.replace("-", ""))


def same_id(a: Any, b: Any) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class OrdersModule(DomainModule):
    """Owns the orders inside `monthlyData`."""

    entity = "order"

    def __init__(self, *args, image_service=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.image_service = image_service
        self._cache: dict[str, list[dict]] = {}

        self.bus.on(Topics.state_changed(MONTHLY_DATA), self._invalidate)
        self.bus.on(Topics.STORE_IMPORTED, self._invalidate)

    def _invalidate(self, event: Optional[Event] = None) -> None:
        self._cache.clear()

    def clear_cache(self) -> None:
        self._invalidate()

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def get_orders(self, month: Optional[str] = None) -> list[dict]:
        """Orders of a month (default: the current month) with derived totals."""
        month = month or self.hub.get(CURRENT_MONTH)
        if month not in self._cache:
            snapshot = self._monthly_data().get(month) or {}
            self._cache[month] = [order_view(o) for o in snapshot.get("orders", [])]
        return [dict(o) for o in self._cache[month]]

    async def get_all_orders(self) -> list[dict]:
        return [order_view(o) for _, o in iter_orders(self._monthly_data())]

    async def find_order_by_id(self, order_id: Union[int, str]) -> Optional[dict]:
        """{order, monthKey} or None."""
        for month, order in iter_orders(self._monthly_data()):
            if same_id(order.get("id"), order_id):
                return {"order": order_view(order), "monthKey": month}
        return None

    async def filter_orders(
        self,
        criteria: Union[OrderFilter, dict, Callable[[dict], bool], None] = None,
        month: Optional[str] = None,
    ) -> list[dict]:
        """
        Orders of a month matching a predicate or an OrderFilter, oldest first.

        A predicate receives each order (with derived totals) as a dict.
        """
        if isinstance(criteria, dict):
            criteria = OrderFilter.model_validate(criteria)
        if isinstance(criteria, OrderFilter):
            month = month or criteria.month
            predicate = criteria.matches
        else:
            predicate = criteria or (lambda order: True)

        orders = [o for o in await self.get_orders(month) if predicate(o)]
        return sorted(orders, key=lambda o: o["date"])

    @staticmethod
    def get_status_class(status: Optional[str]) -> str:
        return STATUS_CLASSES.get(status, "other")

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    async def create(self, data: dict[str, Any]) -> dict:
        """
        Add an order to the month of its date.

        Missing shipping defaults to the factory shipping setting; the
        current USD->EUR rate is captured on the order.
        """
        self._ensure_idle("order:create")
        data = to_aliases(Order, data)
        data.pop("id", None)

        settings = BusinessSettings.from_store(self.hub.get(SETTINGS) or {})
        if data.get("shippingUSD") in (None, ""):
            data["shippingUSD"] = settings.factory_shipping
        if not data.get("rate"):
            data["rate"] = settings.eur_rate
        data["imageData"] = await self._normalize_image(data.get("imageData"))

        order = self._validate(Order, data)
        month = order.month_key

        monthly_data = self._monthly_data()
        snapshot = ensure_month_snapshot(monthly_data, month)
        seq = self._next_seq(snapshot, month)
        order.id = month_number(month) * MAX_SEQ + seq

        stored = order.to_store()
        snapshot["orders"].append(stored)
        snapshot["lastOrderSeq"] = seq

        changes = {MONTHLY_DATA: monthly_data}
        changes.update(self._months_change(month))

        current = self.hub.get(CURRENT_MONTH)
        view = order.to_view()
        self._commit(
            "order:create",
            f"Нова поръчка: {order.client} / {order.watch_model}",
            changes,
            Topics.ORDER_CREATED,
            {
                "order": view,
                "createdInMonth": month,
                "isVisibleInCurrentMonth": month == current,
            },
        )
        return view

    async def update(self, order_id: Union[int, str], patch: dict[str, Any]) -> dict:
        """
        Change an order; a date in another month moves it there.

        The id and the captured rate are kept unless the patch sets a rate.

        Raises:
            NotFoundError: If no order has this id
        """
        self._ensure_idle("order:update")
        if self._locate(self._monthly_data(), order_id) is None:
            raise self._fail(NotFoundError("Order", order_id))

        patch = to_aliases(Order, patch)
        if "imageData" in patch:
            patch["imageData"] = await self._normalize_image(patch["imageData"])

        # State may have changed while the photo was being processed.
        monthly_data = self._monthly_data()
        location = self._locate(monthly_data, order_id)
        if location is None:
            raise self._fail(NotFoundError("Order", order_id))
        old_month, index = location
        existing = monthly_data[old_month]["orders"][index]
        merged = {**existing, **patch, "id": existing.get("id")}
        merged.pop("monthKey", None)

        order = self._validate(Order, merged)
        new_month = order.month_key
        stored = order.to_store()

        changes: dict[str, Any] = {}
        if new_month == old_month:
            monthly_data[old_month]["orders"][index] = stored
        else:
            del monthly_data[old_month]["orders"][index]
            ensure_month_snapshot(monthly_data, new_month)["orders"].append(stored)
            changes.update(self._months_change(new_month))
        changes[MONTHLY_DATA] = monthly_data

        payload = {"order": order.to_view(), "previousMonth": old_month}
        if new_month != old_month:
            payload["movedToMonth"] = new_month

        self._commit(
            "order:update",
            f"Редакция на поръчка #{existing.get('id')}",
            changes,
            Topics.ORDER_UPDATED,
            payload,
        )
        return payload["order"]

    async def delete(self, order_id: Union[int, str]) -> dict:
        """
        Remove an order.

        Raises:
            NotFoundError: If no order has this id
        """
        self._ensure_idle("order:delete")
        monthly_data = self._monthly_data()
        location = self._locate(monthly_data, order_id)
        if location is None:
            raise self._fail(NotFoundError("Order", order_id))
        month, index = location

        removed = monthly_data[month]["orders"].pop(index)
        self._commit(
            "order:delete",
            f"Изтрита поръчка #{removed.get('id')}",
            {MONTHLY_DATA: monthly_data},
            Topics.ORDER_DELETED,
            {"orderId": removed.get("id"), "monthKey": month, "order": order_view(removed)},
        )
        return removed

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _locate(monthly_data: dict, order_id: Union[int, str]) -> Optional[tuple[str, int]]:
        for month in sorted(monthly_data):
            for index, order in enumerate((monthly_data[month] or {}).get("orders", [])):
                if same_id(order.get("id"), order_id):
                    return month, index
        return None

    @staticmethod
    def _next_seq(snapshot: dict, month: str) -> int:
        """Next sequence number of a month; never reuses one already handed out."""
        prefix = month_number(month)
        highest = int(snapshot.get("lastOrderSeq") or 0)
        for order in snapshot.get("orders", []):
            order_id = order.get("id")
            if isinstance(order_id, int) and order_id // MAX_SEQ == prefix:
                highest = max(highest, order_id % MAX_SEQ)
        return highest + 1

    async def _normalize_image(self, image_data: Optional[str]) -> Optional[str]:
        if not image_data or self.image_service is None:
            return image_data or None
        try:
            return await self.image_service.normalize(image_data)
        except ImageError as e:
            raise self._fail(e)
