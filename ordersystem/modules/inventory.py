"""
Inventory Module

Watch boxes kept in stock, keyed `box_<n>`. Prices are in EUR.

Stock never goes below zero: a change that would is rejected with
NegativeStockError instead of being clamped.
"""

import re
from typing import Any, Optional

from ordersystem.core.state import INVENTORY
from ordersystem.currency.engine import convert_bgn_to_eur, round_money
from ordersystem.models.events import Topics
from ordersystem.models.records import InventoryItem, StockStatus
from ordersystem.modules.base import (
    DomainModule,
    InvalidRecordError,
    NegativeStockError,
    NotFoundError,
    to_aliases,
)

STOCK_OPERATIONS = ("add", "subtract", "set")

BOX_ID = re.compile(r"^box_(\d+)$")

# brand, type, purchase BGN, sell BGN, stock
DEFAULT_INVENTORY_BGN = [
    ("Rolex", "стандарт", 35, 70, 17),
    ("Omega", "стандарт", 35, 70, 3),
    ("Cartier", "премиум", 80, 160, 0),
    ("Tag Heuer", "стандарт", 35, 70, 0),
    ("Breitling", "стандарт", 35, 70, 1),
    ("Patek Philippe", "премиум", 65, 130, 4),
    ("Audemars Piguet", "премиум", 65, 130, 1),
    ("IWC", "стандарт", 35, 70, 3),
    ("Panerai", "премиум", 55, 110, 0),
    ("Tudor", "стандарт", 35, 70, 4),
    ("Vacheron Constantin", "премиум", 65, 130, 0),
    ("Seiko", "стандарт", 35, 70, 3),
    ("Citizen", "стандарт", 35, 70, 4),
    ("Richard Mille", "премиум", 95, 190, 1),
    ("Tissot", "стандарт", 40, 80, 5),
    ("Longines", "стандарт", 45, 90, 2),
    ("Casio", "стандарт", 35, 70, 4),
    ("Hublot", "премиум", 75, 150, 1),
    ("Zenith", "стандарт", 60, 120, 6),
    ("Universal", "стандарт", 35, 70, 0),
]


def box_number(item_id: str) -> int:
    match = BOX_ID.match(item_id or "")
    return int(match.group(1)) if match else 0


class InventoryModule(DomainModule):
    """Owns the `inventory` key."""

    entity = "inventory item"

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def get_all_items(self) -> list[dict]:
        """Items with derived value fields, ordered by box number."""
        items = (self.hub.get(INVENTORY) or {}).values()
        views = [InventoryItem.from_store(item).to_view() for item in items]
        return sorted(views, key=lambda v: (box_number(v.get("id")), v.get("id") or ""))

    async def get_item(self, item_id: str) -> Optional[dict]:
        item = (self.hub.get(INVENTORY) or {}).get(item_id)
        return InventoryItem.from_store(item).to_view() if item else None

    async def get_stats(self) -> dict[str, Any]:
        items = await self.get_all_items()
        return {
            "totalItems": len(items),
            "totalStock": sum(i["stock"] for i in items),
            "totalOrdered": sum(i["ordered"] for i in items),
            "lowStockItems": [i for i in items if i["stockStatus"] == StockStatus.LOW.value],
            "outOfStockItems": [i for i in items if i["stockStatus"] == StockStatus.OUT.value],
            "totalValue": round_money(sum(i["value"] for i in items)),
            "potentialRevenue": round_money(sum(i["potentialRevenue"] for i in items)),
        }

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    async def create_item(self, data: dict[str, Any]) -> dict:
        self._ensure_idle("inventory:create")
        inventory = self.hub.get(INVENTORY) or {}

        item = self._validate(InventoryItem, to_aliases(InventoryItem, data))
        if not item.id or item.id in inventory:
            item.id = self._next_id(inventory)
        stored = item.to_store()
        inventory[item.id] = stored

        self._commit(
            "inventory:create",
            f"Нова кутия: {item.brand}",
            {INVENTORY: inventory},
            Topics.INVENTORY_CREATED,
            {"item": stored},
        )
        return item.to_view()

    async def update_item(self, item_id: str, patch: dict[str, Any]) -> dict:
        self._ensure_idle("inventory:update")
        inventory = self.hub.get(INVENTORY) or {}
        if item_id not in inventory:
            raise self._fail(NotFoundError("Inventory item", item_id))

        merged = {**inventory[item_id], **to_aliases(InventoryItem, patch), "id": item_id}
        item = self._validate(InventoryItem, merged)
        inventory[item_id] = item.to_store()

        self._commit(
            "inventory:update",
            f"Редакция на кутия: {item.brand}",
            {INVENTORY: inventory},
            Topics.INVENTORY_UPDATED,
            {"item": inventory[item_id]},
        )
        return item.to_view()

    async def delete_item(self, item_id: str) -> dict:
        self._ensure_idle("inventory:delete")
        inventory = self.hub.get(INVENTORY) or {}
        if item_id not in inventory:
            raise self._fail(NotFoundError("Inventory item", item_id))

        removed = inventory.pop(item_id)
        self._commit(
            "inventory:delete",
            f"Изтрита кутия: {removed.get('brand')}",
            {INVENTORY: inventory},
            Topics.INVENTORY_DELETED,
            {"itemId": item_id, "item": removed},
        )
        return removed

    async def update_stock(self, item_id: str, quantity: int, operation: str = "set") -> dict:
        """
        Change the stock of a box.

        Raises:
            NotFoundError: If the box is unknown
            NegativeStockError: If the result would be below zero
        """
        self._ensure_idle("inventory:stock")
        if operation not in STOCK_OPERATIONS or not isinstance(quantity, int) or quantity < 0:
            raise self._fail(InvalidRecordError(
                self.entity,
                [{"loc": ("stock",), "msg": f"cannot {operation} {quantity!r}"}],
            ))

        inventory = self.hub.get(INVENTORY) or {}
        if item_id not in inventory:
            raise self._fail(NotFoundError("Inventory item", item_id))
        item = inventory[item_id]
        current = int(item.get("stock") or 0)

        if operation == "add":
            new_stock = current + quantity
        elif operation == "subtract":
            new_stock = current - quantity
        else:
            new_stock = quantity

        if new_stock < 0:
            raise self._fail(NegativeStockError(item_id, current, new_stock))

        item["stock"] = new_stock
        self._commit(
            "inventory:stock",
            f"Наличност {item.get('brand')}: {current} → {new_stock}",
            {INVENTORY: inventory},
            Topics.INVENTORY_UPDATED,
            {"item": item, "operation": operation, "quantity": quantity, "previousStock": current},
        )
        return InventoryItem.from_store(item).to_view()

    async def update_ordered(self, item_id: str, ordered: int) -> dict:
        """Set how many boxes are on order from the supplier."""
        return await self.update_item(item_id, {"ordered": ordered})

    async def use_box_for_order(self, item_id: str, order_id: Any) -> dict:
        """Take one box out of stock for an order."""
        view = await self.update_stock(item_id, 1, "subtract")
        self.bus.emit(Topics.INVENTORY_USED, {"boxId": item_id, "orderId": order_id})
        return view

    async def receive_order(self, item_id: str, quantity: int) -> dict:
        """Boxes arrived: stock goes up, the ordered count goes down (not below 0)."""
        self._ensure_idle("inventory:receive")
        inventory = self.hub.get(INVENTORY) or {}
        if item_id not in inventory:
            raise self._fail(NotFoundError("Inventory item", item_id))
        if not isinstance(quantity, int) or quantity <= 0:
            raise self._fail(InvalidRecordError(
                self.entity,
                [{"loc": ("quantity",), "msg": f"cannot receive {quantity!r}"}],
            ))

        item = inventory[item_id]
        item["stock"] = int(item.get("stock") or 0) + quantity
        item["ordered"] = max(0, int(item.get("ordered") or 0) - quantity)

        self._commit(
            "inventory:receive",
            f"Получени {quantity} × {item.get('brand')}",
            {INVENTORY: inventory},
            Topics.INVENTORY_UPDATED,
            {"item": item, "received": quantity},
        )
        return InventoryItem.from_store(item).to_view()

    async def initialize_default_inventory(self) -> int:
        """
        Install the default box list when the inventory is empty.

        Returns the number of boxes installed (0 when there already is stock data).
        """
        self._ensure_idle("inventory:initialize")
        if self.hub.get(INVENTORY):
            return 0

        inventory = {}
        for number, (brand, box_type, purchase, sell, stock) in enumerate(DEFAULT_INVENTORY_BGN, start=1):
            item = InventoryItem(
                id=f"box_{number}",
                brand=brand,
                type=box_type,
                purchase_price=convert_bgn_to_eur(purchase),
                sell_price=convert_bgn_to_eur(sell),
                stock=stock,
                ordered=0,
            )
            inventory[item.id] = item.to_store()

        self._commit(
            "inventory:initialize",
            "Инвентар по подразбиране",
            {INVENTORY: inventory},
            Topics.INVENTORY_CREATED,
            {"count": len(inventory)},
        )
        return len(inventory)

    @staticmethod
    def _next_id(inventory: dict) -> str:
        highest = max((box_number(item_id) for item_id in inventory), default=0)
        return f"box_{highest + 1}"
