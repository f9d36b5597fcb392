"""
Clients Module

Clients are keyed by a generated id but referenced from orders by name,
so names must stay unique (case-insensitive, trimmed). Renaming a client
does not touch existing orders.

Client statistics walk every month's orders. They are memoized per name
and dropped whenever orders can have changed: any `order:*` event, an
import, or a committed change of monthlyData (undo/redo included).
"""

from typing import Any, Optional
from uuid import uuid4

from ordersystem.core.state import CLIENTS_DATA, MONTHLY_DATA
from ordersystem.currency.engine import round_money
from ordersystem.models.events import Event, Topics
from ordersystem.models.records import Client, normalize_name
from ordersystem.modules.base import (
    DomainModule,
    DuplicateClientError,
    NotFoundError,
    iter_orders,
    order_view,
    to_aliases,
)


class ClientsModule(DomainModule):
    """Owns the `clientsData` key."""

    entity = "client"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._stats_cache: dict[str, dict] = {}

        self.bus.on("order:*", self._invalidate)
        self.bus.on(Topics.STORE_IMPORTED, self._invalidate)
        self.bus.on(Topics.state_changed(MONTHLY_DATA), self._invalidate)

    def _invalidate(self, event: Optional[Event] = None) -> None:
        self._stats_cache.clear()

    def clear_cache(self) -> None:
        self._invalidate()

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def get_all_clients(self) -> list[dict]:
        clients = (self.hub.get(CLIENTS_DATA) or {}).values()
        return sorted(clients, key=lambda c: normalize_name(c.get("name")))

    async def get_client(self, client_id: str) -> Optional[dict]:
        return (self.hub.get(CLIENTS_DATA) or {}).get(client_id)

    async def get_client_by_name(self, name: str) -> Optional[dict]:
        wanted = normalize_name(name)
        for client in (self.hub.get(CLIENTS_DATA) or {}).values():
            if normalize_name(client.get("name")) == wanted:
                return client
        return None

    async def get_client_orders(self, name: str) -> list[dict]:
        """Orders of a client across all months, newest first."""
        wanted = normalize_name(name)
        orders = [
            order_view(order)
            for _, order in iter_orders(self.hub.get(MONTHLY_DATA) or {})
            if normalize_name(order.get("client")) == wanted
        ]
        return sorted(orders, key=lambda o: o["date"], reverse=True)

    async def get_client_stats(self, name: str) -> dict[str, Any]:
        """{totalOrders, totalRevenue, totalProfit, lastOrder} in EUR."""
        key = normalize_name(name)
        if key in self._stats_cache:
            return dict(self._stats_cache[key])

        orders = await self.get_client_orders(name)
        stats = {
            "totalOrders": len(orders),
            "totalRevenue": round_money(sum(o["sellEUR"] for o in orders)),
            "totalProfit": round_money(sum(o["balanceEUR"] for o in orders)),
            "lastOrder": orders[0] if orders else None,
        }
        self._stats_cache[key] = stats
        return dict(stats)

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    async def create(self, data: dict[str, Any]) -> dict:
        """
        Add a client.

        Raises:
            DuplicateClientError: If the name is taken
            InvalidRecordError: If the data fails validation
        """
        self._ensure_idle("client:create")
        data = to_aliases(Client, data)
        data.pop("id", None)
        client = self._validate(Client, data)

        clients = self.hub.get(CLIENTS_DATA) or {}
        self._check_unique(clients, client.name)

        client.id = f"client_{uuid4().hex[:12]}"
        client.created_date = client.created_date or self.clock.now().isoformat()
        stored = client.to_store()
        clients[client.id] = stored

        self._commit(
            "client:create",
            f"Нов клиент: {client.name}",
            {CLIENTS_DATA: clients},
            Topics.CLIENT_CREATED,
            {"client": stored},
        )
        return stored

    async def update(self, client_id: str, patch: dict[str, Any]) -> dict:
        """
        Change a client. Renaming enforces uniqueness; orders keep the old name.

        Raises:
            NotFoundError: If the id is unknown
            DuplicateClientError: If the new name is taken by another client
        """
        self._ensure_idle("client:update")
        clients = self.hub.get(CLIENTS_DATA) or {}
        if client_id not in clients:
            raise self._fail(NotFoundError("Client", client_id))

        merged = {**clients[client_id], **to_aliases(Client, patch), "id": client_id}
        client = self._validate(Client, merged)
        self._check_unique(clients, client.name, exclude_id=client_id)

        stored = client.to_store()
        clients[client_id] = stored

        self._commit(
            "client:update",
            f"Редакция на клиент: {client.name}",
            {CLIENTS_DATA: clients},
            Topics.CLIENT_UPDATED,
            {"client": stored},
        )
        return stored

    async def delete(self, client_id: str) -> dict:
        self._ensure_idle("client:delete")
        clients = self.hub.get(CLIENTS_DATA) or {}
        if client_id not in clients:
            raise self._fail(NotFoundError("Client", client_id))

        removed = clients.pop(client_id)
        self._commit(
            "client:delete",
            f"Изтрит клиент: {removed.get('name')}",
            {CLIENTS_DATA: clients},
            Topics.CLIENT_DELETED,
            {"clientId": client_id, "client": removed},
        )
        return removed

    def _check_unique(self, clients: dict, name: str, exclude_id: Optional[str] = None) -> None:
        wanted = normalize_name(name)
        for other_id, other in clients.items():
            if other_id != exclude_id and normalize_name(other.get("name")) == wanted:
                raise self._fail(DuplicateClientError(name))
