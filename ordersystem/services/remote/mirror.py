"""
Remote Mirror

Copies the local state to a remote row-store.

DESIGN DECISION: Local wins. The mirror makes the remote tables equal to
the local state: missing rows are created, existing rows are overwritten,
rows the local state no longer has are deleted. There is no merge with
changes made remotely.
"""

from typing import Any, Callable, Optional

import structlog

from ordersystem.core.event_bus import EventBus
from ordersystem.core.state import CLIENTS_DATA, INVENTORY, MONTHLY_DATA, SETTINGS, StateHub
from ordersystem.models.events import NotificationLevel, Topics, notification
from ordersystem.services.remote.interface import RemoteStoreError, RowStoreInterface

logger = structlog.get_logger(__name__)


class RemoteMirror:
    """Pushes the state hub to a RowStoreInterface."""

    def __init__(self, hub: StateHub, remote: RowStoreInterface, bus: Optional[EventBus] = None):
        self.hub = hub
        self.remote = remote
        self.bus = bus

    def _local_records(self) -> dict[str, list[dict]]:
        monthly_data = self.hub.get(MONTHLY_DATA) or {}
        orders, expenses = [], []
        for month in sorted(monthly_data):
            snapshot = monthly_data[month] or {}
            orders.extend({**o, "monthKey": month} for o in snapshot.get("orders", []) or [])
            expenses.extend({**e, "monthKey": month} for e in snapshot.get("expenses", []) or [])
        return {
            "orders": orders,
            "clients": list((self.hub.get(CLIENTS_DATA) or {}).values()),
            "expenses": expenses,
            "inventory": list((self.hub.get(INVENTORY) or {}).values()),
        }

    def _operations(self, table: str) -> tuple[Callable, Callable, Callable, Callable]:
        remote = self.remote
        return {
            "orders": (remote.get_orders, remote.create_order, remote.update_order, remote.delete_order),
            "clients": (remote.get_clients, remote.create_client, remote.update_client, remote.delete_client),
            "expenses": (remote.get_expenses, remote.create_expense, remote.update_expense, remote.delete_expense),
            "inventory": (
                remote.get_inventory,
                remote.create_inventory_item,
                remote.update_inventory_item,
                remote.delete_inventory_item,
            ),
        }[table]

    async def push_all(self) -> dict[str, Any]:
        """
        Make the remote store match the local state.

        Returns {table: {created, updated, deleted}} plus `settings: True`.

        Raises:
            RemoteStoreError: Unchanged, after announcing it
        """
        summary: dict[str, Any] = {}
        try:
            for table, records in self._local_records().items():
                summary[table] = await self._push_table(table, records)
            await self.remote.save_settings(self.hub.get(SETTINGS) or {})
            summary["settings"] = True
        except RemoteStoreError as e:
            logger.error("remote_push_failed", error=str(e), completed=sorted(summary))
            if self.bus is not None:
                self.bus.emit(
                    Topics.NOTIFICATION_SHOW,
                    notification(f"Грешка при синхронизация: {e}", NotificationLevel.ERROR, source="remote"),
                )
            raise

        logger.info("remote_push_completed", **{k: v for k, v in summary.items() if isinstance(v, dict)})
        return summary

    async def _push_table(self, table: str, records: list[dict]) -> dict[str, int]:
        get_all, create, update, delete = self._operations(table)
        remote_ids = {str(r.get("id")) for r in await get_all()}
        local_ids = set()
        counts = {"created": 0, "updated": 0, "deleted": 0}

        for record in records:
            record_id = record.get("id")
            local_ids.add(str(record_id))
            if str(record_id) in remote_ids:
                await update(record_id, record)
                counts["updated"] += 1
            else:
                await create(record)
                counts["created"] += 1

        for stale in sorted(remote_ids - local_ids):
            await delete(stale)
            counts["deleted"] += 1

        return counts
