"""Tests for the undo/redo command stack."""

import pytest

from ordersystem.core.history import CommandStack
from ordersystem.core.state import (
    AVAILABLE_MONTHS,
    CLIENTS_DATA,
    INVENTORY,
    MONTHLY_DATA,
    STATE_KEYS,
    BusyError,
)
from ordersystem.models.events import Topics


class TestCommandStack:
    """Tests for bounded undo/redo."""

    async def test_undo_across_month_boundary(self, orders, commands, hub, events):
        """Moving an order to another month is one undoable step."""
        created = await orders.create({"date": "2024-10-20", "client": "Иван", "sellEUR": 100})
        assert hub.get(MONTHLY_DATA)["2024-10"]["orders"][0]["id"] == created["id"]

        await orders.update(created["id"], {"date": "2024-11-05"})
        updated = [e for e in events if e.topic == Topics.ORDER_UPDATED][-1]
        assert updated.payload["movedToMonth"] == "2024-11"

        commands.undo()
        monthly = hub.get(MONTHLY_DATA)
        assert [o["id"] for o in monthly["2024-10"]["orders"]] == [created["id"]]
        assert monthly["2024-10"]["orders"][0]["date"] == "2024-10-20"
        assert monthly.get("2024-11", {}).get("orders", []) == []

        commands.redo()
        monthly = hub.get(MONTHLY_DATA)
        assert monthly["2024-10"]["orders"] == []
        assert monthly["2024-11"]["orders"][0]["date"] == "2024-11-05"
        assert monthly["2024-11"]["orders"][0]["id"] == created["id"]

    async def test_undo_then_redo_is_identical(self, orders, clients, inventory, commands, hub):
        """undo() followed by redo() lands on exactly the post-mutation state."""
        await clients.create({"name": "Иван"})
        order = await orders.create({"date": "2024-11-15", "client": "Иван", "sellEUR": 200})
        await inventory.initialize_default_inventory()
        await inventory.update_stock("box_1", 2, "subtract")
        await orders.update(order["id"], {"sellEUR": 250})

        after = hub.snapshot()
        commands.undo()
        assert hub.snapshot() != after
        commands.redo()
        assert hub.snapshot() == after

    async def test_undo_restores_the_store_too(self, clients, commands, store):
        """Undo persists the restored value."""
        await clients.create({"name": "Иван"})
        commands.undo()
        assert store.load(CLIENTS_DATA) == {}

    async def test_new_command_clears_redo(self, clients, commands):
        """Pushing after an undo discards the redo history."""
        await clients.create({"name": "A"})
        commands.undo()
        assert commands.can_redo()
        await clients.create({"name": "B"})
        assert not commands.can_redo()
        assert commands.get_undo_count() == 1

    async def test_capacity_evicts_oldest(self, hub, bus, clock, clients):
        """Only the newest `capacity` commands are kept."""
        stack = CommandStack(hub, bus, capacity=3, clock=clock)
        clients.commands = stack
        for name in ("A", "B", "C", "D", "E"):
            await clients.create({"name": name})

        assert stack.get_undo_count() == 3
        labels = [c["label"] for c in stack.describe()["undo"]]
        assert labels[0].endswith("E")
        assert labels[-1].endswith("C")

    def test_empty_stack(self, commands):
        """Undo and redo on an empty stack return None."""
        assert commands.undo() is None
        assert commands.redo() is None
        assert not commands.can_undo()

    async def test_undo_blocked_during_import(self, clients, commands, hub):
        """undo/redo raise BusyError while the hub is held."""
        await clients.create({"name": "A"})
        with hub.exclusive("import"):
            with pytest.raises(BusyError):
                commands.undo()
        assert commands.can_undo()

    async def test_undo_emits_history_event(self, clients, commands, events):
        """Undo and redo are announced."""
        await clients.create({"name": "A"})
        commands.undo()
        commands.redo()
        topics = [e.topic for e in events]
        assert Topics.HISTORY_UNDONE in topics
        assert Topics.HISTORY_REDONE in topics

    async def test_composite_default_expenses_single_undo(self, expenses, commands, hub):
        """Seeding a month with defaults is one command."""
        await expenses.initialize_month("2026-02")
        assert commands.get_undo_count() == 1
        commands.undo()
        assert "2026-02" not in {m["key"] for m in hub.get(AVAILABLE_MONTHS)}
        assert hub.get(MONTHLY_DATA).get("2026-02") is None

    async def test_clear(self, inventory, commands, hub):
        """clear empties both stacks."""
        await inventory.initialize_default_inventory()
        commands.undo()
        assert hub.get(INVENTORY) == {}
        commands.clear()
        assert commands.describe() == {"undo": [], "redo": []}
        assert set(hub.snapshot()) == set(STATE_KEYS)
