"""Tests for the expenses module."""

import pytest

from ordersystem.core.state import AVAILABLE_MONTHS, SETTINGS
from ordersystem.modules import DEFAULT_EXPENSES_BGN, InvalidRecordError, NotFoundError


class TestDefaultExpenses:
    """Tests for seeding months with the default lines."""

    async def test_initialize_month(self, expenses, hub):
        """A fresh month receives the built-in lines, converted to EUR."""
        added = await expenses.initialize_month("2026-02")

        assert len(added) == len(DEFAULT_EXPENSES_BGN)
        campaign = next(e for e in added if e["name"] == "IG Campaign")
        assert campaign["amount"] == 910.1
        assert campaign["amountBGN"] == 1780
        assert campaign["currency"] == "EUR"
        assert all(e["isDefault"] for e in added)
        assert all(e["monthKey"] == "2026-02" for e in added)
        assert "2026-02" in {m["key"] for m in hub.get(AVAILABLE_MONTHS)}

    async def test_initialize_is_idempotent(self, expenses, commands):
        """Initialising a month that already has lines changes nothing."""
        await expenses.initialize_month("2026-02")
        again = await expenses.initialize_month("2026-02")

        assert len(again) == len(DEFAULT_EXPENSES_BGN)
        assert len(await expenses.get_expenses("2026-02")) == len(DEFAULT_EXPENSES_BGN)
        assert commands.get_undo_count() == 1

    async def test_add_defaults_restores_only_missing(self, expenses):
        """After deleting one default line, only that line is added back."""
        await expenses.initialize_month("2026-02")
        lines = await expenses.get_expenses("2026-02")
        fiverr = next(e for e in lines if e["name"] == "Fiverr")
        await expenses.delete(fiverr["id"])

        added = await expenses.add_default_expenses("2026-02")

        assert [e["name"] for e in added] == ["Fiverr"]
        names = [e["name"] for e in await expenses.get_expenses("2026-02")]
        assert sorted(names) == sorted(n for n, _, _ in DEFAULT_EXPENSES_BGN)

    async def test_add_defaults_when_complete(self, expenses):
        """Nothing is added when every default line is present."""
        await expenses.initialize_month("2026-02")
        assert await expenses.add_default_expenses("2026-02") == []

    async def test_template_from_settings(self, expenses, hub):
        """A template in the settings replaces the built-in one."""
        settings = hub.get(SETTINGS)
        settings["defaultExpenses"] = [{"name": "Rent", "amount": 300, "note": "Office"}]
        hub.set(SETTINGS, settings)

        added = await expenses.initialize_month("2025-01")

        assert [(e["name"], e["amount"]) for e in added] == [("Rent", 300)]
        assert added[0].get("amountBGN") is None

    async def test_invalid_month(self, expenses, notifications):
        """A malformed month key is rejected."""
        with pytest.raises(InvalidRecordError):
            await expenses.initialize_month("2026-2")
        assert len(notifications) == 1


class TestExpenseLines:
    """Tests for expense CRUD and queries."""

    async def test_create_in_current_month(self, expenses):
        """Without a month the line goes to the current month."""
        line = await expenses.create({"name": "Coffee", "amount": "12.345"})
        assert line["id"].startswith("exp_")
        assert line["monthKey"] == "2024-11"
        assert line["amount"] == 12.35
        assert await expenses.get_total_expenses() == 12.35

    async def test_month_key_matches_partition(self, expenses):
        """Every listed line carries the month it is stored under."""
        await expenses.create({"name": "A", "amount": 1, "monthKey": "2024-10"})
        await expenses.initialize_month("2024-12")
        for month in ("2024-10", "2024-12"):
            assert {e["monthKey"] for e in await expenses.get_expenses(month)} == {month}

    async def test_update_clears_default_flag(self, expenses):
        """Editing a default line makes it a regular line in EUR."""
        await expenses.initialize_month("2024-11")
        line = (await expenses.get_expenses("2024-11"))[0]

        updated = await expenses.update(line["id"], {"amount": 999, "monthKey": "2020-01"})

        assert updated["isDefault"] is False
        assert updated["amount"] == 999
        assert updated.get("amountBGN") is None
        assert updated["monthKey"] == "2024-11"

    async def test_sorting(self, expenses):
        """Lines sort by amount or name in either direction."""
        await expenses.create({"name": "b", "amount": 5})
        await expenses.create({"name": "A", "amount": 50})
        await expenses.create({"name": "c", "amount": 20})

        by_amount = await expenses.get_expenses_sorted(by="amount")
        assert [e["amount"] for e in by_amount] == [50, 20, 5]

        by_name = await expenses.get_expenses_sorted(by="name", direction="asc")
        assert [e["name"] for e in by_name] == ["A", "b", "c"]

        with pytest.raises(ValueError):
            await expenses.get_expenses_sorted(by="date")

    async def test_unknown_id(self, expenses):
        """Missing lines raise NotFoundError."""
        with pytest.raises(NotFoundError):
            await expenses.update("exp_missing", {"amount": 1})
        with pytest.raises(NotFoundError):
            await expenses.delete("exp_missing")

    async def test_negative_amount_rejected(self, expenses):
        """Amounts cannot be negative."""
        with pytest.raises(InvalidRecordError):
            await expenses.create({"name": "Refund", "amount": -5})
