"""
Expenses Module

Monthly expense lines, stored in EUR under `monthlyData[month].expenses`.

A fresh month is seeded with the default expenses: the template from the
settings (`defaultExpenses`) when present, otherwise the built-in template.
The built-in amounts are the historical BGN figures and are converted to
EUR once, keeping the original under `amountBGN`.

Default lines carry `isDefault: true` until the first edit.
"""

from typing import Any, Optional, Union
from uuid import uuid4

from ordersystem.core.state import CURRENT_MONTH, MONTHLY_DATA, SETTINGS
from ordersystem.currency.engine import Currency, convert_bgn_to_eur, round_money
from ordersystem.models.events import Topics
from ordersystem.models.records import BusinessSettings, ExpenseLine, normalize_name
from ordersystem.modules.base import (
    DomainModule,
    InvalidRecordError,
    NotFoundError,
    ensure_month_snapshot,
    to_aliases,
)
from ordersystem.utils.dates import is_month_key

# name, amount in BGN, note
DEFAULT_EXPENSES_BGN = [
    ("IG Campaign", 1780, "Instagram реклама кампания"),
    ("Assurance", 590, "Застраховка"),
    ("Fiverr", 530, "Freelance услуги"),
    ("Ltd.", 460, "Фирмени разходи"),
    ("OLX BG", 90, "OLX България такси"),
    ("OLX RO", 55, "OLX Румъния такси"),
    ("SmugMug", 45, "Хостинг за снимки"),
    ("ChatGPT", 35, "AI асистент"),
    ("Revolut", 15, "Банкови такси"),
    ("A1", 10, "Мобилен оператор"),
    ("Buffer", 10, "Social media management"),
]

SORT_FIELDS = ("amount", "name")


class ExpensesModule(DomainModule):
    """Owns the expense lines inside `monthlyData`."""

    entity = "expense"

    # -------------------------------------------------------------------------
    # Read
    # -------------------------------------------------------------------------

    async def get_expenses(self, month: Optional[str] = None) -> list[dict]:
        """Expense lines of a month (default: the current month)."""
        month = month or self.hub.get(CURRENT_MONTH)
        snapshot = self._monthly_data().get(month) or {}
        return [{**line, "monthKey": month} for line in snapshot.get("expenses", [])]

    async def get_expenses_sorted(
        self,
        month: Optional[str] = None,
        by: str = "amount",
        direction: str = "desc",
    ) -> list[dict]:
        if by not in SORT_FIELDS:
            raise ValueError(f"Cannot sort expenses by {by!r}; use one of {SORT_FIELDS}")

        def sort_key(line: dict):
            if by == "name":
                return normalize_name(line.get("name"))
            return float(line.get("amount") or 0)

        return sorted(await self.get_expenses(month), key=sort_key, reverse=direction == "desc")

    async def get_total_expenses(self, month: Optional[str] = None) -> float:
        """Sum of a month's expenses in EUR."""
        return round_money(sum(float(e.get("amount") or 0) for e in await self.get_expenses(month)))

    async def get_default_template(self) -> list[dict]:
        """The lines a fresh month receives, amounts in EUR."""
        settings = BusinessSettings.from_store(self.hub.get(SETTINGS) or {})
        if settings.default_expenses:
            return [
                {"name": d.name, "amount": round_money(d.amount), "note": d.note}
                for d in settings.default_expenses
            ]
        return [
            {"name": name, "amount": convert_bgn_to_eur(amount), "note": note, "amountBGN": float(amount)}
            for name, amount, note in DEFAULT_EXPENSES_BGN
        ]

    # -------------------------------------------------------------------------
    # Write
    # -------------------------------------------------------------------------

    async def create(self, data: dict[str, Any]) -> dict:
        """Add an expense line to `data.monthKey` (default: the current month)."""
        self._ensure_idle("expense:create")
        data = to_aliases(ExpenseLine, data)
        month = data.get("monthKey") or self.hub.get(CURRENT_MONTH)

        line = self._validate(ExpenseLine, {
            **data,
            "id": f"exp_{uuid4().hex[:12]}",
            "monthKey": month,
            "currency": Currency.EUR.value,
        })
        stored = line.to_store()

        monthly_data = self._monthly_data()
        ensure_month_snapshot(monthly_data, month)["expenses"].append(stored)
        changes = {MONTHLY_DATA: monthly_data, **self._months_change(month)}

        self._commit(
            "expense:create",
            f"Нов разход: {line.name}",
            changes,
            Topics.EXPENSE_CREATED,
            {"expense": stored, "monthKey": month},
        )
        return stored

    async def update(self, expense_id: Union[int, str], patch: dict[str, Any]) -> dict:
        """
        Change an expense line; it stops being a default line.

        The line stays in its month.
        """
        self._ensure_idle("expense:update")
        monthly_data = self._monthly_data()
        location = self._locate(monthly_data, expense_id)
        if location is None:
            raise self._fail(NotFoundError("Expense", expense_id))
        month, index = location
        existing = monthly_data[month]["expenses"][index]

        patch = to_aliases(ExpenseLine, patch)
        patch.pop("monthKey", None)
        merged = {
            **existing,
            **patch,
            "id": existing.get("id"),
            "monthKey": month,
            "isDefault": False,
        }
        if "amount" in patch:
            merged.pop("amountBGN", None)
            merged["currency"] = Currency.EUR.value

        stored = self._validate(ExpenseLine, merged).to_store()
        monthly_data[month]["expenses"][index] = stored

        self._commit(
            "expense:update",
            f"Редакция на разход: {stored['name']}",
            {MONTHLY_DATA: monthly_data},
            Topics.EXPENSE_UPDATED,
            {"expense": stored, "monthKey": month},
        )
        return stored

    async def delete(self, expense_id: Union[int, str]) -> dict:
        self._ensure_idle("expense:delete")
        monthly_data = self._monthly_data()
        location = self._locate(monthly_data, expense_id)
        if location is None:
            raise self._fail(NotFoundError("Expense", expense_id))
        month, index = location

        removed = monthly_data[month]["expenses"].pop(index)
        self._commit(
            "expense:delete",
            f"Изтрит разход: {removed.get('name')}",
            {MONTHLY_DATA: monthly_data},
            Topics.EXPENSE_DELETED,
            {"expenseId": removed.get("id"), "monthKey": month},
        )
        return removed

    async def initialize_month(self, month: str) -> list[dict]:
        """
        Seed a month that has no expenses with the default lines.

        Idempotent: a month that already has expense lines is left alone.
        """
        self._check_month(month)
        existing = await self.get_expenses(month)
        if existing:
            return existing

        return await self._install_defaults(month, "Разходи по подразбиране")

    async def add_default_expenses(self, month: str) -> list[dict]:
        """
        Append the default lines the month is missing (matched by name).

        Existing lines are not touched. Returns the lines that were added.
        """
        self._check_month(month)
        return await self._install_defaults(month, "Добавени разходи по подразбиране")

    async def _install_defaults(self, month: str, label: str) -> list[dict]:
        self._ensure_idle("expense:initialize")
        monthly_data = self._monthly_data()
        snapshot = ensure_month_snapshot(monthly_data, month)
        present = {normalize_name(line.get("name")) for line in snapshot["expenses"]}

        added = []
        for template in await self.get_default_template():
            if normalize_name(template["name"]) in present:
                continue
            line = ExpenseLine.model_validate({
                **template,
                "id": f"exp_{uuid4().hex[:12]}",
                "monthKey": month,
                "currency": Currency.EUR.value,
                "isDefault": True,
            })
            added.append(line.to_store())

        if not added:
            return []

        snapshot["expenses"].extend(added)
        changes = {MONTHLY_DATA: monthly_data, **self._months_change(month)}
        self._commit(
            "expense:initialize",
            f"{label}: {month}",
            changes,
            Topics.EXPENSES_INITIALIZED,
            {"monthKey": month, "added": len(added)},
        )
        return added

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check_month(self, month: str) -> None:
        if not is_month_key(month):
            raise self._fail(InvalidRecordError(
                self.entity,
                [{"loc": ("monthKey",), "msg": f"invalid month key {month!r}"}],
            ))

    @staticmethod
    def _locate(monthly_data: dict, expense_id: Union[int, str]) -> Optional[tuple[str, int]]:
        for month in sorted(monthly_data):
            for index, line in enumerate((monthly_data[month] or {}).get("expenses", [])):
                if str(line.get("id")) == str(expense_id):
                    return month, index
        return None
