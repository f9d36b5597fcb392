"""
Months Module

Which month the user is looking at and which months exist.

DESIGN DECISION: Selecting a month first clears every module cache, then
switches, then makes sure the month is seeded with its default expenses.
Selecting is navigation, not an edit: it is persisted but never recorded on
the undo stack. Adding a month to the list is an edit and is recorded.
"""

from typing import Any, Iterable, Optional

from ordersystem.core.state import AVAILABLE_MONTHS, CURRENT_MONTH
from ordersystem.models.events import Topics
from ordersystem.modules.base import DomainModule, InvalidRecordError
from ordersystem.modules.expenses import ExpensesModule
from ordersystem.utils.dates import is_month_key, last_n_months, month_name, shift_month

DEFAULT_MONTH_WINDOW = 4


class MonthsModule(DomainModule):
    """Owns `currentMonth` and `availableMonths`."""

    entity = "month"

    def __init__(
        self,
        *args,
        expenses: Optional[ExpensesModule] = None,
        caches: Iterable[Any] = (),
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.expenses = expenses
        self.caches = list(caches)

    async def get_current_month(self) -> str:
        return self.hub.get(CURRENT_MONTH)

    async def get_available_months(self) -> list[dict]:
        return self.hub.get(AVAILABLE_MONTHS) or []

    def generate_default_months(self, count: int = DEFAULT_MONTH_WINDOW) -> list[dict]:
        """The last `count` months up to the current one."""
        return last_n_months(count, self.clock.now().date())

    async def ensure_month(self, month: str) -> list[dict]:
        """List `month` among the available months (sorted, no duplicates)."""
        self._check_month(month)
        change = self._months_change(month)
        if change:
            self._commit(
                "month:add",
                f"Нов месец: {month_name(month)}",
                change,
            )
        return self.hub.get(AVAILABLE_MONTHS)

    async def add_next_month(self) -> str:
        """Append the month after the last listed one and select it."""
        months = await self.get_available_months()
        last = months[-1]["key"] if months else self.hub.get(CURRENT_MONTH)
        month = shift_month(last, 1)
        await self.ensure_month(month)
        await self.select_month(month)
        return month

    async def select_month(self, month: str) -> str:
        """
        Switch the current month.

        Module caches are dropped before the switch; a month without data
        gets its default expenses.
        """
        self._check_month(month)
        self._ensure_idle("month:select")

        for module in self.caches:
            module.clear_cache()

        previous = self.hub.get(CURRENT_MONTH)
        await self.ensure_month(month)
        self.hub.set(CURRENT_MONTH, month)

        if self.expenses is not None and month not in self._monthly_data():
            await self.expenses.initialize_month(month)

        self.bus.emit(Topics.MONTH_CHANGED, {"monthKey": month, "previousMonth": previous})
        return month

    async def ensure_current_month(self) -> str:
        """Startup check: the current month exists and has its default expenses."""
        month = self.hub.get(CURRENT_MONTH)
        if self.expenses is not None:
            snapshot = self._monthly_data().get(month)
            if snapshot is None:
                await self.expenses.initialize_month(month)
            elif not snapshot.get("expenses"):
                await self.expenses.add_default_expenses(month)
        await self.ensure_month(month)
        return month

    def _check_month(self, month: str) -> None:
        if not is_month_key(month):
            raise self._fail(InvalidRecordError(
                self.entity,
                [{"loc": ("monthKey",), "msg": f"invalid month key {month!r}"}],
            ))
