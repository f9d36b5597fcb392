"""
Reports Engine

DESIGN DECISION: Reports are DERIVED, never stored.
Every figure is recomputed from the orders and expense lines in the state
hub; nothing here writes state. Amounts are EUR and rounded to cents once,
at the end of each aggregation.

Caching is explicit. Results are memoized under
(report name, month, digest of the data the report reads). The digest
alone would be enough for correctness; the InvalidationSet additionally
drops the whole cache as soon as an `order:*`, `expense:*`, import or
monthlyData change is announced, so the cache never holds results for
data that no longer exists.
"""

import copy
import hashlib
import json
from typing import Any, Callable, Iterable, Optional

import structlog

from ordersystem.config.settings import ReportSettings
from ordersystem.core.event_bus import EventBus
from ordersystem.core.state import CURRENT_MONTH, MONTHLY_DATA, StateHub
from ordersystem.currency.engine import round_money
from ordersystem.models.events import Event, Topics
from ordersystem.models.records import normalize_name
from ordersystem.modules.base import iter_orders, order_view
from ordersystem.utils.clock import Clock, SystemClock
from ordersystem.utils.dates import month_key, previous_month

logger = structlog.get_logger(__name__)


TREND_UP = "up"
TREND_DOWN = "down"
TREND_FLAT = "flat"

INVALIDATING_TOPICS = (
    "order:*",
    "expense:*",
    Topics.STORE_IMPORTED,
    Topics.state_changed(MONTHLY_DATA),
)


class ReportError(Exception):
    """A report was asked for something it cannot compute."""
    pass


# =============================================================================
# INVALIDATION
# =============================================================================

class InvalidationSet:
    """
    Topics that make cached reports stale.

    Subscribes to the bus and collects the topics it saw until the owner
    consumes them.
    """

    def __init__(self, patterns: Iterable[str] = INVALIDATING_TOPICS):
        self.patterns = tuple(patterns)
        self._pending: set[str] = set()
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, bus: EventBus) -> "InvalidationSet":
        for pattern in self.patterns:
            self._unsubscribers.append(bus.on(pattern, self._mark))
        return self

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _mark(self, event: Event) -> None:
        self._pending.add(event.topic)

    @property
    def dirty(self) -> bool:
        return bool(self._pending)

    def consume(self) -> set[str]:
        """Return and forget the topics seen since the last call."""
        pending, self._pending = self._pending, set()
        return pending


# =============================================================================
# ENGINE
# =============================================================================

def _digest(value: Any) -> str:
    encoded = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha1(encoded.encode("utf-8")).hexdigest()


def _sum(values: Iterable[Any]) -> float:
    return round_money(sum(float(v or 0) for v in values))


class ReportsEngine:
    """
    Monthly, all-time and grouped profit reports.

    Profit of a month = revenue (Σ sellEUR) − costs (Σ totalEUR)
    − expenses (Σ expense amounts).
    """

    def __init__(
        self,
        hub: StateHub,
        bus: EventBus,
        clock: Optional[Clock] = None,
        settings: Optional[ReportSettings] = None,
    ):
        self.hub = hub
        self.clock = clock or SystemClock()
        self.settings = settings or ReportSettings()
        self.invalidations = InvalidationSet().attach(bus)
        self._cache: dict[tuple[str, str, str], Any] = {}
        self.hits = 0
        self.misses = 0

    def clear_cache(self) -> None:
        self._cache.clear()

    # -------------------------------------------------------------------------
    # Caching
    # -------------------------------------------------------------------------

    def _cached(self, name: str, month: str, data: Any, compute: Callable[[], Any]) -> Any:
        stale = self.invalidations.consume()
        if stale:
            logger.debug("report_cache_invalidated", topics=sorted(stale), entries=len(self._cache))
            self._cache.clear()

        key = (name, month, _digest(data))
        if key in self._cache:
            self.hits += 1
            return copy.deepcopy(self._cache[key])

        self.misses += 1
        result = compute()
        self._cache[key] = result
        return copy.deepcopy(result)

    def _monthly_data(self) -> dict:
        return self.hub.get(MONTHLY_DATA) or {}

    # -------------------------------------------------------------------------
    # Monthly
    # -------------------------------------------------------------------------

    async def get_monthly_stats(self, month: Optional[str] = None) -> dict[str, Any]:
        """{orderCount, revenue, costs, expenses, profit, avgProfit} for a month."""
        month = month or self.hub.get(CURRENT_MONTH)
        snapshot = self._monthly_data().get(month) or {}
        return self._cached("monthly", month, snapshot, lambda: self._month_stats(snapshot))

    @staticmethod
    def _month_stats(snapshot: dict) -> dict[str, Any]:
        orders = [order_view(o) for o in snapshot.get("orders", []) or []]
        revenue = _sum(o["sellEUR"] for o in orders)
        costs = _sum(o["totalEUR"] for o in orders)
        expenses = _sum(e.get("amount") for e in snapshot.get("expenses", []) or [])
        profit = round_money(revenue - costs - expenses)
        return {
            "orderCount": len(orders),
            "revenue": revenue,
            "costs": costs,
            "expenses": expenses,
            "profit": profit,
            "avgProfit": round_money(profit / len(orders)) if orders else 0.0,
        }

    # -------------------------------------------------------------------------
    # All time
    # -------------------------------------------------------------------------

    async def get_all_time_stats(self) -> dict[str, Any]:
        monthly_data = self._monthly_data()
        return self._cached("all_time", "*", monthly_data, lambda: self._all_time(monthly_data))

    @staticmethod
    def _all_time(monthly_data: dict) -> dict[str, Any]:
        orders = [order_view(o) for _, o in iter_orders(monthly_data)]
        expenses = [
            e for snapshot in monthly_data.values()
            for e in (snapshot or {}).get("expenses", []) or []
        ]

        total_revenue = _sum(o["sellEUR"] for o in orders)
        total_profit = _sum(o["balanceEUR"] for o in orders)
        total_expenses = _sum(e.get("amount") for e in expenses)
        net_profit = round_money(total_profit - total_expenses)
        return {
            "totalOrders": len(orders),
            "totalRevenue": total_revenue,
            "totalProfit": total_profit,
            "totalExpenses": total_expenses,
            "netProfit": net_profit,
            "avgProfit": round_money(net_profit / max(1, len(orders))),
        }

    async def get_all_time_stats_with_trends(self) -> dict[str, Any]:
        """
        All-time totals plus the direction of the business.

        velocity is the % change of the last complete month's profit
        against the month before it. The last complete month is the month
        before today's month. A change from a zero base reports ±100
        (0 when both months are zero).
        """
        stats = await self.get_all_time_stats()

        last_complete = previous_month(month_key(self.clock.now()))
        before = previous_month(last_complete)
        current = (await self.get_monthly_stats(last_complete))["profit"]
        base = (await self.get_monthly_stats(before))["profit"]

        velocity = self.velocity(current, base)
        trend = self.trend(velocity)

        logger.debug(
            "trend_computed",
            month_key=last_complete,
            profit=current,
            base_profit=base,
            velocity=velocity,
            trend=trend,
        )
        return {
            **stats,
            "trend": trend,
            "velocity": velocity,
            "trendMonth": last_complete,
        }

    @staticmethod
    def velocity(current: float, base: float) -> float:
        if base == 0:
            if current == 0:
                return 0.0
            return 100.0 if current > 0 else -100.0
        return round_money((current - base) / abs(base) * 100)

    def trend(self, velocity: float) -> str:
        if abs(velocity) < self.settings.trend_flat_threshold_pct:
            return TREND_FLAT
        return TREND_UP if velocity > 0 else TREND_DOWN

    # -------------------------------------------------------------------------
    # Grouped
    # -------------------------------------------------------------------------

    async def get_report_by_origin(self) -> dict[str, dict]:
        return self._grouped("origin")

    async def get_report_by_vendor(self) -> dict[str, dict]:
        return self._grouped("vendor")

    async def get_report_by_month(self) -> dict[str, dict]:
        """{monthKey: {count, revenue, profit, expenses}}, oldest month first."""
        monthly_data = self._monthly_data()

        def compute() -> dict[str, dict]:
            report = {}
            for month in sorted(monthly_data):
                snapshot = monthly_data[month] or {}
                orders = [order_view(o) for o in snapshot.get("orders", []) or []]
                report[month] = {
                    "count": len(orders),
                    "revenue": _sum(o["sellEUR"] for o in orders),
                    "profit": _sum(o["balanceEUR"] for o in orders),
                    "expenses": _sum(e.get("amount") for e in snapshot.get("expenses", []) or []),
                }
            return report

        return self._cached("by_month", "*", monthly_data, compute)

    async def get_top_clients(self, limit: int = 10) -> list[dict]:
        """Clients ranked by order profit, best first."""
        if limit < 1:
            raise ReportError(f"limit must be positive, got {limit}")
        grouped = self._grouped("client", normalize=True)
        ranked = sorted(grouped.items(), key=lambda item: item[1]["profit"], reverse=True)
        return [{"client": name, **stats} for name, stats in ranked[:limit]]

    def _grouped(self, field: str, normalize: bool = False) -> dict[str, dict]:
        """
        {value of `field`: {count, revenue, profit}} over every order.

        With `normalize`, values that differ only in case or surrounding
        spaces are merged under the first spelling seen.
        """
        monthly_data = self._monthly_data()

        def compute() -> dict[str, dict]:
            groups: dict[str, dict] = {}
            labels: dict[str, str] = {}
            for _, stored in iter_orders(monthly_data):
                order = order_view(stored)
                raw = order.get(field) or ""
                ident = normalize_name(raw) if normalize else raw
                label = labels.setdefault(ident, raw.strip() if normalize else raw)
                group = groups.setdefault(label, {"count": 0, "revenue": 0.0, "profit": 0.0})
                group["count"] += 1
                group["revenue"] += float(order["sellEUR"])
                group["profit"] += float(order["balanceEUR"])
            for group in groups.values():
                group["revenue"] = round_money(group["revenue"])
                group["profit"] = round_money(group["profit"])
            return groups

        return self._cached(f"by_{field}", "*", monthly_data, compute)
