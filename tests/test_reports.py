"""Tests for the reports engine."""

import pytest

from ordersystem.reports import ReportError, ReportsEngine


def free_order(date, client="A", sell=0.0, **extra):
    """An order without costs, so its profit equals its selling price."""
    return {"date": date, "client": client, "costUSD": 0, "shippingUSD": 0, "sellEUR": sell, **extra}


class TestMonthlyStats:
    """Tests for per-month figures."""

    async def test_monthly_stats(self, reports, orders, expenses, sample_order):
        """Profit is revenue minus landed costs minus expenses."""
        await orders.create(sample_order)
        await expenses.create({"name": "Ads", "amount": 50})

        stats = await reports.get_monthly_stats("2024-11")

        assert stats == {
            "orderCount": 1,
            "revenue": 200.0,
            "costs": 101.17,
            "expenses": 50.0,
            "profit": 48.83,
            "avgProfit": 48.83,
        }

    async def test_empty_month(self, reports):
        """A month without data reports zeros."""
        stats = await reports.get_monthly_stats("2020-01")
        assert stats["orderCount"] == 0
        assert stats["avgProfit"] == 0.0

    async def test_cache_hit_and_invalidation(self, reports, orders):
        """Repeated reads hit the cache; a new order invalidates it."""
        await orders.create(free_order("2024-11-01", sell=100))

        first = await reports.get_monthly_stats("2024-11")
        await reports.get_monthly_stats("2024-11")
        assert (reports.hits, reports.misses) == (1, 1)

        await orders.create(free_order("2024-11-02", sell=50))
        refreshed = await reports.get_monthly_stats("2024-11")

        assert reports.misses == 2
        assert first["revenue"] == 100
        assert refreshed["revenue"] == 150

    async def test_cached_results_are_copies(self, reports):
        """Mutating a returned report does not poison the cache."""
        stats = await reports.get_monthly_stats("2024-11")
        stats["revenue"] = 1e6
        assert (await reports.get_monthly_stats("2024-11"))["revenue"] == 0

    async def test_undo_refreshes_reports(self, reports, orders, commands):
        """Reports follow the state after an undo."""
        await orders.create(free_order("2024-11-01", sell=100))
        assert (await reports.get_monthly_stats("2024-11"))["revenue"] == 100
        commands.undo()
        assert (await reports.get_monthly_stats("2024-11"))["revenue"] == 0


class TestAllTimeStats:
    """Tests for all-time figures and trends."""

    async def test_all_time(self, reports, orders, expenses, sample_order):
        """Totals span every month; net profit subtracts every expense."""
        await orders.create(sample_order)
        await orders.create(free_order("2024-10-05", sell=100))
        await expenses.create({"name": "Ads", "amount": 20, "monthKey": "2024-10"})

        stats = await reports.get_all_time_stats()

        assert stats["totalOrders"] == 2
        assert stats["totalRevenue"] == 300
        assert stats["totalProfit"] == 198.83
        assert stats["netProfit"] == 178.83
        assert stats["avgProfit"] == 89.42

    async def test_trend_uses_last_complete_month(self, reports, orders):
        """Velocity compares October with September when today is in November."""
        await orders.create(free_order("2024-09-10", sell=200))
        await orders.create(free_order("2024-10-10", sell=300))
        await orders.create(free_order("2024-11-10", sell=5000))

        stats = await reports.get_all_time_stats_with_trends()

        assert stats["trendMonth"] == "2024-10"
        assert stats["velocity"] == 50.0
        assert stats["trend"] == "up"

    async def test_trend_down_and_flat(self, reports, orders):
        """Falling profit is down; a change under the threshold is flat."""
        await orders.create(free_order("2024-09-10", sell=400))
        await orders.create(free_order("2024-10-10", sell=100))
        assert (await reports.get_all_time_stats_with_trends())["trend"] == "down"

        assert reports.trend(0.5) == "flat"

    def test_velocity_from_zero_base(self):
        """A zero base reports ±100, or 0 when both months are zero."""
        assert ReportsEngine.velocity(50, 0) == 100.0
        assert ReportsEngine.velocity(-5, 0) == -100.0
        assert ReportsEngine.velocity(0, 0) == 0.0
        assert ReportsEngine.velocity(-50, -100) == 50.0


class TestGroupedReports:
    """Tests for grouped reports."""

    async def test_by_origin_and_vendor(self, reports, orders):
        """Orders are grouped by their origin and vendor."""
        await orders.create(free_order("2024-11-01", sell=100, origin="OLX", vendor="V1"))
        await orders.create(free_order("2024-11-02", sell=50, origin="OLX", vendor="V2"))
        await orders.create(free_order("2024-10-02", sell=10, origin="Instagram", vendor="V1"))

        by_origin = await reports.get_report_by_origin()
        assert by_origin["OLX"] == {"count": 2, "revenue": 150.0, "profit": 150.0}
        assert by_origin["Instagram"]["count"] == 1

        by_vendor = await reports.get_report_by_vendor()
        assert by_vendor["V1"]["revenue"] == 110.0

    async def test_by_month(self, reports, orders, expenses):
        """The monthly report lists months oldest first."""
        await orders.create(free_order("2024-11-01", sell=100))
        await orders.create(free_order("2024-10-01", sell=40))
        await expenses.create({"name": "Ads", "amount": 15, "monthKey": "2024-10"})

        report = await reports.get_report_by_month()

        assert list(report) == ["2024-10", "2024-11"]
        assert report["2024-10"] == {"count": 1, "revenue": 40.0, "profit": 40.0, "expenses": 15.0}

    async def test_top_clients(self, reports, orders):
        """Clients are ranked by profit; spellings differing in case are merged."""
        await orders.create(free_order("2024-10-01", client="Иван", sell=100))
        await orders.create(free_order("2024-11-01", client="иван", sell=100))
        await orders.create(free_order("2024-11-02", client="Мария", sell=150))

        top = await reports.get_top_clients(limit=1)

        assert top == [{"client": "Иван", "count": 2, "revenue": 200.0, "profit": 200.0}]
        with pytest.raises(ReportError):
            await reports.get_top_clients(limit=0)
