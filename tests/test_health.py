"""Tests for the health monitor and the protection dashboard."""

import asyncio
import json
from datetime import timedelta

import pytest

from ordersystem.config.settings import MonitorSettings
from ordersystem.core.history import CommandStack
from ordersystem.core.state import CLIENTS_DATA, INVENTORY, MONTHLY_DATA, SETTINGS, StateHub
from ordersystem.modules import ClientsModule
from ordersystem.monitoring import HealthMonitor, ProtectionDashboard
from ordersystem.services.storage import (
    BackupMissingError,
    KeyedStore,
    MemoryMedium,
    QuotaExceededError,
)


@pytest.fixture
def dashboard(hub, bus, monitor, commands):
    return ProtectionDashboard(hub, bus, monitor, commands)


class TestStorageHealth:
    """Tests for quota monitoring and failed writes."""

    async def test_full_store_rejects_writes(self, bus, clock, notifications):
        """Near the quota health is error, and a rejected save leaves state as it was."""
        medium = MemoryMedium(quota_bytes=1000)
        store = KeyedStore(medium, clock=clock)
        hub = StateHub(store, bus, clock=clock)
        monitor = HealthMonitor(store, bus, clock=clock)
        clients = ClientsModule(hub, bus, CommandStack(hub, bus, clock=clock), clock=clock)
        medium.set("filler", "x" * 960)

        assert monitor.check_storage().status.value == "error"
        assert len(notifications) == 1

        with pytest.raises(QuotaExceededError):
            await clients.create({"name": "Иван"})

        assert hub.get(CLIENTS_DATA) == {}
        assert store.load(CLIENTS_DATA) is None
        assert len(notifications) == 2
        assert notifications[-1]["key"] == CLIENTS_DATA
        assert notifications[-1]["error_type"] == "QuotaExceededError"

        monitor.check_storage()
        assert len(notifications) == 3
        assert notifications[-1]["status"] == "error"

    def test_notifies_on_every_unhealthy_sample(self, bus, clock, notifications):
        """Each warning sample is announced; a healthy sample is silent."""
        medium = MemoryMedium(quota_bytes=1000)
        monitor = HealthMonitor(KeyedStore(medium, clock=clock), bus, clock=clock)

        assert monitor.check_storage().status.value == "ok"
        medium.set("filler", "x" * 820)
        monitor.check_storage()
        monitor.check_storage()
        medium.delete("filler")
        monitor.check_storage()

        assert [n["status"] for n in notifications] == ["warning", "warning"]

    def test_close_stops_listening(self, monitor, store, notifications, clock):
        """After close, failed writes are no longer announced by the monitor."""
        monitor.close()
        small = MemoryMedium(quota_bytes=10)
        store.medium = small
        with pytest.raises(QuotaExceededError):
            store.save("settings", {"blob": "x" * 50})
        assert notifications == []


class TestExportReminder:
    """Tests for the manual export reminder."""

    def test_never_exported(self, monitor, notifications):
        """No export at all triggers a reminder."""
        assert monitor.days_since_export() is None
        assert monitor.check_export_reminder() is True
        assert notifications[-1]["source"] == "export"

    def test_recent_export(self, monitor, store, clock, notifications):
        """An export younger than the threshold is quiet."""
        store.save("lastManualExport", clock.now_ms() - int(timedelta(days=2).total_seconds() * 1000))
        assert monitor.days_since_export() == 2
        assert monitor.check_export_reminder() is False
        assert notifications == []

    def test_old_export(self, monitor, store, clock, notifications):
        """An export a week old or more triggers a reminder."""
        store.save("lastManualExport", clock.now_ms() - int(timedelta(days=8).total_seconds() * 1000))
        assert monitor.check_export_reminder() is True
        assert notifications[-1]["daysSinceExport"] == 8


class TestMonitorLoops:
    """Tests for the background loops."""

    async def test_start_and_stop(self, store, bus, clock, notifications):
        """Both loops run until stop()."""
        settings = MonitorSettings(health_interval_seconds=0.01, reminder_interval_seconds=0.01)
        monitor = HealthMonitor(store, bus, clock=clock, settings=settings)

        monitor.start()
        monitor.start()
        assert len(monitor._tasks) == 2
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert not monitor.running
        assert any(n["source"] == "export" for n in notifications)

    async def test_failing_check_does_not_end_loop(self, store, bus, clock, monkeypatch, notifications):
        """A check that raises is logged; the other loop keeps going."""
        settings = MonitorSettings(health_interval_seconds=0.01, reminder_interval_seconds=0.01)
        monitor = HealthMonitor(store, bus, clock=clock, settings=settings)

        def broken():
            raise RuntimeError("disk gone")

        monkeypatch.setattr(store, "health", broken)
        monitor.start()
        await asyncio.sleep(0.05)
        assert monitor.running
        await monitor.stop()

        assert len([n for n in notifications if n["source"] == "export"]) >= 2


class TestProtectionDashboard:
    """Tests for the protection status and actions."""

    def test_status_fresh_install(self, dashboard):
        """A fresh install is healthy but should be exported."""
        status = dashboard.get_status()
        assert status["status"] == "ok"
        assert status["exportRecommended"] is True
        assert [a["level"] for a in status["alerts"]] == ["warning"]

    def test_force_backup(self, dashboard, hub, notifications):
        """Force backup covers the four critical keys."""
        hub.set(MONTHLY_DATA, {"2024-11": {"orders": [], "expenses": [], "lastOrderSeq": 0}})
        hub.set(CLIENTS_DATA, {"c1": {"id": "c1", "name": "A"}})
        hub.set(SETTINGS, hub.get(SETTINGS))
        hub.set(INVENTORY, {})

        assert dashboard.force_backup() == 4
        assert notifications[-1]["level"] == "success"

    def test_backup_overview(self, dashboard, hub):
        """The overview lists the newest backups per key."""
        for n in range(5):
            hub.set(CLIENTS_DATA, {"c1": {"id": "c1", "name": f"A{n}"}})
        overview = dashboard.get_backup_overview(limit_per_key=3)
        assert len(overview[CLIENTS_DATA]) == 3
        stamps = [entry["timestamp"] for entry in overview[CLIENTS_DATA]]
        assert stamps == sorted(stamps, reverse=True)

    def test_recovery_without_backups(self, dashboard, notifications):
        """No backups means the recovery test does not pass."""
        result = dashboard.test_recovery()
        assert result["passed"] is False
        assert notifications[-1]["level"] == "warning"

    def test_recovery_passes(self, dashboard, hub):
        """Readable backups pass the recovery test."""
        hub.set(CLIENTS_DATA, {"c1": {"id": "c1", "name": "A"}})
        result = dashboard.test_recovery()
        assert result["passed"] is True
        assert result["keys"] == [CLIENTS_DATA]

    def test_recovery_finds_unreadable_payload(self, dashboard, hub, store, medium):
        """A newest backup holding broken JSON fails the recovery test."""
        hub.set(CLIENTS_DATA, {"c1": {"id": "c1", "name": "A"}})
        medium.set(
            store.vault.backup_key(CLIENTS_DATA, 9_999_999_999_999),
            json.dumps({"timestamp": 9_999_999_999_999, "size": 7, "payload": "{broken"}),
        )
        result = dashboard.test_recovery()
        assert result["passed"] is False
        assert result["unreadable"] == [CLIENTS_DATA]

    async def test_restore_from_backup(self, dashboard, clients, hub, store, commands):
        """Restoring an earlier backup updates the hub and clears undo."""
        await clients.create({"name": "A"})
        await clients.create({"name": "B"})
        older = store.vault.list_backups(CLIENTS_DATA)[1]

        dashboard.restore_from_backup(CLIENTS_DATA, older.timestamp)

        assert [c["name"] for c in hub.get(CLIENTS_DATA).values()] == ["A"]
        assert not commands.can_undo()

    def test_restore_missing_backup(self, dashboard, notifications):
        """An unknown backup raises and is announced."""
        with pytest.raises(BackupMissingError):
            dashboard.restore_from_backup(CLIENTS_DATA, 42)
        assert notifications[-1]["level"] == "error"

    def test_cleanup(self, dashboard, hub):
        """Cleanup keeps one backup per key."""
        for n in range(3):
            hub.set(CLIENTS_DATA, {"n": n})
        assert dashboard.cleanup_storage() == 2
