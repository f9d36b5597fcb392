"""Tests for bundle export, validation and atomic import."""

import asyncio
import json

import pytest

from ordersystem.core.state import (
    AVAILABLE_MONTHS,
    CLIENTS_DATA,
    CURRENT_MONTH,
    MONTHLY_DATA,
    BusyError,
)
from ordersystem.models.events import Topics
from ordersystem.services.storage import QuotaExceededError
from ordersystem.transfer import (
    ImportExportEnvelope,
    IncompatibleVersionError,
    InvalidEnvelopeError,
    upgrade_bundle,
)
from ordersystem.validation import BundleValidator


def bundle(**overrides):
    """A minimal valid 1.2 bundle."""
    data = {
        "version": "1.2",
        "exportDate": "2024-11-01T09:00:00",
        "monthlyData": {
            "2024-11": {
                "orders": [{
                    "id": 2024110001,
                    "date": "2024-11-03",
                    "client": "Петър",
                    "costUSD": 10,
                    "shippingUSD": 0,
                    "rate": 0.9,
                    "sellEUR": 20,
                }],
                "expenses": [],
                "lastOrderSeq": 1,
            },
        },
        "clientsData": {"client_1": {"id": "client_1", "name": "Петър"}},
        "settings": {"usdRate": 1.71},
        "inventory": {},
        "availableMonths": [{"key": "2024-11", "name": "Ноември 2024"}],
        "currentMonth": "2024-11",
    }
    data.update(overrides)
    return data


class TestBundleValidator:
    """Tests for the two validation stages."""

    def test_valid_bundle(self):
        """A well-formed current bundle passes both stages."""
        result = BundleValidator().validate(bundle())
        assert result.is_valid
        assert result.version == "1.2"

    def test_missing_required_object(self):
        """Missing monthlyData fails the schema stage."""
        data = bundle()
        del data["monthlyData"]
        result = BundleValidator().validate(data)
        assert not result.schema_valid
        assert result.errors[0].field == "monthlyData"

    def test_bad_month_key(self):
        """Month partitions must be keyed YYYY-MM."""
        result = BundleValidator().validate(bundle(monthlyData={"11-2024": {"orders": []}}))
        assert not result.schema_valid

    def test_missing_version_read_as_1_0(self):
        """No version is a warning, not an error."""
        data = bundle()
        del data["version"]
        result = BundleValidator().validate(data)
        assert result.is_valid
        assert result.version == "1.0"
        assert result.warnings

    def test_future_version(self):
        """Unknown versions pass the schema stage and fail the version stage."""
        result = BundleValidator().validate(bundle(version="9.9"))
        assert result.schema_valid
        assert not result.version_supported
        assert "9.9" in BundleValidator().get_user_friendly_summary(result)


class TestExport:
    """Tests for the export side."""

    async def test_export_layout(self, envelope, clients):
        """The bundle carries the version, the export date and every state key."""
        await clients.create({"name": "Иван"})
        data = envelope.export_bundle()

        assert data["version"] == "1.2"
        assert data["exportDate"].startswith("2024-11-20T10:00")
        assert set(data) >= {"monthlyData", "clientsData", "settings", "inventory", "availableMonths", "currentMonth"}
        assert "envelopeExtras" not in data
        assert envelope.export_filename() == "orders-backup-2024-11-20.json"

    def test_export_json_keeps_cyrillic(self, envelope, hub):
        """Text is written as UTF-8, not escaped."""
        hub.set(CLIENTS_DATA, {"c1": {"id": "c1", "name": "Иван"}})
        assert "Иван" in envelope.export_json()

    def test_export_to_file(self, envelope, store, tmp_path, notifications):
        """Writing the bundle records the manual export time."""
        path = envelope.export_to_file(tmp_path / "exports")

        assert path.name == "orders-backup-2024-11-20.json"
        assert json.loads(path.read_text(encoding="utf-8"))["version"] == "1.2"
        assert isinstance(store.load("lastManualExport"), int)
        assert notifications[-1]["level"] == "success"


class TestImport:
    """Tests for atomic import."""

    async def test_round_trip(self, envelope, clients, orders, reports, hub, store, sample_order):
        """Exported data comes back identical after a wipe and an import."""
        await clients.create({"name": "Иван"})
        await orders.create(sample_order)
        exported = envelope.export_json()

        store.clear_prefix()
        hub.load_from_store()
        assert hub.get(CLIENTS_DATA) == {}

        summary = await envelope.import_bundle(exported)

        assert summary["orders"] == 1
        assert (await clients.get_client_by_name("Иван")) is not None
        found = await orders.find_order_by_id(2024110001)
        assert found["order"]["totalEUR"] == 101.17
        assert found["order"]["balanceEUR"] == 98.83
        assert (await reports.get_monthly_stats("2024-11"))["revenue"] == 200.0

    async def test_import_replaces_and_announces(self, envelope, clients, commands, events, hub):
        """Import replaces all data, clears the undo history and emits store:imported."""
        await clients.create({"name": "Стар клиент"})
        assert commands.can_undo()

        summary = await envelope.import_bundle(bundle())

        assert [c["name"] for c in hub.get(CLIENTS_DATA).values()] == ["Петър"]
        assert not commands.can_undo()
        assert summary == {
            "version": "1.2", "months": 1, "orders": 1,
            "expenses": 0, "clients": 1, "inventory": 0,
        }
        assert events[-1].topic == Topics.STORE_IMPORTED

    async def test_orders_regrouped_by_date(self, envelope, hub):
        """An order filed under the wrong month moves to the month of its date."""
        data = bundle()
        data["monthlyData"]["2024-11"]["orders"][0]["date"] = "2024-10-05"

        await envelope.import_bundle(data)

        monthly = hub.get(MONTHLY_DATA)
        assert monthly["2024-11"]["orders"] == []
        assert monthly["2024-10"]["orders"][0]["monthKey"] == "2024-10"
        assert "2024-10" in {m["key"] for m in hub.get(AVAILABLE_MONTHS)}

    async def test_order_without_rate_uses_bundle_rate(self, envelope, orders):
        """An order with no captured rate gets the bundle's USD->EUR rate, so costs still count."""
        data = bundle()
        order = data["monthlyData"]["2024-11"]["orders"][0]
        del order["rate"]
        order.update(costUSD=100, shippingUSD=10, extrasEUR=5, sellEUR=200)

        await envelope.import_bundle(data)

        imported = (await orders.get_orders("2024-11"))[0]
        assert imported["rate"] == 0.8743
        assert imported["totalEUR"] == 101.17
        assert imported["balanceEUR"] == 98.83

    async def test_unknown_keys_survive(self, envelope):
        """Keys this version does not know are exported again."""
        await envelope.import_bundle(bundle(customerNotes={"pinned": ["x"]}))
        assert envelope.export_bundle()["customerNotes"] == {"pinned": ["x"]}

    async def test_legacy_bundle_upgraded(self, envelope, hub):
        """BGN money in a 1.0 bundle is converted to EUR once."""
        legacy = {
            "monthlyData": {
                "2023-05": {
                    "orders": [{
                        "id": 2023050001,
                        "date": "2023-05-10",
                        "client": "Стар",
                        "costUSD": 50,
                        "shippingUSD": 0,
                        "rate": 1.71,
                        "sellBGN": 195.58,
                        "totalBGN": 85.5,
                    }],
                    "expenses": [{"category": "Ads", "amount": 97.79, "description": "Кампания"}],
                },
            },
            "clientsData": {"c1": {"name": "Стар"}},
            "settings": {"usdRate": 1.71},
        }

        summary = await envelope.import_bundle(legacy)

        assert summary["version"] == "1.0"
        month = hub.get(MONTHLY_DATA)["2023-05"]
        order = month["orders"][0]
        assert order["sellEUR"] == 100.0
        assert order["rate"] == 0.8743
        assert "sellBGN" not in order and "totalBGN" not in order
        expense = month["expenses"][0]
        assert (expense["name"], expense["note"]) == ("Ads", "Кампания")
        assert expense["amount"] == 50.0
        assert expense["amountBGN"] == 97.79
        assert expense["id"].startswith("exp_")
        assert hub.get(CURRENT_MONTH) == "2024-11"
        assert hub.get(CLIENTS_DATA)["c1"]["id"] == "c1"

    def test_upgrade_keeps_eur_expenses(self):
        """Expense lines already in EUR are not converted again."""
        data = bundle()
        data["monthlyData"]["2024-11"]["expenses"] = [
            {"id": "e1", "name": "A", "amount": 10, "currency": "EUR"},
            {"id": "e2", "name": "B", "amount": 19.56, "currency": "BGN"},
        ]
        state = upgrade_bundle(data, "1.2", "2024-11")
        lines = state[MONTHLY_DATA]["2024-11"]["expenses"]
        assert [line["amount"] for line in lines] == [10.0, 10.0]
        assert lines[1]["amountBGN"] == 19.56


class TestImportFailures:
    """Tests for rejected and failed imports."""

    @pytest.mark.parametrize("source", [
        "{not json",
        json.dumps([1, 2, 3]),
        {"monthlyData": [], "clientsData": {}, "settings": {}},
        bundle(clientsData={"client_1": "Петър"}),
        bundle(inventory={"box_1": 3}),
    ])
    async def test_malformed_bundle(self, envelope, clients, hub, notifications, source):
        """Malformed bundles raise InvalidEnvelopeError and change nothing."""
        await clients.create({"name": "Иван"})
        before = hub.snapshot()

        with pytest.raises(InvalidEnvelopeError):
            await envelope.import_bundle(source)

        assert hub.snapshot() == before
        assert notifications[-1]["error_type"] == "InvalidEnvelopeError"

    async def test_invalid_record(self, envelope):
        """A record that fails its model rejects the whole bundle."""
        data = bundle()
        data["monthlyData"]["2024-11"]["orders"][0]["costUSD"] = -1
        with pytest.raises(InvalidEnvelopeError):
            await envelope.import_bundle(data)

    async def test_incompatible_version(self, envelope, hub, notifications):
        """A bundle from a newer release is refused."""
        before = hub.snapshot()
        with pytest.raises(IncompatibleVersionError):
            await envelope.import_bundle(bundle(version="9.9"))
        assert hub.snapshot() == before
        assert len(notifications) == 1

    async def test_busy(self, envelope, hub, notifications):
        """A second import while one is running raises BusyError."""
        with hub.exclusive("import"):
            with pytest.raises(BusyError):
                await envelope.import_bundle(bundle())
        assert notifications[-1]["level"] == "warning"

    async def test_write_failure_rolls_back(self, envelope, clients, hub, store, monkeypatch, notifications):
        """A failing write restores every key as it was."""
        await clients.create({"name": "Иван"})
        store.save("lastManualExport", 1234)
        before_state = hub.snapshot()
        before_clients = store.load(CLIENTS_DATA)

        real_save = store.save
        calls = []

        def failing_save(key, value, backup=True):
            calls.append(key)
            if key == CLIENTS_DATA:
                raise QuotaExceededError(key, 10_000, 5_000)
            return real_save(key, value, backup=backup)

        monkeypatch.setattr(store, "save", failing_save)
        notified = len(notifications)

        with pytest.raises(QuotaExceededError):
            await envelope.import_bundle(bundle())

        monkeypatch.undo()
        assert calls[:2] == [MONTHLY_DATA, CLIENTS_DATA]
        assert hub.snapshot() == before_state
        assert store.load(CLIENTS_DATA) == before_clients
        assert store.load("lastManualExport") == 1234
        assert not hub.busy
        assert len(notifications) == notified

    async def test_cancellation_rolls_back(self, envelope, clients, hub, store):
        """Cancelling an import half way restores the previous data."""
        await clients.create({"name": "Иван"})
        before = hub.snapshot()

        task = asyncio.create_task(envelope.import_bundle(bundle()))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert hub.snapshot() == before
        assert store.load(CLIENTS_DATA) == before[CLIENTS_DATA]
        assert not hub.busy

    async def test_unreadable_file(self, envelope, tmp_path, notifications):
        """A missing file is an invalid bundle."""
        with pytest.raises(InvalidEnvelopeError):
            await envelope.import_file(tmp_path / "missing.json")
        assert notifications[-1]["level"] == "error"

    async def test_import_file(self, hub, bus, commands, clock, tmp_path):
        """A bundle written by one installation loads into another."""
        path = tmp_path / "backup.json"
        path.write_text(json.dumps(bundle(), ensure_ascii=False), encoding="utf-8")

        summary = await ImportExportEnvelope(hub, bus, commands, clock=clock).import_file(path)

        assert summary["clients"] == 1
