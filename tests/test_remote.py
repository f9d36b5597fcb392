"""Tests for the Google Sheets row-store and the remote mirror."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from ordersystem.config.settings import RemoteStoreSettings
from ordersystem.services.remote import (
    GoogleSheetsRowStore,
    RemoteMirror,
    RemoteNotFoundError,
    RemoteStoreError,
)
from ordersystem.services.remote.google_sheets import (
    EXPENSE_COLUMNS,
    ORDER_COLUMNS,
    from_row,
    to_row,
)

ORDER_HEADER = [column for column, _, _ in ORDER_COLUMNS]


@pytest.fixture
def sheet():
    worksheet = MagicMock()
    worksheet.get_all_values.return_value = [ORDER_HEADER]
    return worksheet


@pytest.fixture
def row_store(sheet):
    """Row-store on a mocked client; no network."""
    client = MagicMock()
    client.settings = RemoteStoreSettings()
    client.get_sheet.return_value = sheet
    return GoogleSheetsRowStore(client)


def order_record(**overrides):
    record = {
        "id": 2024110001,
        "monthKey": "2024-11",
        "date": "2024-11-15",
        "client": "Иван",
        "costUSD": 100.0,
        "shippingUSD": 10.0,
        "rate": 0.8743,
        "sellEUR": 200.0,
        "status": "Доставен",
        "fullSet": True,
        "imageData": "https://res.cloudinary.com/demo/image/upload/orders/order_1.jpg",
    }
    record.update(overrides)
    return record


class TestRowMapping:
    """Tests for record <-> row conversion."""

    def test_order_row(self):
        """Orders map to snake_case columns and back."""
        row = to_row(order_record(), ORDER_COLUMNS)
        assert row[0] == "2024110001"
        assert row[ORDER_HEADER.index("full_set")] == "TRUE"

        back = from_row(row, ORDER_COLUMNS)
        assert back["id"] == 2024110001
        assert back["sellEUR"] == 200.0
        assert back["fullSet"] is True
        assert back["imageData"].startswith("https://")

    def test_data_url_not_mirrored(self):
        """Photos that are data URLs leave the image cell empty."""
        row = to_row(order_record(imageData="data:image/jpeg;base64,AAAA"), ORDER_COLUMNS)
        assert row[ORDER_HEADER.index("image_url")] == ""

    def test_blank_numbers_are_left_out(self):
        """An empty amount_bgn cell does not appear in the record."""
        row = to_row({"id": "exp_1", "monthKey": "2024-11", "name": "Ads", "amount": 10}, EXPENSE_COLUMNS)
        record = from_row(row, EXPENSE_COLUMNS)
        assert record["amount"] == 10.0
        assert "amountBGN" not in record
        assert record["isDefault"] is False

    def test_short_row(self):
        """Rows shorter than the header read missing cells as blank."""
        record = from_row(["7", "2024-11"], ORDER_COLUMNS)
        assert record["id"] == 7
        assert record["client"] == ""


class TestGoogleSheetsRowStore:
    """Tests for row-store operations on a mocked sheet."""

    async def test_create_order(self, row_store, sheet):
        """Creating appends one raw row."""
        await row_store.create_order(order_record())
        args, kwargs = sheet.append_row.call_args
        assert args[0][0] == "2024110001"
        assert kwargs["value_input_option"] == "RAW"

    async def test_get_orders_filters_by_month(self, row_store, sheet):
        """Listing skips empty rows and filters by month, newest first."""
        sheet.get_all_values.return_value = [
            ORDER_HEADER,
            to_row(order_record(), ORDER_COLUMNS),
            [],
            to_row(order_record(id=2024100001, monthKey="2024-10", date="2024-10-01"), ORDER_COLUMNS),
            to_row(order_record(id=2024110002, date="2024-11-20"), ORDER_COLUMNS),
        ]

        november = await row_store.get_orders("2024-11")

        assert [o["id"] for o in november] == [2024110002, 2024110001]
        assert len(await row_store.get_orders()) == 3

    async def test_update_writes_matching_row(self, row_store, sheet):
        """Updating finds the row by id and overwrites it."""
        sheet.get_all_values.return_value = [ORDER_HEADER, ["2024110009"], ["2024110001"]]

        await row_store.update_order(2024110001, order_record(sellEUR=250.0))

        kwargs = sheet.update.call_args.kwargs
        assert kwargs["range_name"] == "A3"
        assert kwargs["values"][0][ORDER_HEADER.index("sell_eur")] == "250.0"

    async def test_update_missing_row(self, row_store):
        """Updating an unknown id raises RemoteNotFoundError."""
        with pytest.raises(RemoteNotFoundError):
            await row_store.update_order(1, order_record())

    async def test_delete(self, row_store, sheet):
        """Deleting removes the matching row; an unknown id returns False."""
        sheet.get_all_values.return_value = [ORDER_HEADER, ["2024110001"]]
        assert await row_store.delete_order(2024110001) is True
        sheet.delete_rows.assert_called_once_with(2)
        assert await row_store.delete_order(5) is False

    async def test_settings_round_trip(self, row_store, sheet):
        """Settings are one JSON row; saving creates it when absent."""
        sheet.get_all_values.return_value = [["id", "data_json"]]
        await row_store.save_settings({"usdRate": 1.71})
        row = sheet.append_row.call_args.args[0]
        assert row == ["1", '{"usdRate": 1.71}']

        sheet.get_all_values.return_value = [["id", "data_json"], row]
        assert await row_store.get_settings() == {"usdRate": 1.71}

    async def test_errors_wrapped(self, row_store, sheet):
        """Sheet failures surface as RemoteStoreError."""
        sheet.append_row.side_effect = RuntimeError("quota")
        with pytest.raises(RemoteStoreError):
            await row_store.create_client({"id": "client_1", "name": "A"})

    async def test_health_check(self, row_store):
        """A reachable spreadsheet is healthy; a connection error is not."""
        assert await row_store.health_check() is True
        row_store._client.get_spreadsheet.side_effect = RemoteStoreError("offline")
        assert await row_store.health_check() is False


class TestRemoteMirror:
    """Tests for pushing local state to the remote store."""

    @pytest.fixture
    def remote(self):
        remote = AsyncMock()
        remote.get_orders.return_value = [{"id": 2024110001}, {"id": 2024090001}]
        remote.get_clients.return_value = []
        remote.get_expenses.return_value = []
        remote.get_inventory.return_value = [{"id": "box_1"}]
        return remote

    async def test_push_all_local_wins(self, hub, bus, orders, clients, remote, sample_order):
        """Local rows are created or overwritten; remote-only rows are deleted."""
        await orders.create(sample_order)
        await orders.create({**sample_order, "date": "2024-11-16"})
        await clients.create({"name": "Иван"})

        summary = await RemoteMirror(hub, remote, bus).push_all()

        assert summary["orders"] == {"created": 1, "updated": 1, "deleted": 1}
        assert summary["clients"] == {"created": 1, "updated": 0, "deleted": 0}
        assert summary["inventory"] == {"created": 0, "updated": 0, "deleted": 1}
        assert summary["settings"] is True
        remote.delete_order.assert_awaited_once_with("2024090001")
        created = remote.create_order.await_args.args[0]
        assert created["monthKey"] == "2024-11"

    async def test_push_failure_announced(self, hub, bus, remote, notifications):
        """A remote failure is announced once and re-raised."""
        remote.save_settings.side_effect = RemoteStoreError("offline")
        with pytest.raises(RemoteStoreError):
            await RemoteMirror(hub, remote, bus).push_all()
        assert len(notifications) == 1
        assert notifications[0]["source"] == "remote"
