"""
Google Sheets Row-Store

DESIGN DECISION: Google Sheets is used as the remote row-store because:
1. The owner can look at orders and expenses directly in a spreadsheet
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (one small shop is fine)
- No transactions; each call touches one row
- Limited query capabilities (we filter in Python)

Every entity lives in its own worksheet, one record per row, with
snake_case column headers (`month_key`, `cost_usd`, `is_default`, ...).
Photos are mirrored only when they are URLs: a data URL does not fit in a
spreadsheet cell.
"""

import json
from typing import Any, Optional

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ordersystem.config.settings import RemoteStoreSettings
from ordersystem.services.remote.interface import (
    RecordId,
    RemoteConnectionError,
    RemoteNotFoundError,
    RemoteStoreError,
    RowStoreInterface,
)

logger = structlog.get_logger(__name__)


# (column, record field, kind)
ORDER_COLUMNS = [
    ("id", "id", "id"),
    ("month_key", "monthKey", "str"),
    ("date", "date", "str"),
    ("client", "client", "str"),
    ("phone", "phone", "str"),
    ("origin", "origin", "str"),
    ("vendor", "vendor", "str"),
    ("model", "model", "str"),
    ("cost_usd", "costUSD", "float"),
    ("shipping_usd", "shippingUSD", "float"),
    ("rate", "rate", "float"),
    ("extras_eur", "extrasEUR", "float"),
    ("sell_eur", "sellEUR", "float"),
    ("status", "status", "str"),
    ("full_set", "fullSet", "bool"),
    ("notes", "notes", "str"),
    ("image_url", "imageData", "url"),
]

CLIENT_COLUMNS = [
    ("id", "id", "id"),
    ("name", "name", "str"),
    ("phone", "phone", "str"),
    ("email", "email", "str"),
    ("address", "address", "str"),
    ("preferred_source", "preferredSource", "str"),
    ("notes", "notes", "str"),
    ("created_date", "createdDate", "str"),
]

EXPENSE_COLUMNS = [
    ("id", "id", "id"),
    ("month_key", "monthKey", "str"),
    ("name", "name", "str"),
    ("amount_eur", "amount", "float"),
    ("currency", "currency", "str"),
    ("amount_bgn", "amountBGN", "float"),
    ("note", "note", "str"),
    ("is_default", "isDefault", "bool"),
]

INVENTORY_COLUMNS = [
    ("id", "id", "id"),
    ("brand", "brand", "str"),
    ("type", "type", "str"),
    ("purchase_price", "purchasePrice", "float"),
    ("sell_price", "sellPrice", "float"),
    ("stock", "stock", "int"),
    ("ordered", "ordered", "int"),
]

SETTINGS_COLUMNS = [
    ("id", "id", "id"),
    ("data_json", "data", "json"),
]

SETTINGS_ROW_ID = "1"

RETRYABLE = (gspread.exceptions.APIError,)


def to_row(record: dict[str, Any], columns: list[tuple[str, str, str]]) -> list[str]:
    """Record -> list of cell strings in column order."""
    row = []
    for _, field, kind in columns:
        value = record.get(field)
        if value is None:
            row.append("")
        elif kind == "bool":
            row.append("TRUE" if value else "FALSE")
        elif kind == "json":
            row.append(json.dumps(value, ensure_ascii=False, sort_keys=True))
        elif kind == "url":
            row.append(value if str(value).startswith(("http://", "https://")) else "")
        else:
            row.append(str(value))
    return row


def from_row(row: list[str], columns: list[tuple[str, str, str]]) -> dict[str, Any]:
    """List of cell strings -> record. Blank numeric cells are left out."""
    def safe_get(index: int) -> str:
        try:
            return row[index] or ""
        except IndexError:
            return ""

    record: dict[str, Any] = {}
    for index, (_, field, kind) in enumerate(columns):
        cell = safe_get(index)
        if kind == "id":
            record[field] = int(cell) if cell.isdigit() else cell
        elif kind == "bool":
            record[field] = cell.strip().upper() == "TRUE"
        elif kind == "json":
            record[field] = json.loads(cell) if cell else None
        elif kind in ("float", "int"):
            if cell == "":
                continue
            record[field] = int(float(cell)) if kind == "int" else float(cell)
        elif kind == "url":
            record[field] = cell or None
        else:
            record[field] = cell
    return record


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self, settings: Optional[RemoteStoreSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or RemoteStoreSettings()

    @property
    def settings(self) -> RemoteStoreSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise RemoteConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise RemoteConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(self._settings.spreadsheet_id)
            except gspread.SpreadsheetNotFound:
                raise RemoteConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[tuple[str, str, str]]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row([column for column, _, _ in columns])
            logger.info("sheet_created", title=title)
        return sheet


class GoogleSheetsRowStore(RowStoreInterface):
    """
    Google Sheets implementation of the remote row-store.

    Sheet calls are retried (3 attempts, exponential wait) on API errors;
    the last error is re-raised as RemoteStoreError.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        self._tables = {
            "orders": (settings.orders_sheet_name, ORDER_COLUMNS),
            "clients": (settings.clients_sheet_name, CLIENT_COLUMNS),
            "expenses": (settings.expenses_sheet_name, EXPENSE_COLUMNS),
            "inventory": (settings.inventory_sheet_name, INVENTORY_COLUMNS),
            "settings": (settings.settings_sheet_name, SETTINGS_COLUMNS),
        }

    # -------------------------------------------------------------------------
    # Generic row operations
    # -------------------------------------------------------------------------

    def _sheet(self, table: str) -> tuple[gspread.Worksheet, list]:
        title, columns = self._tables[table]
        return self._client.get_sheet(title, columns), columns

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE),
        reraise=True,
    )
    def _rows(self, table: str) -> list[list[str]]:
        sheet, _ = self._sheet(table)
        return sheet.get_all_values()[1:]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE),
        reraise=True,
    )
    def _append(self, table: str, record: dict[str, Any]) -> None:
        sheet, columns = self._sheet(table)
        sheet.append_row(to_row(record, columns), value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE),
        reraise=True,
    )
    def _find_row(self, table: str, record_id: RecordId) -> Optional[int]:
        """1-based sheet row index of the record, None if absent."""
        sheet, _ = self._sheet(table)
        wanted = str(record_id)
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):  # Row 1 is the header
            if row and row[0] == wanted:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE),
        reraise=True,
    )
    def _write_row(self, table: str, index: int, record: dict[str, Any]) -> None:
        sheet, columns = self._sheet(table)
        sheet.update(range_name=f"A{index}", values=[to_row(record, columns)], value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE),
        reraise=True,
    )
    def _delete_row(self, table: str, index: int) -> None:
        sheet, _ = self._sheet(table)
        sheet.delete_rows(index)

    async def _create(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        try:
            self._append(table, record)
        except Exception as e:
            raise RemoteStoreError(f"Failed to create {table} row: {e}")
        logger.info("remote_row_created", table=table, record_id=record.get("id"))
        return record

    async def _list(self, table: str, month: Optional[str] = None) -> list[dict[str, Any]]:
        try:
            rows = self._rows(table)
        except Exception as e:
            raise RemoteStoreError(f"Failed to list {table}: {e}")

        _, columns = self._tables[table]
        records = []
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                record = from_row(row, columns)
            except (ValueError, json.JSONDecodeError) as e:
                logger.warning("remote_row_malformed", table=table, row_id=row[0], error=str(e))
                continue
            if month and record.get("monthKey") != month:
                continue
            records.append(record)
        return records

    async def _update(self, table: str, record_id: RecordId, record: dict[str, Any]) -> dict[str, Any]:
        try:
            index = self._find_row(table, record_id)
            if index is None:
                raise RemoteNotFoundError(f"{table} row not found: {record_id}")
            self._write_row(table, index, {**record, "id": record_id})
        except RemoteStoreError:
            raise
        except Exception as e:
            raise RemoteStoreError(f"Failed to update {table} row: {e}")
        logger.info("remote_row_updated", table=table, record_id=record_id)
        return record

    async def _delete(self, table: str, record_id: RecordId) -> bool:
        try:
            index = self._find_row(table, record_id)
            if index is None:
                return False
            self._delete_row(table, index)
        except Exception as e:
            raise RemoteStoreError(f"Failed to delete {table} row: {e}")
        logger.info("remote_row_deleted", table=table, record_id=record_id)
        return True

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def create_order(self, order: dict[str, Any]) -> dict[str, Any]:
        return await self._create("orders", order)

    async def get_orders(self, month: Optional[str] = None) -> list[dict[str, Any]]:
        orders = await self._list("orders", month)
        return sorted(orders, key=lambda o: o.get("date") or "", reverse=True)

    async def update_order(self, order_id: RecordId, order: dict[str, Any]) -> dict[str, Any]:
        return await self._update("orders", order_id, order)

    async def delete_order(self, order_id: RecordId) -> bool:
        return await self._delete("orders", order_id)

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    async def create_client(self, client: dict[str, Any]) -> dict[str, Any]:
        return await self._create("clients", client)

    async def get_clients(self) -> list[dict[str, Any]]:
        return await self._list("clients")

    async def update_client(self, client_id: RecordId, client: dict[str, Any]) -> dict[str, Any]:
        return await self._update("clients", client_id, client)

    async def delete_client(self, client_id: RecordId) -> bool:
        return await self._delete("clients", client_id)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def create_expense(self, expense: dict[str, Any]) -> dict[str, Any]:
        return await self._create("expenses", expense)

    async def get_expenses(self, month: Optional[str] = None) -> list[dict[str, Any]]:
        return await self._list("expenses", month)

    async def update_expense(self, expense_id: RecordId, expense: dict[str, Any]) -> dict[str, Any]:
        return await self._update("expenses", expense_id, expense)

    async def delete_expense(self, expense_id: RecordId) -> bool:
        return await self._delete("expenses", expense_id)

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    async def get_inventory(self) -> list[dict[str, Any]]:
        return await self._list("inventory")

    async def create_inventory_item(self, item: dict[str, Any]) -> dict[str, Any]:
        return await self._create("inventory", item)

    async def update_inventory_item(self, item_id: RecordId, item: dict[str, Any]) -> dict[str, Any]:
        return await self._update("inventory", item_id, item)

    async def delete_inventory_item(self, item_id: RecordId) -> bool:
        return await self._delete("inventory", item_id)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    async def get_settings(self) -> Optional[dict[str, Any]]:
        for record in await self._list("settings"):
            if str(record.get("id")) == SETTINGS_ROW_ID:
                return record.get("data")
        return None

    async def save_settings(self, settings: dict[str, Any]) -> dict[str, Any]:
        record = {"id": SETTINGS_ROW_ID, "data": settings}
        try:
            await self._update("settings", SETTINGS_ROW_ID, record)
        except RemoteNotFoundError:
            await self._create("settings", record)
        return settings

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def health_check(self) -> bool:
        try:
            self._client.get_spreadsheet()
            return True
        except (RemoteStoreError, gspread.exceptions.GSpreadException) as e:
            logger.warning("remote_health_check_failed", error=str(e))
            return False
