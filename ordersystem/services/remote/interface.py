"""
Remote Row-Store Interface

DESIGN DECISION: The remote store is optional and secondary.
The local keyed store is the system of record; a remote row-store only
receives copies. We define the operation set as an abstract interface so
that the Google Sheets implementation can be swapped (or mocked in tests)
without touching the domain modules.

Records cross this interface in their stored (camelCase) form, exactly as
they sit in the state hub. Implementations map them to their own column
names.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

RecordId = Union[int, str]


class RowStoreInterface(ABC):
    """
    Operations a remote row-store must offer.

    Every method may raise RemoteStoreError.
    """

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_order(self, order: dict[str, Any]) -> dict[str, Any]:
        """Insert an order row (the order must carry its id and monthKey)."""
        pass

    @abstractmethod
    async def get_orders(self, month: Optional[str] = None) -> list[dict[str, Any]]:
        """All orders, or the orders of one month."""
        pass

    @abstractmethod
    async def update_order(self, order_id: RecordId, order: dict[str, Any]) -> dict[str, Any]:
        """
        Replace an order row.

        Raises:
            RemoteNotFoundError: If no row has this id
        """
        pass

    @abstractmethod
    async def delete_order(self, order_id: RecordId) -> bool:
        """Delete an order row. Returns False when there was none."""
        pass

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_client(self, client: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get_clients(self) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def update_client(self, client_id: RecordId, client: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def delete_client(self, client_id: RecordId) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create_expense(self, expense: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def get_expenses(self, month: Optional[str] = None) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def update_expense(self, expense_id: RecordId, expense: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def delete_expense(self, expense_id: RecordId) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_inventory(self) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    async def create_inventory_item(self, item: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def update_inventory_item(self, item_id: RecordId, item: dict[str, Any]) -> dict[str, Any]:
        pass

    @abstractmethod
    async def delete_inventory_item(self, item_id: RecordId) -> bool:
        pass

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_settings(self) -> Optional[dict[str, Any]]:
        """The stored settings document, None when never saved."""
        pass

    @abstractmethod
    async def save_settings(self, settings: dict[str, Any]) -> dict[str, Any]:
        pass

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the remote store is reachable."""
        pass


class RemoteStoreError(Exception):
    """Base exception for remote row-store operations."""
    pass


class RemoteNotFoundError(RemoteStoreError):
    """No row with the given id."""
    pass


class RemoteConnectionError(RemoteStoreError):
    """Could not connect to the remote backend."""
    pass
