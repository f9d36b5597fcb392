"""Optional remote row-store (Google Sheets) and the mirror that feeds it."""

from ordersystem.services.remote.google_sheets import GoogleSheetsClient, GoogleSheetsRowStore
from ordersystem.services.remote.interface import (
    RemoteConnectionError,
    RemoteNotFoundError,
    RemoteStoreError,
    RowStoreInterface,
)
from ordersystem.services.remote.mirror import RemoteMirror

__all__ = [
    "RowStoreInterface",
    "GoogleSheetsClient",
    "GoogleSheetsRowStore",
    "RemoteMirror",
    "RemoteStoreError",
    "RemoteNotFoundError",
    "RemoteConnectionError",
]
