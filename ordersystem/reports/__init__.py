"""Derived profit reports."""

from ordersystem.reports.engine import (
    INVALIDATING_TOPICS,
    TREND_DOWN,
    TREND_FLAT,
    TREND_UP,
    InvalidationSet,
    ReportError,
    ReportsEngine,
)

__all__ = [
    "INVALIDATING_TOPICS",
    "TREND_DOWN",
    "TREND_FLAT",
    "TREND_UP",
    "InvalidationSet",
    "ReportError",
    "ReportsEngine",
]
