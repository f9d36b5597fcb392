"""Small shared helpers: clock and month keys."""

from ordersystem.utils.clock import Clock, FixedClock, SystemClock
from ordersystem.utils.dates import (
    MONTHS_BG,
    is_month_key,
    last_n_months,
    month_entry,
    month_key,
    month_name,
    parse_date,
    previous_month,
    shift_month,
)

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "MONTHS_BG",
    "is_month_key",
    "last_n_months",
    "month_entry",
    "month_key",
    "month_name",
    "parse_date",
    "previous_month",
    "shift_month",
]
