"""Month keys and Bulgarian month names."""

import re
from datetime import date, datetime
from typing import Optional, Union

MONTHS_BG = [
    "Януари", "Февруари", "Март", "Април", "Май", "Юни",
    "Юли", "Август", "Септември", "Октомври", "Ноември", "Декември",
]

MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

DateLike = Union[date, datetime, str]


def parse_date(value: DateLike) -> date:
    """Accept a date, datetime or ISO string (date or timestamp)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("Empty date")
    if len(text) == 10:
        return date.fromisoformat(text)
    return datetime.fromisoformat(text.replace("Z", "+00:00")).date()


def is_month_key(value: object) -> bool:
    return isinstance(value, str) and bool(MONTH_KEY_PATTERN.match(value))


def month_key(value: DateLike) -> str:
    """`YYYY-MM` partition key of a date."""
    d = parse_date(value)
    return f"{d.year:04d}-{d.month:02d}"


def month_name(key: str) -> str:
    """`2024-11` -> `Ноември 2024`."""
    if not is_month_key(key):
        raise ValueError(f"Invalid month key: {key!r}")
    year, month = key.split("-")
    return f"{MONTHS_BG[int(month) - 1]} {year}"


def month_entry(key: str) -> dict:
    return {"key": key, "name": month_name(key)}


def shift_month(key: str, delta: int) -> str:
    year, month = (int(part) for part in key.split("-"))
    index = year * 12 + (month - 1) + delta
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def previous_month(key: str) -> str:
    return shift_month(key, -1)


def last_n_months(n: int, today: Optional[date] = None) -> list[dict]:
    """The last n months ending with the current one, oldest first."""
    current = month_key(today or date.today())
    return [month_entry(shift_month(current, -offset)) for offset in range(n - 1, -1, -1)]
