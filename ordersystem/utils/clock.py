"""
Injected time source.

Everything that stamps or compares wall-clock time (save timestamps,
backup keys, export reminders, the currency cutover) asks a Clock
instead of calling datetime.now() directly.
"""

from datetime import datetime, timedelta
from typing import Optional, Protocol


class Clock(Protocol):
    """Anything that can tell the current local time."""

    def now(self) -> datetime:
        ...

    def now_ms(self) -> int:
        ...


class SystemClock:
    """Wall clock in naive local time."""

    def now(self) -> datetime:
        return datetime.now()

    def now_ms(self) -> int:
        return int(datetime.now().timestamp() * 1000)


class FixedClock:
    """
    Manually driven clock.

    Optionally auto-advances by `step` on every read so that consecutive
    saves get distinct millisecond timestamps.
    """

    def __init__(
        self,
        start: datetime,
        step: Optional[timedelta] = None,
    ):
        self._current = start
        self._step = step

    def now(self) -> datetime:
        current = self._current
        if self._step:
            self._current = self._current + self._step
        return current

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)

    def set(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, delta: timedelta) -> None:
        self._current = self._current + delta
