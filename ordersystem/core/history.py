"""
Command Stack (undo / redo)

Every mutating domain operation records one Command: a forward thunk that
re-applies the change and an inverse thunk that takes it back. Both close
over the StateHub and replace whole keys with before/after snapshots, so
undo followed by redo lands on exactly the state the operation produced.

DESIGN DECISION: Composite operations (an order moving across months,
a month initialized with several default expenses) push a single Command.
One undo reverts the whole user action.

Commands are not persisted; an import clears the stack.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog

from ordersystem.core.event_bus import EventBus
from ordersystem.core.state import StateHub
from ordersystem.models.events import Topics
from ordersystem.utils.clock import Clock, SystemClock

logger = structlog.get_logger(__name__)

DEFAULT_CAPACITY = 100


@dataclass
class Command:
    """One reversible user action."""
    kind: str
    label: str
    forward: Callable[[], None] = field(repr=False)
    inverse: Callable[[], None] = field(repr=False)
    timestamp: datetime = field(default_factory=datetime.now)

    def describe(self) -> dict:
        return {
            "kind": self.kind,
            "label": self.label,
            "timestamp": self.timestamp.isoformat(),
        }


class CommandStack:
    """Bounded undo/redo history."""

    def __init__(
        self,
        hub: StateHub,
        bus: EventBus,
        capacity: int = DEFAULT_CAPACITY,
        clock: Optional[Clock] = None,
    ):
        self._hub = hub
        self._bus = bus
        self._clock = clock or SystemClock()
        self.capacity = capacity
        self._undo: deque[Command] = deque(maxlen=capacity)
        self._redo: deque[Command] = deque(maxlen=capacity)

    def record(
        self,
        kind: str,
        label: str,
        forward: Callable[[], None],
        inverse: Callable[[], None],
    ) -> Command:
        """Build a command stamped with the injected clock and push it."""
        command = Command(kind, label, forward, inverse, timestamp=self._clock.now())
        self.push(command)
        return command

    def push(self, command: Command) -> None:
        """Push onto the undo stack; any redo history is discarded."""
        self._undo.append(command)
        self._redo.clear()

    def undo(self) -> Optional[Command]:
        """
        Revert the most recent command.

        Returns the command, or None when there is nothing to undo.

        Raises:
            BusyError: During an import
            StorageError: If the reverted state cannot be saved (the command stays on top)
        """
        self._hub.ensure_idle("undo")
        if not self._undo:
            return None

        command = self._undo.pop()
        try:
            command.inverse()
        except Exception:
            self._undo.append(command)
            raise

        self._redo.append(command)
        logger.info("history_undone", kind=command.kind, label=command.label)
        self._bus.emit(Topics.HISTORY_UNDONE, command.describe())
        return command

    def redo(self) -> Optional[Command]:
        """
        Re-apply the most recently undone command.

        Returns the command, or None when there is nothing to redo.
        """
        self._hub.ensure_idle("redo")
        if not self._redo:
            return None

        command = self._redo.pop()
        try:
            command.forward()
        except Exception:
            self._redo.append(command)
            raise

        self._undo.append(command)
        logger.info("history_redone", kind=command.kind, label=command.label)
        self._bus.emit(Topics.HISTORY_REDONE, command.describe())
        return command

    def can_undo(self) -> bool:
        return bool(self._undo)

    def can_redo(self) -> bool:
        return bool(self._redo)

    def get_undo_count(self) -> int:
        return len(self._undo)

    def get_redo_count(self) -> int:
        return len(self._redo)

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()

    def describe(self) -> dict:
        """Labels of both stacks, most recent first."""
        return {
            "undo": [c.describe() for c in reversed(self._undo)],
            "redo": [c.describe() for c in reversed(self._redo)],
        }
