"""Core runtime: event bus, state hub and undo/redo history."""

from ordersystem.core.event_bus import EventBus
from ordersystem.core.history import Command, CommandStack
from ordersystem.core.state import (
    STATE_KEYS,
    BusyError,
    StateHub,
    normalize_months,
)

__all__ = [
    "EventBus",
    "Command",
    "CommandStack",
    "STATE_KEYS",
    "BusyError",
    "StateHub",
    "normalize_months",
]
