"""
Event Models

Every notification crossing the event bus is wrapped in an Event so the
audit logger can write it out as one structured line.

DESIGN DECISION: Payloads stay plain JSON-compatible dicts. Subscribers
receive committed data, never live references into the state hub.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class Topics:
    """Event topic names."""

    ORDER_CREATED = "order:created"
    ORDER_UPDATED = "order:updated"
    ORDER_DELETED = "order:deleted"

    CLIENT_CREATED = "client:created"
    CLIENT_UPDATED = "client:updated"
    CLIENT_DELETED = "client:deleted"

    EXPENSE_CREATED = "expense:created"
    EXPENSE_UPDATED = "expense:updated"
    EXPENSE_DELETED = "expense:deleted"
    EXPENSES_INITIALIZED = "expense:initialized"

    INVENTORY_CREATED = "inventory:created"
    INVENTORY_UPDATED = "inventory:updated"
    INVENTORY_DELETED = "inventory:deleted"
    INVENTORY_USED = "inventory:used"

    SETTINGS_UPDATED = "settings:updated"
    MONTH_CHANGED = "month:changed"

    ROUTE_CHANGE = "route:change"
    MODAL_OPEN = "modal:open"
    NOTIFICATION_SHOW = "notification:show"

    STORE_IMPORTED = "store:imported"
    HISTORY_UNDONE = "history:undone"
    HISTORY_REDONE = "history:redone"

    @staticmethod
    def state_changed(key: str) -> str:
        return f"state:{key}:changed"


class NotificationLevel(str, Enum):
    """Level of a user-facing notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Event(BaseModel):
    """A single bus event."""

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now,
        description="When the event was emitted (local time)"
    )
    topic: str = Field(..., min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "topic": self.topic,
            "payload": self.payload,
        }


def notification(message: str, level: NotificationLevel = NotificationLevel.INFO, **extra: Any) -> dict:
    """Payload of a `notification:show` event."""
    return {"message": message, "level": level.value, **extra}
