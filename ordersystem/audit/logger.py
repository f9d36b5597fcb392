"""
Audit Logger

DESIGN DECISION: Every event crossing the bus is logged.
This provides:
1. Traceability of every mutation, undo and import
2. Debugging capability when a report looks wrong
3. A record of the notifications the user was shown

The audit logger:
- Subscribes to every topic on the event bus
- Gracefully handles failures (never breaks delivery to other subscribers)
- Tags every line with a session correlation ID
"""

import logging
import sys
from typing import Callable, Optional
from uuid import UUID, uuid4

import structlog

from ordersystem.core.event_bus import EventBus
from ordersystem.models.events import Event, NotificationLevel, Topics

# Payload fields too large to be worth a log line
OMITTED_FIELDS = ("imageData", "before", "after")


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog for the process.

    JSON lines by default; `json_output=False` renders for a console.
    """
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    One is created per application session.
    """
    return uuid4()


class AuditLogger:
    """
    Writes every bus event to the structured log.

    Notifications are logged at their own level; everything else at info.
    """

    def __init__(self, bus: EventBus, correlation_id: Optional[UUID] = None):
        self.correlation_id = correlation_id or create_correlation_id()
        self._logger = structlog.get_logger(__name__).bind(correlation_id=str(self.correlation_id))
        self._unsubscribe: Optional[Callable[[], None]] = bus.on("*", self.log)
        self.logged = 0

    def log(self, event: Event) -> bool:
        """
        Log an audit event.

        Returns False if the event could not be written.
        """
        try:
            log_dict = event.to_log_dict()
            payload = log_dict.pop("payload")
            log_dict["payload"] = {k: v for k, v in payload.items() if k not in OMITTED_FIELDS}

            level = self._severity(event)
            if level == NotificationLevel.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif level == NotificationLevel.WARNING:
                self._logger.warning("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception as e:
            # Log failure but don't raise
            self._logger.error("audit_log_failed", error=str(e), topic=event.topic)
            return False

        self.logged += 1
        return True

    @staticmethod
    def _severity(event: Event) -> NotificationLevel:
        if event.topic != Topics.NOTIFICATION_SHOW:
            return NotificationLevel.INFO
        try:
            return NotificationLevel(event.payload.get("level", NotificationLevel.INFO.value))
        except ValueError:
            return NotificationLevel.INFO

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
