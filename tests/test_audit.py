"""Tests for the audit logger."""

from unittest.mock import MagicMock
from uuid import UUID

from structlog.testing import capture_logs

from ordersystem.audit import AuditLogger, create_correlation_id
from ordersystem.core.event_bus import EventBus
from ordersystem.models.events import NotificationLevel, Topics, notification


class TestAuditLogger:
    """Tests for logging every bus event."""

    def test_logs_every_event(self):
        """Each emitted event becomes one audit line with the correlation id."""
        bus = EventBus()
        with capture_logs() as logs:
            audit = AuditLogger(bus, correlation_id=UUID(int=1))
            bus.emit(Topics.ORDER_CREATED, {"order": {"id": 2024110001}})
            bus.emit(Topics.CLIENT_DELETED, {"clientId": "client_1"})

        audit_lines = [line for line in logs if line["event"] == "audit_event"]
        assert [line["topic"] for line in audit_lines] == ["order:created", "client:deleted"]
        assert audit.logged == 2

    def test_notification_level_is_log_level(self):
        """Notifications are logged at their own severity."""
        bus = EventBus()
        with capture_logs() as logs:
            AuditLogger(bus)
            bus.emit(Topics.NOTIFICATION_SHOW, notification("disk full", NotificationLevel.ERROR))
            bus.emit(Topics.NOTIFICATION_SHOW, notification("export soon", NotificationLevel.WARNING))
            bus.emit(Topics.NOTIFICATION_SHOW, notification("saved", NotificationLevel.SUCCESS))

        assert [line["log_level"] for line in logs] == ["error", "warning", "info"]

    def test_large_fields_omitted(self):
        """Photos and before/after snapshots stay out of the log."""
        bus = EventBus()
        with capture_logs() as logs:
            AuditLogger(bus)
            bus.emit(Topics.HISTORY_UNDONE, {"label": "x", "before": {"big": 1}, "imageData": "data:..."})

        assert logs[0]["payload"] == {"label": "x"}

    def test_failure_returns_false(self):
        """A logger failure is reported, not raised."""
        bus = EventBus()
        audit = AuditLogger(bus)
        audit._logger = MagicMock()
        audit._logger.info.side_effect = RuntimeError("closed")

        event = bus.emit(Topics.ORDER_DELETED, {"orderId": 1})

        assert audit.log(event) is False
        audit._logger.error.assert_called_with("audit_log_failed", error="closed", topic="order:deleted")

    def test_close_unsubscribes(self):
        """After close no further events are logged."""
        bus = EventBus()
        audit = AuditLogger(bus)
        audit.close()
        audit.close()
        bus.emit(Topics.ORDER_CREATED)
        assert audit.logged == 0

    def test_correlation_ids_unique(self):
        """Every session gets its own correlation id."""
        assert create_correlation_id() != create_correlation_id()
