"""Tests for the event bus."""

from ordersystem.core.event_bus import EventBus


class TestEventBus:
    """Tests for synchronous publish/subscribe."""

    def test_delivery_in_registration_order(self):
        """Subscribers are called in the order they subscribed."""
        bus = EventBus()
        calls = []
        bus.on("order:created", lambda e: calls.append("first"))
        bus.on("order:created", lambda e: calls.append("second"))

        bus.emit("order:created", {"id": 1})

        assert calls == ["first", "second"]

    def test_wildcards(self):
        """`order:*` matches every order topic; `*` matches everything."""
        bus = EventBus()
        orders, everything = [], []
        bus.on("order:*", lambda e: orders.append(e.topic))
        bus.on("*", lambda e: everything.append(e.topic))

        bus.emit("order:updated")
        bus.emit("client:created")

        assert orders == ["order:updated"]
        assert everything == ["order:updated", "client:created"]

    def test_failing_subscriber_does_not_block_others(self):
        """A handler that raises is skipped; later handlers still run."""
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.on("expense:created", broken)
        bus.on("expense:created", lambda e: received.append(e.payload))

        bus.emit("expense:created", {"amount": 10})

        assert received == [{"amount": 10}]

    def test_unsubscribe(self):
        """The callable returned by `on` removes the subscription."""
        bus = EventBus()
        calls = []
        unsubscribe = bus.on("x", calls.append)
        unsubscribe()
        unsubscribe()

        bus.emit("x")

        assert calls == []
        assert bus.listener_count() == 0

    def test_once(self):
        """A once-subscription sees only the next event."""
        bus = EventBus()
        calls = []
        bus.once("month:changed", lambda e: calls.append(e.payload["monthKey"]))

        bus.emit("month:changed", {"monthKey": "2024-11"})
        bus.emit("month:changed", {"monthKey": "2024-12"})

        assert calls == ["2024-11"]

    def test_off_removes_all_handlers_of_a_pattern(self):
        """off(pattern) drops every handler of that pattern."""
        bus = EventBus()
        bus.on("a", lambda e: None)
        bus.on("a", lambda e: None)
        bus.on("b", lambda e: None)

        bus.off("a")

        assert bus.listener_count("a") == 0
        assert bus.listener_count("b") == 1

    def test_handler_may_subscribe_during_delivery(self):
        """Subscribing from inside a handler does not disturb the current emit."""
        bus = EventBus()
        calls = []
        bus.on("x", lambda e: bus.on("x", lambda e2: calls.append("late")))

        bus.emit("x")
        assert calls == []

        bus.emit("x")
        assert calls == ["late"]

    def test_emit_returns_the_event(self):
        """emit returns the delivered Event."""
        event = EventBus().emit("store:imported", {"orders": 1})
        assert event.topic == "store:imported"
        assert event.payload == {"orders": 1}
