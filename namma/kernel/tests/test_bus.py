"""EventBus: named, synchronous, in-order dispatch."""

import pytest

from namma.kernel.bus import EventBus


@pytest.fixture
def event_bus():
    return EventBus()


class TestEventBus:
    def test_emit_calls_handlers_in_order(self, event_bus):
        calls = []
        event_bus.on("storage-update", lambda p: calls.append(("first", p)))
        event_bus.on("storage-update", lambda p: calls.append(("second", p)))

        assert event_bus.emit("storage-update", "tasks") == 2
        assert calls == [("first", "tasks"), ("second", "tasks")]

    def test_names_are_independent(self, event_bus):
        calls = []
        event_bus.on("auth-change", calls.append)

        assert event_bus.emit("storage-update", "tasks") == 0
        assert calls == []

    def test_unsubscribe_is_idempotent(self, event_bus):
        calls = []
        off = event_bus.on("x", calls.append)

        off()
        off()
        event_bus.emit("x", 1)

        assert calls == []
        assert event_bus.handler_count("x") == 0

    def test_failing_handler_is_skipped(self, event_bus, caplog):
        calls = []
        event_bus.on("x", lambda p: 1 / 0)
        event_bus.on("x", calls.append)

        event_bus.emit("x", 1)

        assert calls == [1]
        assert "handler for 'x' failed" in caplog.text

    def test_handler_added_during_emit_waits_for_next_round(self, event_bus):
        calls = []

        def add_another(p):
            calls.append("outer")
            event_bus.on("x", lambda q: calls.append("inner"))

        event_bus.on("x", add_another)
        event_bus.emit("x")

        assert calls == ["outer"]

    def test_clear(self, event_bus):
        event_bus.on("x", print)
        event_bus.clear()
        assert event_bus.handler_count("x") == 0
