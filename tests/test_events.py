"""Tests for the in-process event bus."""

from __future__ import annotations

import pytest

from mpr_volume.domain.events import VOLUME_LOADED, WINDOW_CHANGED, Event, EventBus


class TestEventBus:
    """Subscribe, publish and unsubscribe."""

    def test_publish_string_form(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(VOLUME_LOADED, received.append)
        bus.publish(VOLUME_LOADED, {"path": "scan.nii"})
        assert received[0].type == VOLUME_LOADED
        assert received[0].payload == {"path": "scan.nii"}

    def test_handlers_called_in_order(self):
        bus = EventBus()
        calls: list[str] = []
        bus.subscribe(WINDOW_CHANGED, lambda e: calls.append("a"))
        bus.subscribe(WINDOW_CHANGED, lambda e: calls.append("b"))
        bus.publish(Event(type=WINDOW_CHANGED))
        assert calls == ["a", "b"]

    def test_other_types_not_delivered(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(VOLUME_LOADED, received.append)
        bus.publish(WINDOW_CHANGED)
        assert received == []

    def test_unsubscribe(self):
        bus = EventBus()
        received: list[Event] = []
        bus.subscribe(VOLUME_LOADED, received.append)
        bus.unsubscribe(VOLUME_LOADED, received.append)
        bus.unsubscribe("unknown", received.append)
        bus.publish(VOLUME_LOADED)
        assert received == []
        assert bus.handler_count(VOLUME_LOADED) == 0
        assert bus.event_types == []

    def test_handler_error_propagates(self):
        bus = EventBus()

        def _boom(event: Event) -> None:
            raise RuntimeError("handler failed")

        bus.subscribe(VOLUME_LOADED, _boom)
        with pytest.raises(RuntimeError, match="handler failed"):
            bus.publish(VOLUME_LOADED)

    def test_clear(self):
        bus = EventBus()
        bus.subscribe(VOLUME_LOADED, lambda e: None)
        bus.clear()
        assert bus.handler_count(VOLUME_LOADED) == 0
