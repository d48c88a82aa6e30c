from __future__ import annotations
from flask import Flask

from blueprints.notifications import services as events

def test_wildcard_and_typed_handlers():
    bus = events.SessionEventBus()
    seen = []
    bus.subscribe("*", lambda e: seen.append(("any", e.event_type)))
    bus.subscribe(events.SessionEventTypes.CANCELED, lambda e: seen.append(("canceled", e.session_id)))
    assert events.publish(events.SessionEventTypes.CANCELED, 3, bus=bus, school_id=1)
    assert events.publish(events.SessionEventTypes.SCHEDULED, 4, bus=bus)
    assert seen == [("canceled", 3), ("any", "session.canceled"), ("any", "session.scheduled")]

def test_failing_handler_is_logged_not_raised(caplog):
    bus = events.SessionEventBus()
    later = []

    def boom(event):
        raise ConnectionError("push gateway down")

    bus.subscribe(events.SessionEventTypes.STARTING, boom)
    bus.subscribe(events.SessionEventTypes.STARTING, later.append)
    with caplog.at_level("ERROR"):
        ok = events.publish(events.SessionEventTypes.STARTING, 9, bus=bus)
    assert ok is False
    assert len(later) == 1  # остальные обработчики всё равно вызваны
    assert any(getattr(r, "event", None) == "notification_failed" for r in caplog.records)

def test_unsubscribe():
    bus = events.SessionEventBus()
    seen = []
    bus.subscribe("*", seen.append)
    bus.unsubscribe("*", seen.append)
    events.publish(events.SessionEventTypes.SCHEDULED, 1, bus=bus)
    assert seen == []

def test_init_app_installs_bus_per_app():
    app = Flask(__name__)
    bus = events.init_app(app)
    with app.app_context():
        assert events.get_bus() is bus
    assert events.get_bus() is not bus
    event = events.SessionEvent(event_type="session.scheduled", session_id=5, payload={"a": 1})
    assert event.to_dict()["payload"] == {"a": 1}
