# blueprints/notifications/services.py
"""Outbound session events.

Scheduling code publishes events here and never talks to e-mail/push/SMS
delivery directly. Handlers are plain callables subscribed per event type
(or ``"*"`` for all events). Delivery is fire-and-forget: a failing handler
is logged and reported through the return value of :func:`publish`, the
triggering mutation is never rolled back.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from flask import current_app, has_app_context

log = logging.getLogger(__name__)

EXTENSION_KEY = "session_events"


class SessionEventTypes:
    SCHEDULED = "session.scheduled"
    STARTING = "session.starting"
    CANCELED = "session.canceled"


@dataclass(frozen=True)
class SessionEvent:
    event_type: str
    session_id: int
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "session_id": self.session_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


EventHandler = Callable[[SessionEvent], None]


class SessionEventBus:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = {}

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: str) -> List[EventHandler]:
        return list(self._handlers.get(event_type, [])) + list(self._handlers.get("*", []))

    def publish(self, event: SessionEvent) -> bool:
        delivered = True
        for handler in self.handlers_for(event.event_type):
            try:
                handler(event)
            except Exception:
                delivered = False
                log.exception(
                    "session event handler failed",
                    extra={"event": "notification_failed", "event_type": event.event_type,
                           "session_id": event.session_id},
                )
        return delivered


def log_event(event: SessionEvent) -> None:
    # доставкой (e-mail/push) занимается внешний сервис, здесь только фиксируем факт
    log.info("session event", extra={"event": "session_event", "event_type": event.event_type,
                                     "session_id": event.session_id})


def init_app(app, bus: Optional[SessionEventBus] = None) -> SessionEventBus:
    bus = bus or SessionEventBus()
    bus.subscribe("*", log_event)
    app.extensions[EXTENSION_KEY] = bus
    return bus


def get_bus() -> SessionEventBus:
    if has_app_context():
        bus = current_app.extensions.get(EXTENSION_KEY)
        if bus is not None:
            return bus
    return _fallback_bus


def publish(event_type: str, session_id: int, bus: Optional[SessionEventBus] = None, **payload) -> bool:
    """Опубликовать событие; ошибки только логируются. True, если все обработчики отработали."""
    event = SessionEvent(event_type=event_type, session_id=session_id, payload=payload)
    try:
        return (bus or get_bus()).publish(event)
    except Exception:
        log.exception("session event dispatch failed",
                      extra={"event": "notification_failed", "event_type": event_type, "session_id": session_id})
        return False


_fallback_bus = SessionEventBus()
_fallback_bus.subscribe("*", log_event)
