# blueprints/access/policy.py
"""Time-window policy derived from a school's daily timetable.

A school-level activation only allows online classes in the margins around
the in-person school day: ``margin`` minutes before the first class and
``margin`` minutes after the last one. A day without classes is unrestricted.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Callable, List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy import select

from extensions import db
from models import TimetableSlot
from blueprints.core.filters import iso

DEFAULT_MARGIN_MINUTES = 120

Slot = Tuple[time, time]
SlotLoader = Callable[[int, int], List[Slot]]


@dataclass(frozen=True)
class WindowDecision:
    in_window: bool
    reason: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    next_available_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "in_window": self.in_window,
            "reason": self.reason,
            "window_start": iso(self.window_start),
            "window_end": iso(self.window_end),
            "next_available_at": iso(self.next_available_at),
        }


def get_active_slots(school_id: int, day_of_week: int) -> List[Slot]:
    """Активные уроки школы в день недели (0=Mon..6=Sun), по времени начала."""
    rows = db.session.execute(
        select(TimetableSlot.start_time, TimetableSlot.end_time)
        .where(TimetableSlot.school_id == school_id,
               TimetableSlot.day_of_week == day_of_week,
               TimetableSlot.is_active.is_(True))
        .order_by(TimetableSlot.start_time.asc())
    ).all()
    return [(r[0], r[1]) for r in rows]


def _margin() -> timedelta:
    minutes = DEFAULT_MARGIN_MINUTES
    if has_app_context():
        minutes = int(current_app.config.get("ONLINE_CLASS_WINDOW_MARGIN_MINUTES", DEFAULT_MARGIN_MINUTES))
    return timedelta(minutes=minutes)


def _school_day(slots: List[Slot], day) -> Tuple[datetime, datetime]:
    first = min(s[0] for s in slots)
    last = max(s[1] for s in slots)
    return datetime.combine(day, first), datetime.combine(day, last)


def classify(school_id: int, now: datetime, load_slots: SlotLoader = get_active_slots,
             margin: timedelta | None = None) -> WindowDecision:
    margin = margin if margin is not None else _margin()
    today = now.date()
    slots = load_slots(school_id, today.weekday())
    if not slots:
        return WindowDecision(in_window=True, reason="no_classes_scheduled")

    first_start, last_end = _school_day(slots, today)
    morning_start = first_start - margin
    evening_end = last_end + margin

    if morning_start <= now < first_start:
        return WindowDecision(True, "before_school_hours", window_start=morning_start, window_end=first_start)
    if last_end <= now <= evening_end:
        return WindowDecision(True, "after_school_hours", window_start=last_end, window_end=evening_end)
    if first_start <= now < last_end:
        return WindowDecision(False, "during_school_hours", next_available_at=last_end)

    if now < morning_start:
        next_at = morning_start
    else:
        next_at = _next_day_opening(school_id, today + timedelta(days=1), load_slots, margin)
    return WindowDecision(False, "outside_allowed_windows", next_available_at=next_at)


def _next_day_opening(school_id: int, day, load_slots: SlotLoader, margin: timedelta) -> datetime:
    # завтра без уроков: доступ с полуночи, иначе с начала утреннего окна
    slots = load_slots(school_id, day.weekday())
    if not slots:
        return datetime.combine(day, time(0, 0))
    first_start, _ = _school_day(slots, day)
    return first_start - margin
