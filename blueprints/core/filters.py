from __future__ import annotations
from datetime import date, datetime, time

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

def fmt_time(value: time | None) -> str | None:
    if value is None:
        return None
    return value.strftime("%H:%M")

def iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    return value.isoformat()
