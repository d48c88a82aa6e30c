from __future__ import annotations
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app, has_app_context

DEFAULT_TZ = "Africa/Douala"

def tz():
    name = DEFAULT_TZ
    if has_app_context():
        name = current_app.config.get("ONLINE_CLASS_TZ", DEFAULT_TZ)
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return timezone.utc

def local_now() -> datetime:
    """Текущее «настенное» время школы, без tzinfo (так хранится в БД)."""
    return datetime.now(tz()).replace(tzinfo=None)
