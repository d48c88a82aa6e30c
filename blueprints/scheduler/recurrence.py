# blueprints/scheduler/recurrence.py
"""Expansion of recurrence rules into concrete dates.

Everything here is pure: no database, no clock. ``rule`` is anything with the
attributes of :class:`models.RecurrenceRule` (the ORM row itself in
production, a simple namespace in unit tests).

Windows are half-open ``[window_start, window_end)``; ``rule.end_date`` is
inclusive.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from blueprints.core.errors import ValidationError
from blueprints.core.filters import WEEKDAYS
from models import RuleType

WEEKDAY_INDEX = {name: i for i, name in enumerate(WEEKDAYS)}
BIWEEKLY_INTERVAL = 2


@dataclass(frozen=True)
class SessionDraft:
    session_date: date
    scheduled_start: datetime
    scheduled_end: datetime


def daterange(d_from: date, d_to: date) -> Iterator[date]:
    """Дни от d_from включительно до d_to не включительно."""
    d = d_from
    while d < d_to:
        yield d
        d += timedelta(days=1)


def normalize_by_day(values: Optional[Iterable[str]]) -> List[str]:
    out: List[str] = []
    for raw in values or []:
        name = str(raw).strip().lower()
        if name not in WEEKDAY_INDEX:
            raise ValidationError(f"unknown weekday: {raw}", code="invalid_by_day")
        if name not in out:
            out.append(name)
    return sorted(out, key=WEEKDAY_INDEX.__getitem__)


def parse_custom_dates(values: Optional[Iterable]) -> List[date]:
    out = set()
    for raw in values or []:
        if isinstance(raw, datetime):
            out.add(raw.date())
        elif isinstance(raw, date):
            out.add(raw)
        else:
            try:
                out.add(date.fromisoformat(str(raw)))
            except ValueError:
                raise ValidationError(f"bad custom date: {raw}", code="invalid_custom_dates") from None
    return sorted(out)


def validate_rule(*, rule_type, interval: int | None, by_day, custom_dates,
                  start_date: date, end_date: date | None, duration_minutes: int) -> dict:
    """Проверить поля правила и вернуть нормализованные значения.

    Некорректное правило отклоняется при создании и никогда не «чинится» молча.
    """
    try:
        rtype = RuleType(rule_type)
    except ValueError:
        raise ValidationError(f"unknown rule type: {rule_type}", code="invalid_rule_type") from None

    if interval is None:
        interval = 1
    if interval < 1:
        raise ValidationError("interval must be >= 1", code="invalid_interval")
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError("duration_minutes must be > 0", code="invalid_duration")
    if end_date is not None and end_date < start_date:
        raise ValidationError("end_date must be >= start_date", code="invalid_date_range")

    days = normalize_by_day(by_day)
    if rtype in (RuleType.WEEKLY, RuleType.BIWEEKLY) and not days:
        raise ValidationError(f"by_day is required for {rtype.value} rules", code="by_day_required")

    dates = parse_custom_dates(custom_dates)
    if rtype == RuleType.CUSTOM and not dates:
        raise ValidationError("custom_dates is required for custom rules", code="custom_dates_required")

    return {
        "rule_type": rtype,
        "interval": BIWEEKLY_INTERVAL if rtype == RuleType.BIWEEKLY else interval,
        "by_day": days or None,
        "custom_dates": [d.isoformat() for d in dates] or None,
    }


def day_matcher(rule) -> Callable[[date], bool]:
    """Предикат «день под правило» с заранее разобранными by_day и custom_dates."""
    rtype = RuleType(rule.rule_type)
    interval = rule.interval or 1
    weekdays = {WEEKDAY_INDEX[d] for d in normalize_by_day(rule.by_day)}
    custom = set(parse_custom_dates(rule.custom_dates)) if rtype == RuleType.CUSTOM else set()

    def check(day: date) -> bool:
        if day < rule.start_date:
            return False
        if rule.end_date is not None and day > rule.end_date:
            return False
        days_since_start = (day - rule.start_date).days
        weeks_since_start = days_since_start // 7
        if rtype == RuleType.DAILY:
            return days_since_start % interval == 0
        if rtype == RuleType.WEEKLY:
            return day.weekday() in weekdays and weeks_since_start % interval == 0
        if rtype == RuleType.BIWEEKLY:
            return day.weekday() in weekdays and weeks_since_start % BIWEEKLY_INTERVAL == 0
        if rtype == RuleType.CUSTOM:
            return day in custom
        return False

    return check


def matches(rule, day: date) -> bool:
    """Попадает ли день под правило (без учёта окна и «прошлого»)."""
    return day_matcher(rule)(day)


def occurrence_bounds(rule, day: date) -> tuple[datetime, datetime]:
    start_t: time = rule.start_time
    start = datetime.combine(day, start_t)
    return start, start + timedelta(minutes=rule.duration_minutes)


def expand(rule, window_start: date, window_end: date,
           existing_dates: Sequence[date] | set = (), now: datetime | None = None) -> List[SessionDraft]:
    """Развернуть правило в черновики сессий на окне [window_start, window_end).

    Пропускаются дни, уже имеющие экземпляр, и всё, что начинается не позже ``now``.
    Пустое окно даёт пустой список, без исключений.
    """
    lo = max(rule.start_date, window_start)
    hi = window_end
    if rule.end_date is not None:
        hi = min(hi, rule.end_date + timedelta(days=1))

    taken = set(existing_dates)
    is_match = day_matcher(rule)
    drafts: List[SessionDraft] = []
    for day in daterange(lo, hi):
        if day in taken or not is_match(day):
            continue
        start, end = occurrence_bounds(rule, day)
        if now is not None and start <= now:
            continue  # прошлое не догенерируем
        drafts.append(SessionDraft(session_date=day, scheduled_start=start, scheduled_end=end))
    return drafts
