# blueprints/scheduler/services.py
from __future__ import annotations
import logging
import secrets
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from flask import current_app, has_app_context
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from extensions import db
from models import RecurrenceRule, SessionInstance, SessionStatus
from blueprints.core.clock import local_now
from blueprints.core.errors import NotFoundError, ValidationError, InvalidTransitionError
from blueprints.notifications import services as events
from . import recurrence as rec

log = logging.getLogger(__name__)

DEFAULT_WEEKS_AHEAD = 4


def _weeks_ahead_default() -> int:
    if has_app_context():
        return int(current_app.config.get("ONLINE_CLASS_WEEKS_AHEAD", DEFAULT_WEEKS_AHEAD))
    return DEFAULT_WEEKS_AHEAD


def room_name_for(school_id: int, recurrence_id: int | None = None) -> str:
    # непрозрачный идентификатор комнаты, случайная часть 12 байт
    token = secrets.token_urlsafe(12)
    if recurrence_id is not None:
        return f"school-{school_id}-recur-{recurrence_id}-{token}"
    return f"school-{school_id}-{token}"


# ---------- правила ----------
def create_rule(*, school_id: int, teacher_id: int, class_id: int, title: str,
                rule_type: str, start_time: time, duration_minutes: int, start_date: date,
                created_by: int, end_date: date | None = None, interval: int | None = 1,
                by_day: list[str] | None = None, custom_dates: list | None = None,
                subject: str | None = None, description: str | None = None,
                auto_notify: bool = True) -> RecurrenceRule:
    norm = rec.validate_rule(
        rule_type=rule_type, interval=interval, by_day=by_day, custom_dates=custom_dates,
        start_date=start_date, end_date=end_date, duration_minutes=duration_minutes,
    )
    rule = RecurrenceRule(
        school_id=school_id, teacher_id=teacher_id, class_id=class_id,
        subject=subject, title=title, description=description,
        start_time=start_time, duration_minutes=duration_minutes,
        start_date=start_date, end_date=end_date,
        auto_notify=auto_notify, created_by=created_by,
        is_active=True, occurrences_generated=0,
        **norm,
    )
    db.session.add(rule)
    db.session.commit()
    log.info("recurrence rule created", extra={"event": "rule_created", "rule_id": rule.id,
                                               "school_id": school_id})
    return rule


def get_rule(rule_id: int) -> RecurrenceRule:
    rule = db.session.get(RecurrenceRule, rule_id)
    if rule is None:
        raise NotFoundError(f"recurrence {rule_id} not found", code="RULE_NOT_FOUND")
    return rule


def list_rules(school_id: int) -> List[RecurrenceRule]:
    return list(db.session.scalars(
        select(RecurrenceRule)
        .where(RecurrenceRule.school_id == school_id)
        .order_by(RecurrenceRule.created_at.asc(), RecurrenceRule.id.asc())
    ))


def pause_rule(rule_id: int, *, paused_by: int | None = None, reason: str | None = None,
               now: datetime | None = None) -> RecurrenceRule:
    rule = get_rule(rule_id)
    rule.is_active = False
    rule.paused_at = now or local_now()
    rule.paused_by = paused_by
    rule.pause_reason = reason
    db.session.commit()
    log.info("recurrence rule paused", extra={"event": "rule_paused", "rule_id": rule.id})
    return rule


def resume_rule(rule_id: int) -> RecurrenceRule:
    rule = get_rule(rule_id)
    rule.is_active = True
    rule.paused_at = None
    rule.paused_by = None
    rule.pause_reason = None
    db.session.commit()
    log.info("recurrence rule resumed", extra={"event": "rule_resumed", "rule_id": rule.id})
    return rule


def end_rule(rule_id: int, end_date: date) -> RecurrenceRule:
    """Завершить серию: новая end_date + отмена ещё не начавшихся сессий после неё."""
    rule = get_rule(rule_id)
    if end_date < rule.start_date:
        raise ValidationError("end_date must be >= start_date", code="invalid_date_range")
    rule.end_date = end_date
    res = db.session.execute(
        update(SessionInstance)
        .where(SessionInstance.recurrence_id == rule.id,
               SessionInstance.session_date > end_date,
               SessionInstance.status == SessionStatus.SCHEDULED)
        .values(status=SessionStatus.CANCELED)
    )
    db.session.commit()
    log.info("recurrence rule ended", extra={"event": "rule_ended", "rule_id": rule.id,
                                             "count": res.rowcount})
    return rule


# ---------- генерация ----------
def _existing_dates(rule_id: int, d_from: date, d_to: date) -> set[date]:
    # любые статусы: отменённые/прошедшие/идущие тоже не пересоздаём
    return set(db.session.scalars(
        select(SessionInstance.session_date)
        .where(SessionInstance.recurrence_id == rule_id,
               SessionInstance.session_date >= d_from,
               SessionInstance.session_date < d_to)
    ))


def generation_window(rule: RecurrenceRule, weeks_ahead: int, now: datetime) -> tuple[date, date]:
    start = max(rule.start_date, now.date())
    end = start + timedelta(weeks=weeks_ahead)
    if rule.end_date is not None:
        end = min(end, rule.end_date + timedelta(days=1))
    return start, end


def _session_from_draft(rule: RecurrenceRule, draft: rec.SessionDraft) -> SessionInstance:
    return SessionInstance(
        recurrence_id=rule.id,
        school_id=rule.school_id,
        teacher_id=rule.teacher_id,
        class_id=rule.class_id,
        title=rule.title,
        description=rule.description,
        session_date=draft.session_date,
        scheduled_start=draft.scheduled_start,
        scheduled_end=draft.scheduled_end,
        status=SessionStatus.SCHEDULED,
        room_name=room_name_for(rule.school_id, rule.id),
        max_duration=rule.duration_minutes,
        creator_type="school",
        created_by=rule.created_by,
        notifications_sent=False,
    )


def _persist_drafts(rule: RecurrenceRule, drafts: List[rec.SessionDraft]) -> List[SessionInstance]:
    created = [_session_from_draft(rule, d) for d in drafts]
    db.session.add_all(created)
    try:
        db.session.commit()
        return created
    except IntegrityError:
        # параллельная генерация успела вставить часть дат; «уже есть» считаем успехом
        db.session.rollback()

    created = []
    for d in drafts:
        if d.session_date in _existing_dates(rule.id, d.session_date, d.session_date + timedelta(days=1)):
            continue
        inst = _session_from_draft(rule, d)
        db.session.add(inst)
        try:
            db.session.commit()
            created.append(inst)
        except IntegrityError:
            db.session.rollback()
    return created


def generate(rule_id: int, weeks_ahead: int | None = None, now: datetime | None = None) -> List[SessionInstance]:
    """Догенерировать сессии правила на weeks_ahead недель вперёд. Идемпотентно."""
    rule = get_rule(rule_id)
    if not rule.is_active:
        return []
    now = now or local_now()
    weeks = weeks_ahead if weeks_ahead is not None else _weeks_ahead_default()
    if weeks < 1:
        raise ValidationError("weeks_ahead must be >= 1", code="invalid_weeks_ahead")

    w_start, w_end = generation_window(rule, weeks, now)
    if w_start >= w_end:
        return []
    drafts = rec.expand(rule, w_start, w_end, _existing_dates(rule.id, w_start, w_end), now=now)
    if not drafts:
        return []

    created = _persist_drafts(rule, drafts)
    if not created:
        return []

    rule.occurrences_generated = (rule.occurrences_generated or 0) + len(created)
    rule.last_generated = now
    rule.next_generation_horizon = w_end
    db.session.commit()
    log.info("sessions generated", extra={"event": "sessions_generated", "rule_id": rule.id,
                                          "sessions_created": len(created)})

    if rule.auto_notify:
        _notify_scheduled(created)
    return created


def _notify_scheduled(sessions: List[SessionInstance]) -> None:
    sent_any = False
    for s in sessions:
        ok = events.publish(events.SessionEventTypes.SCHEDULED, s.id,
                            school_id=s.school_id, class_id=s.class_id, teacher_id=s.teacher_id,
                            title=s.title, scheduled_start=s.scheduled_start.isoformat())
        if ok:
            s.notifications_sent = True
            sent_any = True
    if sent_any:
        db.session.commit()


def extend_all_horizons(weeks_ahead: int | None = None, now: datetime | None = None) -> Dict[int, int]:
    """Периодический прогон: продлить горизонт всех активных правил. rule_id -> создано."""
    now = now or local_now()
    rule_ids = list(db.session.scalars(
        select(RecurrenceRule.id).where(RecurrenceRule.is_active.is_(True)).order_by(RecurrenceRule.id)
    ))
    out: Dict[int, int] = {}
    for rid in rule_ids:
        out[rid] = len(generate(rid, weeks_ahead=weeks_ahead, now=now))
    return out


# ---------- отдельные сессии ----------
def create_session(*, school_id: int, teacher_id: int, class_id: int, title: str,
                   scheduled_start: datetime, duration_minutes: int, created_by: int,
                   description: str | None = None, creator_type: str = "school",
                   auto_notify: bool = True, now: datetime | None = None) -> SessionInstance:
    if duration_minutes is None or duration_minutes <= 0:
        raise ValidationError("duration_minutes must be > 0", code="invalid_duration")
    now = now or local_now()
    if scheduled_start <= now:
        raise ValidationError("scheduled_start must be in the future", code="start_in_past")
    inst = SessionInstance(
        recurrence_id=None,
        school_id=school_id, teacher_id=teacher_id, class_id=class_id,
        title=title, description=description,
        session_date=scheduled_start.date(),
        scheduled_start=scheduled_start,
        scheduled_end=scheduled_start + timedelta(minutes=duration_minutes),
        status=SessionStatus.SCHEDULED,
        room_name=room_name_for(school_id),
        max_duration=duration_minutes,
        creator_type=creator_type,
        created_by=created_by,
    )
    db.session.add(inst)
    db.session.commit()
    log.info("session created", extra={"event": "session_created", "session_id": inst.id,
                                       "school_id": school_id})
    if auto_notify:
        _notify_scheduled([inst])
    return inst


def get_session(session_id: int) -> SessionInstance:
    inst = db.session.get(SessionInstance, session_id)
    if inst is None:
        raise NotFoundError(f"session {session_id} not found", code="SESSION_NOT_FOUND")
    return inst


def list_sessions(*, school_id: int | None = None, teacher_id: int | None = None,
                  recurrence_id: int | None = None,
                  d_from: date | None = None, d_to: date | None = None) -> List[SessionInstance]:
    q = select(SessionInstance)
    if school_id is not None:
        q = q.where(SessionInstance.school_id == school_id)
    if teacher_id is not None:
        q = q.where(SessionInstance.teacher_id == teacher_id)
    if recurrence_id is not None:
        q = q.where(SessionInstance.recurrence_id == recurrence_id)
    if d_from is not None:
        q = q.where(SessionInstance.session_date >= d_from)
    if d_to is not None:
        q = q.where(SessionInstance.session_date <= d_to)
    return list(db.session.scalars(q.order_by(SessionInstance.scheduled_start.asc(), SessionInstance.id.asc())))


# допустимые переходы статусов
TRANSITIONS = {
    SessionStatus.SCHEDULED: {SessionStatus.LIVE, SessionStatus.CANCELED},
    SessionStatus.LIVE: {SessionStatus.ENDED},
    SessionStatus.ENDED: set(),
    SessionStatus.CANCELED: set(),
}


def _transition(inst: SessionInstance, target: SessionStatus) -> None:
    if target not in TRANSITIONS[inst.status]:
        raise InvalidTransitionError(
            f"cannot move session {inst.id} from {inst.status.value} to {target.value}",
            status=inst.status.value,
        )
    inst.status = target


def cancel_session(session_id: int) -> SessionInstance:
    inst = get_session(session_id)
    _transition(inst, SessionStatus.CANCELED)
    db.session.commit()
    log.info("session canceled", extra={"event": "session_canceled", "session_id": inst.id})
    events.publish(events.SessionEventTypes.CANCELED, inst.id, school_id=inst.school_id, class_id=inst.class_id)
    return inst


def start_session(session_id: int, now: datetime | None = None) -> SessionInstance:
    inst = get_session(session_id)
    _transition(inst, SessionStatus.LIVE)
    inst.actual_start = now or local_now()
    db.session.commit()
    log.info("session started", extra={"event": "session_started", "session_id": inst.id})
    return inst


def end_session(session_id: int, now: datetime | None = None) -> SessionInstance:
    inst = get_session(session_id)
    _transition(inst, SessionStatus.ENDED)
    inst.actual_end = now or local_now()
    db.session.commit()
    log.info("session ended", extra={"event": "session_ended", "session_id": inst.id})
    return inst


def send_starting_reminders(now: datetime | None = None, lead_minutes: int = 15) -> List[SessionInstance]:
    """Опубликовать session.starting для сессий, начинающихся в ближайшие lead_minutes (один раз)."""
    now = now or local_now()
    due = list(db.session.scalars(
        select(SessionInstance)
        .where(SessionInstance.status == SessionStatus.SCHEDULED,
               SessionInstance.reminder_sent.is_(False),
               SessionInstance.scheduled_start > now,
               SessionInstance.scheduled_start <= now + timedelta(minutes=lead_minutes))
        .order_by(SessionInstance.scheduled_start.asc())
    ))
    reminded: List[SessionInstance] = []
    for s in due:
        if events.publish(events.SessionEventTypes.STARTING, s.id, school_id=s.school_id,
                          class_id=s.class_id, room_name=s.room_name,
                          scheduled_start=s.scheduled_start.isoformat()):
            s.reminder_sent = True
            reminded.append(s)
    if reminded:
        db.session.commit()
    return reminded
