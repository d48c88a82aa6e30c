# blueprints/scheduler/routes.py
from __future__ import annotations
from datetime import date
from typing import Optional

from flask import Blueprint, jsonify, request, abort
from flask_login import login_required, current_user
from pydantic import BaseModel, ValidationError as SchemaError

from extensions import db
from models import ActivatorType, RecurrenceRule, SchoolClass, SessionInstance, UserRole
from blueprints.activations import services as registry
from blueprints.auth.routes import school_manager_required, has_role
from blueprints.core.clock import local_now
from blueprints.core.errors import ActivationRequiredError, ValidationError
from blueprints.core.filters import iso, fmt_time
from .schemas import RecurrenceIn, RecurrenceUpdateIn, GenerateIn, SessionIn
from . import services as svc

api_bp = Blueprint("scheduler_api", __name__)

# ---------- сериализация ----------
def rule_to_dict(r: RecurrenceRule) -> dict:
    return {
        "id": r.id,
        "school_id": r.school_id,
        "teacher_id": r.teacher_id,
        "class_id": r.class_id,
        "subject": r.subject,
        "title": r.title,
        "description": r.description,
        "rule_type": r.rule_type.value,
        "interval": r.interval,
        "by_day": r.by_day,
        "custom_dates": r.custom_dates,
        "start_time": fmt_time(r.start_time),
        "duration_minutes": r.duration_minutes,
        "start_date": iso(r.start_date),
        "end_date": iso(r.end_date),
        "is_active": r.is_active,
        "paused_at": iso(r.paused_at),
        "pause_reason": r.pause_reason,
        "auto_notify": r.auto_notify,
        "occurrences_generated": r.occurrences_generated,
        "last_generated": iso(r.last_generated),
        "next_generation_horizon": iso(r.next_generation_horizon),
    }

def session_to_dict(s: SessionInstance) -> dict:
    return {
        "id": s.id,
        "recurrence_id": s.recurrence_id,
        "school_id": s.school_id,
        "teacher_id": s.teacher_id,
        "class_id": s.class_id,
        "title": s.title,
        "description": s.description,
        "date": iso(s.session_date),
        "scheduled_start": iso(s.scheduled_start),
        "scheduled_end": iso(s.scheduled_end),
        "actual_start": iso(s.actual_start),
        "actual_end": iso(s.actual_end),
        "status": s.status.value,
        "room_name": s.room_name,
        "max_duration": s.max_duration,
        "creator_type": s.creator_type,
        "notifications_sent": s.notifications_sent,
    }

# ---------- helpers ----------
def _parse(model: type[BaseModel], payload: dict):
    try:
        return model.model_validate(payload)
    except SchemaError as ve:
        errs = ve.errors(include_url=False, include_context=False)
        return jsonify({"error": "validation_error", "detail": errs}), 422

def _target_school(requested: Optional[int]) -> int:
    # директор работает только со своей школой
    if has_role(current_user, [UserRole.ADMIN]):
        if requested is None:
            raise ValidationError("school_id is required", code="school_required")
        return requested
    if current_user.school_id is None:
        abort(403)
    if requested is not None and requested != current_user.school_id:
        abort(403)
    return current_user.school_id

def _require_school_activation(school_id: int) -> None:
    if registry.current_activation(ActivatorType.SCHOOL, school_id, local_now()) is None:
        raise ActivationRequiredError("school has no active online-class activation", school_id=school_id)

def _check_class(school_id: int, class_id: int) -> None:
    klass = db.session.get(SchoolClass, class_id)
    if klass is None or klass.school_id != school_id:
        raise ValidationError(f"class {class_id} does not belong to school {school_id}", code="invalid_class")

def _own_rule(rule_id: int) -> RecurrenceRule:
    rule = svc.get_rule(rule_id)
    if not has_role(current_user, [UserRole.ADMIN]) and rule.school_id != current_user.school_id:
        abort(404)
    return rule

def _own_session(session_id: int) -> SessionInstance:
    inst = svc.get_session(session_id)
    if has_role(current_user, [UserRole.ADMIN]):
        return inst
    if has_role(current_user, [UserRole.DIRECTOR]) and inst.school_id == current_user.school_id:
        return inst
    if has_role(current_user, [UserRole.TEACHER]) and inst.teacher_id == current_user.id:
        return inst
    abort(404)

def _date_arg(name: str) -> Optional[date]:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        abort(400, description=f"Bad {name}")

# ---------- recurrences ----------
@api_bp.post("/online-classes/recurrences")
@school_manager_required
def api_create_recurrence():
    data = _parse(RecurrenceIn, request.get_json(silent=True) or {})
    if isinstance(data, tuple):
        return data
    school_id = _target_school(data.school_id)
    _require_school_activation(school_id)
    _check_class(school_id, data.class_id)

    rule = svc.create_rule(
        school_id=school_id, teacher_id=data.teacher_id, class_id=data.class_id,
        title=data.title, description=data.description, subject=data.subject,
        rule_type=data.rule_type, interval=data.interval, by_day=data.by_day,
        custom_dates=data.custom_dates, start_time=data.start_time,
        duration_minutes=data.duration_minutes, start_date=data.start_date,
        end_date=data.end_date, auto_notify=data.auto_notify, created_by=current_user.id,
    )
    # первая порция сессий сразу при создании
    sessions = svc.generate(rule.id, weeks_ahead=data.generate_weeks)
    return jsonify({"ok": True, "recurrence": rule_to_dict(rule),
                    "generated_count": len(sessions),
                    "sessions": [session_to_dict(s) for s in sessions]}), 201

@api_bp.get("/online-classes/recurrences")
@school_manager_required
def api_list_recurrences():
    school_id = _target_school(request.args.get("school_id", type=int))
    return jsonify({"items": [rule_to_dict(r) for r in svc.list_rules(school_id)]})

@api_bp.get("/online-classes/recurrences/<int:rule_id>")
@school_manager_required
def api_get_recurrence(rule_id: int):
    return jsonify(rule_to_dict(_own_rule(rule_id)))

@api_bp.patch("/online-classes/recurrences/<int:rule_id>")
@school_manager_required
def api_update_recurrence(rule_id: int):
    data = _parse(RecurrenceUpdateIn, request.get_json(silent=True) or {})
    if isinstance(data, tuple):
        return data
    _own_rule(rule_id)
    if data.action == "pause":
        rule = svc.pause_rule(rule_id, paused_by=current_user.id, reason=data.reason)
    elif data.action == "resume":
        rule = svc.resume_rule(rule_id)
    else:
        rule = svc.end_rule(rule_id, data.end_date)
    return jsonify({"ok": True, "recurrence": rule_to_dict(rule)})

@api_bp.post("/online-classes/recurrences/<int:rule_id>/generate")
@school_manager_required
def api_generate(rule_id: int):
    data = _parse(GenerateIn, request.get_json(silent=True) or {})
    if isinstance(data, tuple):
        return data
    _own_rule(rule_id)
    sessions = svc.generate(rule_id, weeks_ahead=data.weeks_ahead)
    return jsonify({"ok": True, "generated_count": len(sessions),
                    "sessions": [session_to_dict(s) for s in sessions]})

# ---------- sessions ----------
@api_bp.post("/online-classes/sessions")
@school_manager_required
def api_create_session():
    data = _parse(SessionIn, request.get_json(silent=True) or {})
    if isinstance(data, tuple):
        return data
    school_id = _target_school(data.school_id)
    _require_school_activation(school_id)
    _check_class(school_id, data.class_id)
    inst = svc.create_session(
        school_id=school_id, teacher_id=data.teacher_id, class_id=data.class_id,
        title=data.title, description=data.description,
        scheduled_start=data.scheduled_start.replace(tzinfo=None),
        duration_minutes=data.duration_minutes, created_by=current_user.id,
        auto_notify=data.auto_notify,
    )
    return jsonify({"ok": True, "session": session_to_dict(inst)}), 201

@api_bp.get("/online-classes/sessions")
@login_required
def api_list_sessions():
    d_from, d_to = _date_arg("from"), _date_arg("to")
    if has_role(current_user, [UserRole.TEACHER]):
        items = svc.list_sessions(teacher_id=current_user.id, d_from=d_from, d_to=d_to)
    else:
        school_id = _target_school(request.args.get("school_id", type=int))
        items = svc.list_sessions(school_id=school_id, teacher_id=request.args.get("teacher_id", type=int),
                                  recurrence_id=request.args.get("recurrence_id", type=int),
                                  d_from=d_from, d_to=d_to)
    return jsonify({"items": [session_to_dict(s) for s in items]})

@api_bp.get("/online-classes/sessions/<int:session_id>")
@login_required
def api_get_session(session_id: int):
    return jsonify(session_to_dict(_own_session(session_id)))

@api_bp.post("/online-classes/sessions/<int:session_id>/cancel")
@school_manager_required
def api_cancel_session(session_id: int):
    _own_session(session_id)
    return jsonify({"ok": True, "session": session_to_dict(svc.cancel_session(session_id))})

@api_bp.post("/online-classes/sessions/<int:session_id>/start")
@login_required
def api_start_session(session_id: int):
    _own_session(session_id)
    return jsonify({"ok": True, "session": session_to_dict(svc.start_session(session_id))})

@api_bp.post("/online-classes/sessions/<int:session_id>/end")
@login_required
def api_end_session(session_id: int):
    _own_session(session_id)
    return jsonify({"ok": True, "session": session_to_dict(svc.end_session(session_id))})
