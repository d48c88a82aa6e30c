# blueprints/activations/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user
from pydantic import ValidationError as SchemaError

from extensions import db
from models import ActivationRecord, ActivatorType, School, User
from blueprints.auth.routes import admin_required
from blueprints.core.clock import local_now
from blueprints.core.errors import NotFoundError
from blueprints.core.filters import iso
from .schemas import SchoolActivationIn, TeacherActivationIn
from . import services as svc

api_bp = Blueprint("activations_api", __name__)


def activation_to_dict(a: ActivationRecord, now=None) -> dict:
    now = now or local_now()
    return {
        "id": a.id,
        "activator_type": a.activator_type,
        "activator_id": a.activator_id,
        "duration_type": a.duration_type.value,
        "start_date": iso(a.start_date),
        "end_date": iso(a.end_date),
        "status": a.status.value,
        "active_now": a.covers(now),
        "days_remaining": a.days_remaining(now),
        "activated_by": a.activated_by,
        "admin_user_id": a.admin_user_id,
        "payment_id": a.payment_id,
        "payment_method": a.payment_method,
        "amount_paid": a.amount_paid,
        "notes": a.notes,
    }


def _bad(ve: SchemaError):
    return jsonify({"error": "validation_error",
                    "detail": ve.errors(include_url=False, include_context=False)}), 422


@api_bp.post("/online-classes/activations/schools")
@admin_required
def api_activate_school():
    try:
        data = SchoolActivationIn.model_validate(request.get_json(silent=True) or {})
    except SchemaError as ve:
        return _bad(ve)
    if db.session.get(School, data.school_id) is None:
        raise NotFoundError(f"school {data.school_id} not found", code="SCHOOL_NOT_FOUND")
    origin = svc.ActivationOrigin(activated_by="admin_manual", admin_user_id=current_user.id,
                                  payment_method="manual", notes=data.notes)
    record = svc.activate(ActivatorType.SCHOOL, data.school_id, data.duration_type, origin)
    return jsonify({"ok": True, "activation": activation_to_dict(record)}), 201


@api_bp.post("/online-classes/activations/teachers")
@admin_required
def api_activate_teacher():
    try:
        data = TeacherActivationIn.model_validate(request.get_json(silent=True) or {})
    except SchemaError as ve:
        return _bad(ve)
    if db.session.get(User, data.teacher_id) is None:
        raise NotFoundError(f"teacher {data.teacher_id} not found", code="TEACHER_NOT_FOUND")
    # оплаченная покупка фиксируется как self_purchase, остальное считается ручным действием админа
    paid = data.payment_method != "manual" and data.payment_id
    origin = svc.ActivationOrigin(
        activated_by="self_purchase" if paid else "admin_manual",
        admin_user_id=None if paid else current_user.id,
        payment_id=data.payment_id,
        payment_method=data.payment_method,
        amount_paid=data.amount_paid,
        notes=data.notes,
    )
    record = svc.activate(ActivatorType.TEACHER, data.teacher_id, data.duration_type, origin)
    return jsonify({"ok": True, "activation": activation_to_dict(record)}), 201


@api_bp.get("/online-classes/activations")
@admin_required
def api_list_activations():
    kind = request.args.get("activator_type") or None
    items = svc.list_activations(kind, request.args.get("activator_id", type=int))
    now = local_now()
    return jsonify({"items": [activation_to_dict(a, now) for a in items]})


@api_bp.delete("/online-classes/activations/<int:activation_id>")
@admin_required
def api_cancel_activation(activation_id: int):
    record = svc.cancel(activation_id)
    return jsonify({"ok": True, "activation": activation_to_dict(record)})


@api_bp.post("/online-classes/activations/sweep")
@admin_required
def api_sweep():
    return jsonify({"ok": True, "expired": svc.sweep_expired()})
