# blueprints/access/routes.py
from __future__ import annotations
import logging

from flask import Blueprint, current_app, jsonify
from flask_login import login_required, current_user

from models import SessionStatus, UserRole
from blueprints.core.clock import local_now
from blueprints.core.errors import InvalidTransitionError
from blueprints.core.filters import iso
from blueprints.scheduler import services as scheduler
from . import services as access
from .credentials import bounded_lifetime_minutes, issue_credential
from .directory import principal_for

log = logging.getLogger(__name__)

api_bp = Blueprint("access_api", __name__)

ROLE_MODERATOR = "moderator"
ROLE_PARTICIPANT = "participant"


@api_bp.get("/online-classes/access")
@login_required
def api_access():
    principal = principal_for(current_user)
    decision = access.evaluate(principal, local_now())
    return jsonify(decision.to_dict())


def _may_see(principal, inst) -> bool:
    if principal.role == UserRole.ADMIN.value:
        return True
    return inst.teacher_id == principal.id or (
        principal.school_id is not None and inst.school_id == principal.school_id)


@api_bp.post("/online-classes/sessions/<int:session_id>/join")
@login_required
def api_join(session_id: int):
    now = local_now()
    principal = principal_for(current_user)
    inst = scheduler.get_session(session_id)
    if not _may_see(principal, inst):
        return jsonify({"error": "not_found"}), 404
    if inst.status in (SessionStatus.CANCELED, SessionStatus.ENDED):
        raise InvalidTransitionError(f"session {inst.id} is {inst.status.value}", status=inst.status.value)

    decision = access.evaluate(principal, now)
    if not decision.allowed:
        log.info("join denied", extra={"event": "join_denied", "session_id": inst.id,
                                       "principal_id": principal.id, "reason": decision.reason})
        body = decision.to_dict()
        body["error"] = "access_denied"
        return jsonify(body), 403

    end_date, source = access.subscription_end_date(principal, now)
    lifetime = bounded_lifetime_minutes(
        end_date,
        int(current_app.config.get("ONLINE_CLASS_TOKEN_MINUTES", 60)),
        now=now,
        session_max_duration=inst.max_duration,
    )
    moderator = inst.teacher_id == principal.id or principal.role in (UserRole.DIRECTOR.value, UserRole.ADMIN.value)
    cred = issue_credential(room_name=inst.room_name, principal_id=principal.id,
                            role=ROLE_MODERATOR if moderator else ROLE_PARTICIPANT,
                            lifetime_minutes=lifetime, now=now)
    log.info("join credential issued", extra={"event": "join_issued", "session_id": inst.id,
                                              "principal_id": principal.id, "reason": source})
    return jsonify({
        "ok": True,
        "credential": cred.to_dict(),
        "access": decision.to_dict(),
        "session": {
            "id": inst.id,
            "title": inst.title,
            "status": inst.status.value,
            "scheduled_start": iso(inst.scheduled_start),
            "scheduled_end": iso(inst.scheduled_end),
            "room_name": inst.room_name,
        },
    })
