from __future__ import annotations
import json, logging
from datetime import datetime
from uuid import uuid4

from flask import g, jsonify, request
from werkzeug.wrappers.response import Response

from . import bp                 # используем bp из __init__.py
from .errors import SchedulingError

REQUEST_ID_HEADER = "X-Request-ID"
LOG_FIELDS = (
    "event", "path", "method", "status", "duration_ms", "request_id",
    "rule_id", "session_id", "activation_id", "school_id", "principal_id",
    "sessions_created", "count", "reason", "event_type",
)

class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in LOG_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)

def _setup_structured_logging(app):
    # корневой логгер: сюда пишут и app.logger, и модульные логгеры сервисов
    root = logging.getLogger()
    has_json = any(
        isinstance(h, logging.StreamHandler)
        and isinstance(getattr(h, "formatter", None), JSONFormatter)
        for h in root.handlers
    )
    if not has_json:
        handler = logging.StreamHandler()
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
        root.setLevel(logging.INFO)

@bp.before_app_request
def _start_timer_and_request_id():
    g._req_start = datetime.utcnow()
    g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex

@bp.after_app_request
def _log_request(response: Response):
    try:
        duration_ms = int((datetime.utcnow() - g._req_start).total_seconds() * 1000)
    except AttributeError:
        duration_ms = None
    rid = getattr(g, "request_id", None)
    if rid:
        response.headers[REQUEST_ID_HEADER] = rid
    extra = {
        "event": "http_request",
        "path": request.path,
        "method": request.method,
        "status": response.status_code,
        "duration_ms": duration_ms,
        "request_id": rid,
    }
    logging.getLogger(__name__).info("request handled", extra=extra)
    return response

@bp.app_errorhandler(SchedulingError)
def _scheduling_error(exc: SchedulingError):
    return jsonify(exc.to_dict()), exc.http_status

@bp.record_once
def _on_register(state):
    _setup_structured_logging(state.app)

@bp.get("/health")
def health():
    return jsonify({
        "status": "ok",
        "ts": datetime.utcnow().isoformat(timespec="seconds") + "Z",
        "request_id": getattr(g, "request_id", None),
    })
