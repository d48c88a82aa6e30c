# blueprints/access/credentials.py
from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from itsdangerous import BadSignature, URLSafeSerializer

from blueprints.core.clock import local_now
from blueprints.core.errors import CredentialError
from blueprints.core.filters import iso

log = logging.getLogger(__name__)

SALT = "online-class-join"


def bounded_lifetime_minutes(subscription_end_date: Optional[datetime], default_minutes: int,
                             now: Optional[datetime] = None,
                             session_max_duration: Optional[int] = None) -> int:
    """Срок жизни учётных данных: не дольше подписки, дефолта и длительности сессии.

    Без даты окончания (безлимит/служебный аккаунт) берётся дефолт, истёкшая подписка даёт 0.
    Остаток округляется вверх до минуты.
    """
    cap = default_minutes
    if session_max_duration and session_max_duration > 0:
        cap = min(cap, session_max_duration)
    if subscription_end_date is None:
        return cap

    now = now or local_now()
    remaining = subscription_end_date - now
    if remaining <= timedelta(0):
        log.warning("credential requested after subscription end", extra={"event": "credential_floor"})
        return 0
    minutes = math.ceil(remaining / timedelta(minutes=1))
    return min(minutes, cap)


@dataclass(frozen=True)
class JoinCredential:
    token: str
    room_name: str
    principal_id: int
    role: str
    issued_at: datetime
    expires_at: datetime

    @property
    def lifetime_minutes(self) -> int:
        return int((self.expires_at - self.issued_at) / timedelta(minutes=1))

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "room_name": self.room_name,
            "role": self.role,
            "issued_at": iso(self.issued_at),
            "expires_at": iso(self.expires_at),
            "lifetime_minutes": self.lifetime_minutes,
        }


def _serializer(secret: Optional[str] = None) -> URLSafeSerializer:
    return URLSafeSerializer(secret or current_app.config["SECRET_KEY"], salt=SALT)


def issue_credential(*, room_name: str, principal_id: int, role: str, lifetime_minutes: int,
                     now: datetime, secret: Optional[str] = None) -> JoinCredential:
    if lifetime_minutes <= 0:
        raise CredentialError("credential lifetime must be positive", code="subscription_expired")
    expires_at = now + timedelta(minutes=lifetime_minutes)
    token = _serializer(secret).dumps({
        "room": room_name,
        "sub": principal_id,
        "role": role,
        "iat": iso(now),
        "exp": iso(expires_at),
    })
    return JoinCredential(token=token, room_name=room_name, principal_id=principal_id, role=role,
                          issued_at=now, expires_at=expires_at)


def load_credential(token: str, now: datetime, secret: Optional[str] = None) -> JoinCredential:
    """Проверить подпись и срок. На истёкший или подделанный токен: CredentialError."""
    try:
        data = _serializer(secret).loads(token)
    except BadSignature:
        raise CredentialError("bad credential signature") from None
    cred = JoinCredential(
        token=token,
        room_name=data["room"],
        principal_id=int(data["sub"]),
        role=data["role"],
        issued_at=datetime.fromisoformat(data["iat"]),
        expires_at=datetime.fromisoformat(data["exp"]),
    )
    if cred.is_expired(now):
        raise CredentialError("credential expired", code="credential_expired")
    return cred
