# blueprints/access/directory.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional

from flask import current_app, has_app_context

from extensions import db
from models import User
from blueprints.core.errors import NotFoundError

DEFAULT_EXEMPT_DOMAINS = ("@educafric.demo", "@educafric.test", "@test.educafric.com", "@demo.educafric.com")
DEFAULT_EXEMPT_EMAILS = ("sandbox@educafric.com", "demo@educafric.com", "test@educafric.com")
DEFAULT_EXEMPT_PREFIXES = ("sandbox", "demo", "test")
DEFAULT_INTERNAL_DOMAIN = "@educafric"


@dataclass(frozen=True)
class Principal:
    id: int
    school_id: Optional[int] = None
    exempt: bool = False
    email: Optional[str] = None
    role: Optional[str] = None


def _cfg(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def is_exempt_email(email: str | None,
                    domains: Iterable[str] | None = None,
                    exact: Iterable[str] | None = None,
                    prefixes: Iterable[str] | None = None,
                    internal_domain: str | None = None) -> bool:
    """Служебные sandbox/test-аккаунты без ограничений подписки.

    Префиксы учитываются только на внутреннем домене: testsimon@yahoo.com не служебный.
    """
    if not email:
        return False
    email = email.strip().lower()
    domains = domains if domains is not None else _cfg("ONLINE_CLASS_EXEMPT_DOMAINS", DEFAULT_EXEMPT_DOMAINS)
    exact = exact if exact is not None else _cfg("ONLINE_CLASS_EXEMPT_EMAILS", DEFAULT_EXEMPT_EMAILS)
    prefixes = prefixes if prefixes is not None else _cfg("ONLINE_CLASS_EXEMPT_PREFIXES", DEFAULT_EXEMPT_PREFIXES)
    internal_domain = internal_domain or _cfg("ONLINE_CLASS_INTERNAL_DOMAIN", DEFAULT_INTERNAL_DOMAIN)

    if any(email.endswith(d) for d in domains):
        return True
    if email in set(exact):
        return True
    local, _, domain = email.partition("@")
    if domain and ("@" + domain).startswith(internal_domain):
        return any(local.startswith(p) for p in prefixes)
    return False


def principal_for(user: User) -> Principal:
    return Principal(
        id=user.id,
        school_id=user.school_id,
        exempt=is_exempt_email(user.email),
        email=user.email,
        role=user.role,
    )


def resolve_principal(user_id: int) -> Principal:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"user {user_id} not found", code="PRINCIPAL_NOT_FOUND")
    return principal_for(user)
