# blueprints/access/services.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from models import ActivationRecord, ActivatorType
from blueprints.activations import services as registry
from blueprints.core.clock import local_now
from blueprints.core.filters import iso
from . import policy
from .directory import Principal

log = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 7

# причины решений (кроме причин окна, которые приходят из policy)
REASON_EXEMPT = "exempt"
REASON_PERSONAL = "personal-active"
REASON_NO_ENTITLEMENT = "no-entitlement"

ActivationLookup = Callable[[ActivatorType, int, datetime], Optional[ActivationRecord]]
WindowClassifier = Callable[[int, datetime], policy.WindowDecision]


@dataclass(frozen=True)
class SubscriptionInfo:
    start_date: datetime
    end_date: datetime
    duration_days: int
    days_remaining: int
    is_expiring_soon: bool

    @classmethod
    def from_record(cls, record: ActivationRecord, now: datetime) -> "SubscriptionInfo":
        span = record.end_date - record.start_date
        duration_days = -(-span // timedelta(days=1))
        remaining = record.days_remaining(now)
        return cls(
            start_date=record.start_date,
            end_date=record.end_date,
            duration_days=duration_days,
            days_remaining=remaining,
            is_expiring_soon=remaining <= EXPIRING_SOON_DAYS,
        )

    def to_dict(self) -> dict:
        return {
            "start_date": iso(self.start_date),
            "end_date": iso(self.end_date),
            "duration_days": self.duration_days,
            "days_remaining": self.days_remaining,
            "is_expiring_soon": self.is_expiring_soon,
        }


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str
    activation_type: Optional[str] = None
    time_window: Optional[policy.WindowDecision] = None
    next_available_at: Optional[datetime] = None
    subscription: Optional[SubscriptionInfo] = None

    def to_dict(self) -> dict:
        window = None
        if self.time_window is not None and self.time_window.window_start is not None:
            window = {"start": iso(self.time_window.window_start), "end": iso(self.time_window.window_end)}
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "activation_type": self.activation_type,
            "time_window": window,
            "next_available_at": iso(self.next_available_at),
            "subscription": self.subscription.to_dict() if self.subscription else None,
        }


def evaluate(principal: Principal, now: datetime | None = None, *,
             lookup: ActivationLookup = registry.current_activation,
             classify: WindowClassifier = policy.classify) -> AccessDecision:
    """Решение о доступе к онлайн-классам; первое совпадение выигрывает.

    1. служебный аккаунт; 2. личная активация преподавателя (без окон);
    3. активация школы + временное окно по расписанию; 4. отказ.
    """
    now = now or local_now()

    if principal.exempt:
        return AccessDecision(allowed=True, reason=REASON_EXEMPT)

    personal = lookup(ActivatorType.TEACHER, principal.id, now)
    if personal is not None:
        return AccessDecision(
            allowed=True,
            reason=REASON_PERSONAL,
            activation_type=ActivatorType.TEACHER.value,
            subscription=SubscriptionInfo.from_record(personal, now),
        )

    if principal.school_id is not None:
        school = lookup(ActivatorType.SCHOOL, principal.school_id, now)
        if school is not None:
            window = classify(principal.school_id, now)
            return AccessDecision(
                allowed=window.in_window,
                reason=window.reason,
                activation_type=ActivatorType.SCHOOL.value,
                time_window=window,
                next_available_at=window.next_available_at,
                subscription=SubscriptionInfo.from_record(school, now),
            )

    return AccessDecision(allowed=False, reason=REASON_NO_ENTITLEMENT)


def subscription_end_date(principal: Principal, now: datetime | None = None, *,
                          lookup: ActivationLookup = registry.current_activation
                          ) -> Tuple[Optional[datetime], Optional[str]]:
    """Конец подписки, оправдывающей доступ: личная важнее школьной.

    (None, "exempt") без ограничения, (None, None) если подписки нет.
    """
    now = now or local_now()
    if principal.exempt:
        return None, REASON_EXEMPT
    personal = lookup(ActivatorType.TEACHER, principal.id, now)
    if personal is not None:
        return personal.end_date, ActivatorType.TEACHER.value
    if principal.school_id is not None:
        school = lookup(ActivatorType.SCHOOL, principal.school_id, now)
        if school is not None:
            return school.end_date, ActivatorType.SCHOOL.value
    return None, None
