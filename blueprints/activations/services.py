# blueprints/activations/services.py
from __future__ import annotations
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update

from extensions import db
from models import (
    ActivationRecord, ActivationStatus, ActivatorType, DurationType, ACTIVATION_CLASSES,
)
from blueprints.core.clock import local_now
from blueprints.core.errors import NotFoundError, ValidationError

log = logging.getLogger(__name__)

# длительность в месяцах; daily/weekly в днях
MONTHS_BY_DURATION = {
    DurationType.MONTHLY: 1,
    DurationType.QUARTERLY: 3,
    DurationType.SEMESTRAL: 6,
    DurationType.YEARLY: 12,
}
DAYS_BY_DURATION = {
    DurationType.DAILY: 1,
    DurationType.WEEKLY: 7,
}


@dataclass(frozen=True)
class ActivationOrigin:
    """Откуда пришла активация (платёж или ручное действие админа)."""
    activated_by: str = "admin_manual"      # admin_manual | self_purchase
    admin_user_id: Optional[int] = None
    payment_id: Optional[str] = None
    payment_method: Optional[str] = None    # stripe | mtn | orange | manual
    amount_paid: Optional[int] = None
    notes: Optional[str] = None


def add_months(dt: datetime, months: int) -> datetime:
    # 31 января + 1 месяц = последний день февраля
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def compute_end_date(start: datetime, duration_type: DurationType | str) -> datetime:
    dt = DurationType(duration_type)
    if dt in DAYS_BY_DURATION:
        return start + timedelta(days=DAYS_BY_DURATION[dt])
    return add_months(start, MONTHS_BY_DURATION[dt])


def _coerce_type(activator_type: ActivatorType | str) -> ActivatorType:
    try:
        return ActivatorType(activator_type)
    except ValueError:
        raise ValidationError(f"unknown activator type: {activator_type}", code="invalid_activator_type") from None


def activate(activator_type: ActivatorType | str, activator_id: int,
             duration_type: DurationType | str, origin: ActivationOrigin | None = None,
             now: datetime | None = None) -> ActivationRecord:
    """Создать новую активную запись. Предыдущие записи не продлеваются и не сливаются."""
    kind = _coerce_type(activator_type)
    try:
        duration = DurationType(duration_type)
    except ValueError:
        raise ValidationError(f"unknown duration type: {duration_type}", code="invalid_duration_type") from None
    origin = origin or ActivationOrigin()
    start = now or local_now()

    record = ACTIVATION_CLASSES[kind](
        activator_id=activator_id,
        duration_type=duration,
        start_date=start,
        end_date=compute_end_date(start, duration),
        status=ActivationStatus.ACTIVE,
        activated_by=origin.activated_by,
        admin_user_id=origin.admin_user_id,
        payment_id=origin.payment_id,
        payment_method=origin.payment_method,
        amount_paid=origin.amount_paid,
        notes=origin.notes,
    )
    db.session.add(record)
    db.session.commit()
    log.info("activation granted", extra={"event": "activation_granted", "activation_id": record.id,
                                          "reason": f"{kind.value}:{duration.value}"})
    return record


def current_activation(activator_type: ActivatorType | str, activator_id: int,
                       now: datetime | None = None) -> Optional[ActivationRecord]:
    """Действующая запись на момент now; при пересечении берётся самое позднее начало."""
    kind = _coerce_type(activator_type)
    now = now or local_now()
    model = ACTIVATION_CLASSES[kind]
    return db.session.scalars(
        select(model)
        .where(model.activator_id == activator_id,
               model.status == ActivationStatus.ACTIVE,
               model.start_date <= now,
               model.end_date >= now)
        .order_by(model.start_date.desc(), model.id.desc())
        .limit(1)
    ).first()


def get_activation(activation_id: int) -> ActivationRecord:
    record = db.session.get(ActivationRecord, activation_id)
    if record is None:
        raise NotFoundError(f"activation {activation_id} not found", code="ACTIVATION_NOT_FOUND")
    return record


def cancel(activation_id: int) -> ActivationRecord:
    record = get_activation(activation_id)
    record.status = ActivationStatus.CANCELLED
    db.session.commit()
    log.info("activation cancelled", extra={"event": "activation_cancelled", "activation_id": record.id})
    return record


def sweep_expired(now: datetime | None = None) -> int:
    """active ∧ end < now → expired одним UPDATE; повторный запуск ничего не меняет."""
    now = now or local_now()
    res = db.session.execute(
        update(ActivationRecord)
        .where(ActivationRecord.status == ActivationStatus.ACTIVE,
               ActivationRecord.end_date < now)
        .values(status=ActivationStatus.EXPIRED, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    count = res.rowcount or 0
    if count:
        log.info("activations expired", extra={"event": "activations_swept", "count": count})
    return count


def list_activations(activator_type: ActivatorType | str | None = None,
                     activator_id: int | None = None) -> List[ActivationRecord]:
    model = ACTIVATION_CLASSES[_coerce_type(activator_type)] if activator_type else ActivationRecord
    q = select(model)
    if activator_id is not None:
        q = q.where(model.activator_id == activator_id)
    return list(db.session.scalars(q.order_by(model.created_at.desc(), model.id.desc())))
