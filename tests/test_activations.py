from __future__ import annotations
from datetime import datetime, timedelta
import pytest

from app import create_app
from extensions import db
from models import (
    ActivationRecord, ActivationStatus, ActivatorType, DurationType,
    SchoolActivation, TeacherActivation,
)
from blueprints.activations import services as svc
from blueprints.core.errors import NotFoundError, ValidationError

T0 = datetime(2025, 1, 31, 10, 0)

@pytest.fixture()
def app_ctx():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()

@pytest.mark.parametrize("duration, expected", [
    ("daily", datetime(2025, 2, 1, 10, 0)),
    ("weekly", datetime(2025, 2, 7, 10, 0)),
    ("monthly", datetime(2025, 2, 28, 10, 0)),     # 31 января + месяц
    ("quarterly", datetime(2025, 4, 30, 10, 0)),
    ("semestral", datetime(2025, 7, 31, 10, 0)),
    ("yearly", datetime(2026, 1, 31, 10, 0)),
])
def test_end_date_by_duration(duration, expected):
    assert svc.compute_end_date(T0, duration) == expected

def test_add_months_leap_year_and_year_rollover():
    assert svc.add_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)
    assert svc.add_months(datetime(2024, 2, 29), 12) == datetime(2025, 2, 28)
    assert svc.add_months(datetime(2025, 11, 30), 3) == datetime(2026, 2, 28)

def test_activate_creates_typed_record(app_ctx):
    rec = svc.activate("school", 7, "monthly", now=T0)
    assert isinstance(rec, SchoolActivation)
    assert rec.activator_type == "school"
    assert rec.status == ActivationStatus.ACTIVE
    assert rec.end_date == datetime(2025, 2, 28, 10, 0)
    assert rec.activated_by == "admin_manual"

    paid = svc.activate(ActivatorType.TEACHER, 3, DurationType.YEARLY,
                        svc.ActivationOrigin(activated_by="self_purchase", payment_id="pi_1",
                                             payment_method="stripe", amount_paid=25000), now=T0)
    assert isinstance(db.session.get(ActivationRecord, paid.id), TeacherActivation)
    assert paid.payment_method == "stripe" and paid.amount_paid == 25000

def test_activate_never_merges(app_ctx):
    svc.activate("teacher", 3, "monthly", now=T0)
    svc.activate("teacher", 3, "monthly", now=T0 + timedelta(days=5))
    assert len(svc.list_activations("teacher", 3)) == 2

def test_activate_rejects_unknown_types(app_ctx):
    with pytest.raises(ValidationError):
        svc.activate("district", 1, "monthly", now=T0)
    with pytest.raises(ValidationError):
        svc.activate("school", 1, "decade", now=T0)

def test_current_activation_bounds(app_ctx):
    rec = svc.activate("school", 1, "weekly", now=T0)
    assert svc.current_activation("school", 1, T0 - timedelta(seconds=1)) is None
    assert svc.current_activation("school", 1, T0).id == rec.id
    assert svc.current_activation("school", 1, rec.end_date).id == rec.id
    assert svc.current_activation("school", 1, rec.end_date + timedelta(seconds=1)) is None
    # другой вид активатора с тем же id не пересекается
    assert svc.current_activation("teacher", 1, T0) is None

def test_overlap_latest_start_wins_then_highest_id(app_ctx):
    older = svc.activate("school", 1, "yearly", now=T0)
    newer = svc.activate("school", 1, "monthly", now=T0 + timedelta(days=2))
    now = T0 + timedelta(days=3)
    assert svc.current_activation("school", 1, now).id == newer.id
    same_start = svc.activate("school", 1, "monthly", now=T0 + timedelta(days=2))
    assert svc.current_activation("school", 1, now).id == same_start.id
    assert older.id < newer.id < same_start.id

def test_cancel_is_terminal(app_ctx):
    rec = svc.activate("teacher", 9, "yearly", now=T0)
    svc.cancel(rec.id)
    assert svc.current_activation("teacher", 9, T0 + timedelta(days=1)) is None
    assert svc.sweep_expired(rec.end_date + timedelta(days=1)) == 0
    assert svc.get_activation(rec.id).status == ActivationStatus.CANCELLED
    with pytest.raises(NotFoundError):
        svc.cancel(12345)

def test_sweep_expired_is_idempotent(app_ctx):
    gone = svc.activate("school", 1, "daily", now=T0)
    live = svc.activate("school", 2, "yearly", now=T0)
    now = T0 + timedelta(days=3)
    assert svc.sweep_expired(now) == 1
    assert svc.sweep_expired(now) == 0
    db.session.expire_all()
    assert svc.get_activation(gone.id).status == ActivationStatus.EXPIRED
    assert svc.get_activation(live.id).status == ActivationStatus.ACTIVE

def test_days_remaining_rounds_up_and_floors(app_ctx):
    rec = svc.activate("school", 1, "weekly", now=T0)
    assert rec.days_remaining(T0) == 7
    assert rec.days_remaining(T0 + timedelta(days=6, hours=1)) == 1
    assert rec.days_remaining(rec.end_date + timedelta(days=2)) == 0
    assert rec.covers(T0 + timedelta(days=1))
