from __future__ import annotations
from datetime import datetime, time, timedelta
from functools import partial
from types import SimpleNamespace
import pytest

from app import create_app
from extensions import db
from models import School, TimetableSlot
from blueprints.access import policy, services as access
from blueprints.access.directory import Principal, is_exempt_email, principal_for
from blueprints.activations import services as registry

# 2025-01-06 — понедельник
MON = datetime(2025, 1, 6)

def slots_table(table):
    """Заглушка расписания: {day_of_week: [(start, end), ...]}."""
    return lambda school_id, dow: list(table.get(dow, []))

ONE_CLASS = slots_table({0: [(time(8, 0), time(10, 0))], 1: [(time(9, 0), time(11, 0))]})

def at(h, m=0, day=MON):
    return day.replace(hour=h, minute=m)

# ---------- TimeWindowPolicy ----------
def test_morning_window():
    d = policy.classify(1, at(6, 30), load_slots=ONE_CLASS)
    assert d.in_window and d.reason == "before_school_hours"
    assert (d.window_start, d.window_end) == (at(6), at(8))

def test_during_school_hours():
    d = policy.classify(1, at(9), load_slots=ONE_CLASS)
    assert not d.in_window and d.reason == "during_school_hours"
    assert d.next_available_at == at(10)

def test_evening_window_end_inclusive():
    d = policy.classify(1, at(11, 30), load_slots=ONE_CLASS)
    assert d.in_window and d.reason == "after_school_hours"
    assert d.window_end == at(12)
    assert policy.classify(1, at(12), load_slots=ONE_CLASS).in_window

def test_before_morning_window_points_to_today():
    d = policy.classify(1, at(5), load_slots=ONE_CLASS)
    assert not d.in_window and d.reason == "outside_allowed_windows"
    assert d.next_available_at == at(6)

def test_after_evening_window_points_to_next_day():
    d = policy.classify(1, at(13), load_slots=ONE_CLASS)
    assert d.reason == "outside_allowed_windows"
    # вторник: первый урок в 9:00 → окно с 7:00
    assert d.next_available_at == datetime(2025, 1, 7, 7, 0)

def test_next_day_without_classes_opens_at_midnight():
    friday_only = slots_table({4: [(time(8, 0), time(10, 0))]})
    d = policy.classify(1, datetime(2025, 1, 10, 20, 0), load_slots=friday_only)
    assert d.next_available_at == datetime(2025, 1, 11, 0, 0)

def test_no_classes_is_unrestricted():
    d = policy.classify(1, at(9, day=datetime(2025, 1, 12)), load_slots=ONE_CLASS)
    assert d.in_window and d.reason == "no_classes_scheduled"

def test_first_and_last_across_several_slots():
    table = slots_table({0: [(time(13, 0), time(15, 0)), (time(8, 0), time(10, 0))]})
    assert policy.classify(1, at(12), load_slots=table).reason == "during_school_hours"
    assert policy.classify(1, at(16), load_slots=table).reason == "after_school_hours"

def test_custom_margin():
    d = policy.classify(1, at(6, 30), load_slots=ONE_CLASS, margin=timedelta(minutes=30))
    assert d.reason == "outside_allowed_windows"
    assert d.next_available_at == at(7, 30)

# ---------- AccessEvaluator (чистые заглушки) ----------
def fake_lookup(records):
    def lookup(kind, activator_id, now):
        return records.get((kind.value, activator_id))
    return lookup

def record(start=MON - timedelta(days=1), end=MON + timedelta(days=30)):
    return SimpleNamespace(start_date=start, end_date=end, days_remaining=lambda now: (end - now).days)

CLASSIFY = partial(policy.classify, load_slots=ONE_CLASS)
TEACHER = Principal(id=5, school_id=1)

def test_exempt_allowed_at_any_time():
    p = Principal(id=5, school_id=1, exempt=True)
    for h in (3, 9, 23):
        d = access.evaluate(p, at(h), lookup=fake_lookup({}), classify=CLASSIFY)
        assert d.allowed and d.reason == "exempt"

def test_personal_outranks_school_and_ignores_window():
    lookup = fake_lookup({("teacher", 5): record(), ("school", 1): record()})
    d = access.evaluate(TEACHER, at(9), lookup=lookup, classify=CLASSIFY)
    assert d.allowed and d.reason == "personal-active"
    assert d.activation_type == "teacher"
    assert d.time_window is None

def test_school_activation_applies_window():
    lookup = fake_lookup({("school", 1): record()})
    denied = access.evaluate(TEACHER, at(9), lookup=lookup, classify=CLASSIFY)
    assert not denied.allowed and denied.reason == "during_school_hours"
    assert denied.next_available_at == at(10)
    assert denied.activation_type == "school"
    allowed = access.evaluate(TEACHER, at(6, 30), lookup=lookup, classify=CLASSIFY)
    assert allowed.allowed and allowed.reason == "before_school_hours"
    assert allowed.to_dict()["time_window"] == {"start": "2025-01-06T06:00:00", "end": "2025-01-06T08:00:00"}

def test_no_entitlement():
    d = access.evaluate(TEACHER, at(9), lookup=fake_lookup({}), classify=CLASSIFY)
    assert not d.allowed and d.reason == "no-entitlement"
    assert d.to_dict()["subscription"] is None
    # независимый преподаватель без школы
    d2 = access.evaluate(Principal(id=6), at(9), lookup=fake_lookup({("school", 1): record()}), classify=CLASSIFY)
    assert d2.reason == "no-entitlement"

def test_evaluate_is_deterministic():
    lookup = fake_lookup({("school", 1): record()})
    a = access.evaluate(TEACHER, at(11), lookup=lookup, classify=CLASSIFY)
    b = access.evaluate(TEACHER, at(11), lookup=lookup, classify=CLASSIFY)
    assert a == b

def test_subscription_end_date_prefers_personal():
    personal, school = record(end=MON + timedelta(days=3)), record(end=MON + timedelta(days=90))
    lookup = fake_lookup({("teacher", 5): personal, ("school", 1): school})
    assert access.subscription_end_date(TEACHER, MON, lookup=lookup) == (personal.end_date, "teacher")
    assert access.subscription_end_date(Principal(id=5, exempt=True), MON, lookup=lookup) == (None, "exempt")
    assert access.subscription_end_date(Principal(id=8), MON, lookup=fake_lookup({})) == (None, None)

# ---------- exemption ----------
@pytest.mark.parametrize("email, expected", [
    ("sandbox@educafric.com", True),
    ("someone@educafric.demo", True),
    ("Teacher@Test.Educafric.com", True),
    ("demo.teacher@educafric.com", True),
    ("testsimon@yahoo.com", False),
    ("prof@lycee.cm", False),
    (None, False),
])
def test_exempt_email_classification(email, expected):
    assert is_exempt_email(email) is expected

# ---------- с БД ----------
@pytest.fixture()
def app_ctx():
    app = create_app("test")
    with app.app_context():
        db.create_all()
        school = School(name="Lycée Test")
        db.session.add(school); db.session.commit()
        db.session.add(TimetableSlot(school_id=school.id, day_of_week=0, start_time=time(8, 0),
                                     end_time=time(10, 0), is_active=True))
        db.session.add(TimetableSlot(school_id=school.id, day_of_week=0, start_time=time(10, 0),
                                     end_time=time(16, 0), is_active=False))
        db.session.commit()
        app.config["SCHOOL_ID"] = school.id
        yield app
        db.drop_all()

def test_get_active_slots_skips_inactive(app_ctx):
    assert policy.get_active_slots(app_ctx.config["SCHOOL_ID"], 0) == [(time(8, 0), time(10, 0))]
    assert policy.get_active_slots(app_ctx.config["SCHOOL_ID"], 3) == []

def test_expired_school_but_active_personal(app_ctx):
    school_id = app_ctx.config["SCHOOL_ID"]
    registry.activate("school", school_id, "daily", now=MON - timedelta(days=10))
    registry.activate("teacher", 42, "monthly", now=MON - timedelta(days=1))
    registry.sweep_expired(MON)
    d = access.evaluate(Principal(id=42, school_id=school_id), at(9))
    assert d.allowed and d.reason == "personal-active"
    assert d.subscription.days_remaining == 30

def test_school_activation_with_real_timetable(app_ctx):
    school_id = app_ctx.config["SCHOOL_ID"]
    registry.activate("school", school_id, "yearly", now=MON - timedelta(days=1))
    p = Principal(id=42, school_id=school_id)
    assert access.evaluate(p, at(6, 30)).reason == "before_school_hours"
    d = access.evaluate(p, at(9))
    assert not d.allowed and d.next_available_at == at(10)
    assert access.evaluate(p, at(11, 30)).reason == "after_school_hours"
    # вторник без уроков
    assert access.evaluate(p, at(9, day=datetime(2025, 1, 7))).reason == "no_classes_scheduled"

def test_principal_for_user(app_ctx):
    user = SimpleNamespace(id=1, school_id=None, email="demo@educafric.com", role="TEACHER")
    p = principal_for(user)
    assert p.exempt and p.school_id is None

def test_resolve_principal(app_ctx):
    from models import User
    from blueprints.access.directory import resolve_principal
    from blueprints.core.errors import NotFoundError
    u = User(email="prof@lycee.cm", password_hash="x", role="TEACHER", school_id=app_ctx.config["SCHOOL_ID"])
    db.session.add(u); db.session.commit()
    p = resolve_principal(u.id)
    assert (p.id, p.school_id, p.exempt) == (u.id, app_ctx.config["SCHOOL_ID"], False)
    with pytest.raises(NotFoundError) as ei:
        resolve_principal(9999)
    assert ei.value.code == "PRINCIPAL_NOT_FOUND"
