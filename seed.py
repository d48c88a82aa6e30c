"""
Idempotent seed-скрипт.
Запуск:
  python seed.py --reset         # дропнуть и пересоздать БД + демо-данные + admin
  python seed.py --ensure-admin  # создать только пользователя admin@example.com (без сидов)
  python seed.py                 # мягкое наполнение недостающих данных (idempotent)
"""
from datetime import date, time, timedelta
import argparse
from werkzeug.security import generate_password_hash

from app import create_app
from extensions import db
from models import (
    School, SchoolClass, User, UserRole, TimetableSlot, RecurrenceRule,
    ActivatorType, DurationType,
)
from blueprints.activations import services as activations
from blueprints.scheduler import services as scheduler

DEMO_SCHOOL = "Lycée Démo de Douala"
ADMIN_EMAIL = "admin@example.com"

# ---- вспомогательные утилиты ----
def get_or_create(model, defaults=None, **by):
    """Идемпотентное создание по уникальным ключам."""
    inst = db.session.query(model).filter_by(**by).first()
    if inst:
        return inst, False
    data = dict(defaults or {})
    data.update(by)
    inst = model(**data)
    db.session.add(inst)
    db.session.flush()
    return inst, True

def ensure_user(email, role, password="pass", **extra):
    user, created = get_or_create(User, email=email, defaults=dict(
        password_hash=generate_password_hash(password), role=role, is_active=True, **extra))
    return user

# ---- школа, классы, расписание очных уроков ----
def seed_school():
    ids = {}
    school, _ = get_or_create(School, name=DEMO_SCHOOL)
    ids["school_id"] = school.id

    c1, _ = get_or_create(SchoolClass, school_id=school.id, name="6ème A")
    c2, _ = get_or_create(SchoolClass, school_id=school.id, name="5ème B")
    ids["class_6a_id"] = c1.id
    ids["class_5b_id"] = c2.id

    # пн–пт: 08:00–12:00 и 13:00–15:00; выходные без уроков
    for dow in range(5):
        for start, end in ((time(8, 0), time(12, 0)), (time(13, 0), time(15, 0))):
            get_or_create(TimetableSlot, school_id=school.id, day_of_week=dow,
                          start_time=start, end_time=end, defaults=dict(is_active=True))

    director = ensure_user("director@example.com", UserRole.DIRECTOR.value,
                           full_name="Directeur Démo", school_id=school.id)
    teacher = ensure_user("teacher@example.com", UserRole.TEACHER.value,
                          full_name="Enseignant Démo", school_id=school.id)
    ids["director_id"] = director.id
    ids["teacher_id"] = teacher.id
    db.session.commit()
    return ids

# ---- активация + недельное правило ----
def seed_online_classes(ids):
    if activations.current_activation(ActivatorType.SCHOOL, ids["school_id"]) is None:
        activations.activate(ActivatorType.SCHOOL, ids["school_id"], DurationType.YEARLY,
                             activations.ActivationOrigin(notes="demo seed"))

    rule = db.session.query(RecurrenceRule).filter_by(school_id=ids["school_id"], title="Mathématiques en ligne").first()
    if rule is None:
        rule = scheduler.create_rule(
            school_id=ids["school_id"], teacher_id=ids["teacher_id"], class_id=ids["class_6a_id"],
            title="Mathématiques en ligne", subject="Mathématiques",
            rule_type="weekly", by_day=["monday", "wednesday"],
            start_time=time(17, 0), duration_minutes=60,
            start_date=date.today(), end_date=date.today() + timedelta(weeks=12),
            created_by=ids["director_id"],
        )
    return scheduler.generate(rule.id)

# ---- админ ----
def ensure_admin():
    if db.session.query(User).filter_by(email=ADMIN_EMAIL).first():
        return False
    ensure_user(ADMIN_EMAIL, UserRole.ADMIN.value, password="admin")
    db.session.commit()
    return True

# ---- main ----
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset", action="store_true", help="drop + create + full seed (demo)")
    parser.add_argument("--ensure-admin", action="store_true", help="create only the admin user")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
            ids = seed_school()
            created = seed_online_classes(ids)
            ensure_admin()
            print(f"[seed] reset+seed complete, sessions: {len(created)}")
            return

        if args.ensure_admin:
            created = ensure_admin()
            print("Admin created." if created else "Admin already exists.")
            return

        # по умолчанию только дозаполняем недостающие данные
        db.create_all()
        ids = seed_school()
        created = seed_online_classes(ids)
        print(f"[seed] soft seed complete, new sessions: {len(created)}")

if __name__ == "__main__":
    main()
