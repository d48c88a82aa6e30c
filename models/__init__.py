from __future__ import annotations
from datetime import datetime, time, date, timedelta
from enum import Enum as PyEnum

from sqlalchemy import (
    Enum, ForeignKey, UniqueConstraint, Index, Boolean, Date, DateTime, Time,
    Integer, String, Text, JSON
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from extensions import db

# ---------- Enums ----------
class UserRole(str, PyEnum):
    ADMIN = "ADMIN"
    DIRECTOR = "DIRECTOR"
    TEACHER = "TEACHER"

class RuleType(str, PyEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    CUSTOM = "custom"

class SessionStatus(str, PyEnum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"
    CANCELED = "canceled"

class ActivatorType(str, PyEnum):
    SCHOOL = "school"
    TEACHER = "teacher"

class DurationType(str, PyEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMESTRAL = "semestral"
    YEARLY = "yearly"

class ActivationStatus(str, PyEnum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# ---------- Directory ----------
class School(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    classes = relationship("SchoolClass", back_populates="school", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<School {self.name}>"


class SchoolClass(db.Model):
    __tablename__ = "school_class"
    id: Mapped[int] = mapped_column(primary_key=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("school.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    school = relationship("School", back_populates="classes")

    __table_args__ = (
        UniqueConstraint("school_id", "name", name="uq_school_class_name"),
    )


class User(db.Model):
    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=UserRole.TEACHER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # NULL: независимый преподаватель
    school_id: Mapped[int | None] = mapped_column(ForeignKey("school.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    school = relationship("School")

    def get_id(self) -> str:
        return str(self.id)

    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    def __repr__(self):
        return f"<User {self.email}>"


class TimetableSlot(db.Model):
    """Школьное расписание очных уроков (ведётся вне этого сервиса)."""
    __tablename__ = "timetable_slot"
    id: Mapped[int] = mapped_column(primary_key=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("school.id", ondelete="CASCADE"), nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Mon .. 6=Sun
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_timetable_school_day", "school_id", "day_of_week"),
    )


# ---------- Scheduling ----------
class RecurrenceRule(db.Model):
    __tablename__ = "online_class_recurrences"
    id: Mapped[int] = mapped_column(primary_key=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("school.id", ondelete="RESTRICT"), nullable=False, index=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    class_id: Mapped[int] = mapped_column(ForeignKey("school_class.id", ondelete="RESTRICT"), nullable=False)
    subject: Mapped[str | None] = mapped_column(String(255))
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    rule_type: Mapped[RuleType] = mapped_column(Enum(RuleType), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    by_day: Mapped[list | None] = mapped_column(JSON)        # ["monday", "wednesday"]
    custom_dates: Mapped[list | None] = mapped_column(JSON)  # ["2025-01-03", ...]
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=60)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)

    occurrences_generated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_generated: Mapped[datetime | None] = mapped_column(DateTime)
    next_generation_horizon: Mapped[date | None] = mapped_column(Date)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime)
    paused_by: Mapped[int | None] = mapped_column(ForeignKey("user.id", ondelete="SET NULL"))
    pause_reason: Mapped[str | None] = mapped_column(Text)

    auto_notify: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    sessions = relationship("SessionInstance", back_populates="recurrence")

    def __repr__(self):
        return f"<RecurrenceRule {self.id} {self.rule_type.value}>"


class SessionInstance(db.Model):
    __tablename__ = "class_sessions"
    id: Mapped[int] = mapped_column(primary_key=True)
    recurrence_id: Mapped[int | None] = mapped_column(
        ForeignKey("online_class_recurrences.id", ondelete="SET NULL"), nullable=True, index=True)
    school_id: Mapped[int] = mapped_column(ForeignKey("school.id", ondelete="RESTRICT"), nullable=False, index=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="RESTRICT"), nullable=False, index=True)
    class_id: Mapped[int] = mapped_column(ForeignKey("school_class.id", ondelete="RESTRICT"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)

    session_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_start: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    scheduled_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    actual_start: Mapped[datetime | None] = mapped_column(DateTime)
    actual_end: Mapped[datetime | None] = mapped_column(DateTime)
    status: Mapped[SessionStatus] = mapped_column(Enum(SessionStatus), nullable=False, default=SessionStatus.SCHEDULED)
    room_name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    max_duration: Mapped[int] = mapped_column(Integer, nullable=False, default=120)

    creator_type: Mapped[str] = mapped_column(String(20), nullable=False, default="school")
    created_by: Mapped[int] = mapped_column(ForeignKey("user.id", ondelete="RESTRICT"), nullable=False)
    notifications_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reminder_sent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    recurrence = relationship("RecurrenceRule", back_populates="sessions")

    __table_args__ = (
        # одна сессия на (правило, дата); NULL-правила не конфликтуют
        UniqueConstraint("recurrence_id", "session_date", name="uq_session_recurrence_date"),
    )

    def __repr__(self):
        return f"<SessionInstance {self.id} {self.scheduled_start:%Y-%m-%d %H:%M}>"


# ---------- Entitlements ----------
class ActivationRecord(db.Model):
    """Общая таблица активаций; конкретный вид задаётся подклассом."""
    __tablename__ = "online_class_activations"
    id: Mapped[int] = mapped_column(primary_key=True)
    activator_type: Mapped[str] = mapped_column(String(20), nullable=False)
    activator_id: Mapped[int] = mapped_column(Integer, nullable=False)
    duration_type: Mapped[DurationType] = mapped_column(Enum(DurationType), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[ActivationStatus] = mapped_column(Enum(ActivationStatus), nullable=False, default=ActivationStatus.ACTIVE)

    activated_by: Mapped[str] = mapped_column(String(30), nullable=False, default="admin_manual")
    admin_user_id: Mapped[int | None] = mapped_column(Integer)
    payment_id: Mapped[str | None] = mapped_column(String(100))
    payment_method: Mapped[str | None] = mapped_column(String(30))
    amount_paid: Mapped[int | None] = mapped_column(Integer)
    notes: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __mapper_args__ = {"polymorphic_on": activator_type}
    __table_args__ = (
        Index("ix_activation_lookup", "activator_type", "activator_id", "status"),
    )

    def covers(self, now: datetime) -> bool:
        return (self.status == ActivationStatus.ACTIVE
                and self.start_date <= now <= self.end_date)

    def days_remaining(self, now: datetime) -> int:
        left = self.end_date - now
        return max(0, -(-left // timedelta(days=1)))

    def __repr__(self):
        return f"<{type(self).__name__} {self.activator_id} {self.status.value} until {self.end_date:%Y-%m-%d}>"


class SchoolActivation(ActivationRecord):
    __mapper_args__ = {"polymorphic_identity": ActivatorType.SCHOOL.value}


class TeacherActivation(ActivationRecord):
    __mapper_args__ = {"polymorphic_identity": ActivatorType.TEACHER.value}


ACTIVATION_CLASSES: dict[ActivatorType, type[ActivationRecord]] = {
    ActivatorType.SCHOOL: SchoolActivation,
    ActivatorType.TEACHER: TeacherActivation,
}
