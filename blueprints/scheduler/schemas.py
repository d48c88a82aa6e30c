from __future__ import annotations
from datetime import date, datetime, time
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator, model_validator


class RecurrenceIn(BaseModel):
    school_id: Optional[int] = None  # только для ADMIN, у директора всегда своя школа
    teacher_id: int
    class_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    subject: Optional[str] = Field(None, max_length=255)
    rule_type: Literal["daily", "weekly", "biweekly", "custom"]
    interval: int = Field(1, ge=1)
    by_day: Optional[List[str]] = None
    custom_dates: Optional[List[date]] = None
    start_time: time
    duration_minutes: int = Field(60, gt=0, le=600)
    start_date: date
    end_date: Optional[date] = None
    auto_notify: bool = True
    generate_weeks: int = Field(4, ge=1, le=52)

    @field_validator("title")
    @classmethod
    def _strip(cls, v: str):
        if not v.strip():
            raise ValueError("title_required")
        return v.strip()


class RecurrenceUpdateIn(BaseModel):
    action: Literal["pause", "resume", "end"]
    reason: Optional[str] = Field(None, max_length=1000)
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _end_needs_date(self):
        if self.action == "end" and self.end_date is None:
            raise ValueError("end_date is required for action=end")
        return self


class GenerateIn(BaseModel):
    weeks_ahead: int = Field(4, ge=1, le=52)


class SessionIn(BaseModel):
    school_id: Optional[int] = None
    teacher_id: int
    class_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)
    scheduled_start: datetime
    duration_minutes: int = Field(60, gt=0, le=600)
    auto_notify: bool = True
