from __future__ import annotations
from typing import Literal, Optional
from pydantic import BaseModel, Field

DurationLiteral = Literal["daily", "weekly", "monthly", "quarterly", "semestral", "yearly"]


class SchoolActivationIn(BaseModel):
    school_id: int
    duration_type: DurationLiteral
    notes: Optional[str] = Field(None, max_length=2000)


class TeacherActivationIn(BaseModel):
    teacher_id: int
    duration_type: DurationLiteral = "yearly"
    payment_method: Literal["stripe", "mtn", "orange", "manual"] = "manual"
    payment_id: Optional[str] = Field(None, max_length=100)
    amount_paid: Optional[int] = Field(None, ge=0)
    notes: Optional[str] = Field(None, max_length=2000)
