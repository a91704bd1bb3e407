"""Make-up lesson and Saturday session schemas."""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.schemas.common import UTCDateTime


class MakeupCreate(BaseModel):
    original_booking_id: int
    reason: str = Field(min_length=1, max_length=2000)


class MakeupSchedule(BaseModel):
    makeup_date: datetime


class MakeupRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    original_booking_id: int
    saturday_session_id: Optional[int]
    makeup_date: Optional[UTCDateTime]
    reason: str
    status: str
    created_at: UTCDateTime


class SaturdaySessionCreate(BaseModel):
    session_date: date
    start_time: time
    end_time: time
    max_students: Optional[int] = None


class SaturdayJoin(BaseModel):
    makeup_lesson_id: int


class SaturdaySessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_date: date
    start_time: time
    end_time: time
    max_students: int
    current_students: int
    status: str
