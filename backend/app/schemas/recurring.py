"""Recurring commitment schemas."""

import datetime as dt
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.schemas.booking import BookingRead
from backend.app.schemas.common import UTCDateTime


class RecurringCreate(BaseModel):
    duration: int = 60
    day_of_week: int = Field(ge=0, le=6, description="0 = Monday ... 6 = Sunday")
    time: dt.time
    frequency: str = "weekly"
    start_date: date
    end_date: Optional[date] = None
    lesson_type: str = "regular"


class RecurringUpdate(BaseModel):
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    time: Optional[dt.time] = None
    frequency: Optional[str] = None


class RecurringRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    duration: int
    price: Decimal
    day_of_week: int
    time: dt.time
    frequency: str
    start_date: date
    end_date: date
    status: str
    lesson_type: str
    created_at: UTCDateTime
    updated_at: UTCDateTime


class SkippedOccurrence(BaseModel):
    date: date
    code: str


class MaterializeRead(BaseModel):
    created: List[BookingRead]
    skipped: List[SkippedOccurrence]
