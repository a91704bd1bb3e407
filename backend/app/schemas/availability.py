"""Availability schemas."""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class SlotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    start: datetime
    end: datetime
    available: bool
    reason: Optional[str] = None


class AvailabilityRead(BaseModel):
    date: date
    duration: int
    slots: List[SlotRead]
