"""Blackout range schemas."""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BlackoutCreate(BaseModel):
    start_date: date
    end_date: date
    reason: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class BlackoutRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    start_date: date
    end_date: date
    reason: str
    description: Optional[str]
    is_active: bool
    created_at: datetime
