"""Billing cycle schemas."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from backend.app.schemas.common import UTCDateTime


class BillingCyclePaid(BaseModel):
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None


class BillingCycleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    recurring_booking_id: int
    cycle_month: int
    cycle_year: int
    total_amount: Decimal
    lessons_count: int
    status: str
    billing_date: date
    due_date: date
    paid_date: Optional[date]
    payment_method: Optional[str]
    payment_reference: Optional[str]
    created_at: UTCDateTime
