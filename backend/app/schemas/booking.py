"""Booking schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from backend.app.schemas.common import UTCDateTime
from backend.app.schemas.payment import PaymentRead


class BookingCreate(BaseModel):
    start_time: datetime
    duration: int = 60
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingReschedule(BaseModel):
    new_start: datetime
    notes: Optional[str] = Field(default=None, max_length=2000)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class BookingStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = None


class BookingRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    lesson_date: UTCDateTime
    duration: int
    price: Decimal
    status: str
    payment_status: str
    notes: Optional[str]
    lesson_type: str
    reschedule_count: int
    original_date: Optional[UTCDateTime]
    recurring_booking_id: Optional[int]
    cancellation_reason: Optional[str]
    cancelled_at: Optional[UTCDateTime]
    external_event_id: Optional[str]
    calendar_sync_state: str
    created_at: UTCDateTime
    updated_at: UTCDateTime


class CancellationRead(BaseModel):
    booking: BookingRead
    late_fee_charged: bool
    fee_payment: Optional[PaymentRead] = None


class BookingEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_id: int
    user_id: int
    kind: str
    details: Dict[str, Any]
    created_at: UTCDateTime
