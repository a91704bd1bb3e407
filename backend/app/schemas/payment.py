"""Payment schemas."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict

from backend.app.schemas.common import UTCDateTime


class PaymentCreate(BaseModel):
    booking_id: int
    method: str
    reference: Optional[str] = None


class PaymentComplete(BaseModel):
    reference: Optional[str] = None


class RefundRequest(BaseModel):
    reason: str


class PaymentRead(BaseModel):
    id: int
    booking_id: int
    user_id: int
    amount: Decimal
    method: Optional[str]
    reference: Optional[str]
    status: str
    notes: Optional[str]
    paid_at: Optional[UTCDateTime]
    refund_reason: Optional[str]
    created_at: UTCDateTime
    updated_at: UTCDateTime

    model_config = ConfigDict(from_attributes=True)
