"""Payment records attached to bookings."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base

PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    method = Column(String(50), nullable=True)
    reference = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="pending")
    notes = Column(Text, nullable=True)
    paid_at = Column(DateTime, nullable=True)
    refund_reason = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)
