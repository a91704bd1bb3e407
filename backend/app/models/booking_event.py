"""Lifecycle events consumed by the notifier and calendar sync."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base

EVENT_KINDS = ("created", "confirmed", "cancelled", "rescheduled", "completed")


class BookingEvent(Base):
    __tablename__ = "booking_events"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    kind = Column(String(20), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=storage_now, index=True)
