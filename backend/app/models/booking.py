"""Lesson occurrence ("booking") model."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base

BOOKING_STATUSES = ("pending", "confirmed", "completed", "cancelled", "rescheduled")
ACTIVE_STATUSES = ("pending", "confirmed")
TERMINAL_STATUSES = ("completed", "cancelled")

CALENDAR_SYNC_STATES = ("unsynced", "synced", "stale", "pending_delete", "deleted")

_ACTIVE_PREDICATE = text("status IN ('pending', 'confirmed')")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    lesson_date = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, nullable=False, default=60)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")
    notes = Column(Text, nullable=True)
    lesson_type = Column(String(30), nullable=False, default="regular")
    reschedule_count = Column(Integer, nullable=False, default=0)
    original_date = Column(DateTime, nullable=True)
    recurring_booking_id = Column(Integer, ForeignKey("recurring_bookings.id"), nullable=True, index=True)
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    external_event_id = Column(String(255), nullable=True)
    calendar_sync_state = Column(String(20), nullable=False, default="unsynced")
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)

    __table_args__ = (
        # At most one non-terminal booking per start timestamp; enforced by the database
        Index(
            "uq_bookings_active_lesson_date",
            "lesson_date",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
