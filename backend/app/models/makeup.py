"""Make-up lesson requests and the communal Saturday sessions that fulfil them."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, Time

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base

MAKEUP_STATUSES = ("pending", "scheduled", "completed", "expired")
SATURDAY_SESSION_STATUSES = ("available", "full", "cancelled")


class MakeupLesson(Base):
    __tablename__ = "makeup_lessons"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    original_booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    saturday_session_id = Column(Integer, ForeignKey("saturday_sessions.id"), nullable=True, index=True)
    makeup_date = Column(DateTime, nullable=True)
    reason = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)


class SaturdaySession(Base):
    __tablename__ = "saturday_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_students = Column(Integer, nullable=False, default=4)
    current_students = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default="available")
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)
