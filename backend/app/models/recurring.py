"""Recurring weekly/biweekly lesson commitment."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Time

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base

FREQUENCIES = ("weekly", "biweekly")
COMMITMENT_STATUSES = ("active", "paused", "completed", "cancelled")
LESSON_TYPES = ("regular", "makeup", "audition_coaching")


class RecurringCommitment(Base):
    __tablename__ = "recurring_bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    duration = Column(Integer, nullable=False, default=60)
    price = Column(Numeric(10, 2), nullable=False)
    # 0 = Monday ... 6 = Sunday
    day_of_week = Column(Integer, nullable=False)
    time = Column(Time, nullable=False)
    frequency = Column(String(20), nullable=False, default="weekly")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="active")
    lesson_type = Column(String(30), nullable=False, default="regular")
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)
