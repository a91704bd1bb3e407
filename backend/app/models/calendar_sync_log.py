"""Diagnostic log of external calendar push/pull attempts."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base


class CalendarSyncLog(Base):
    __tablename__ = "calendar_sync_log"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(50), nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)
    external_event_id = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)
    error_message = Column(Text, nullable=True)
    sync_time = Column(DateTime, nullable=False, default=storage_now, index=True)
