"""Admin-declared date ranges in which no lessons are scheduled."""

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base


class BlackoutRange(Base):
    __tablename__ = "blackout_dates"

    id = Column(Integer, primary_key=True, index=True)
    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False, index=True)
    reason = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=storage_now)
