"""Key/value business settings edited by the studio admin."""

from sqlalchemy import Column, DateTime, Integer, String, Text

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base


class StudioSetting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)
