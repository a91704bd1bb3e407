"""Calendar sync schemas."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict

from backend.app.schemas.common import UTCDateTime


class SyncLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    booking_id: Optional[int]
    external_event_id: Optional[str]
    status: str
    error_message: Optional[str]
    sync_time: UTCDateTime


class CalendarStatusRead(BaseModel):
    state: str
    sync_enabled: bool
    last_successful_sync: Optional[datetime]
    bookings_by_sync_state: Dict[str, int]
    recent_errors: int
    recent: List[SyncLogRead]


class SweepResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempted: int
    succeeded: int
    failed: int
    conflicts: int
    pruned: int


class SyncLogEntryRead(SyncLogRead):
    lesson_date: Optional[UTCDateTime] = None
    client_name: Optional[str] = None


class CalendarSyncToggle(BaseModel):
    enabled: bool
