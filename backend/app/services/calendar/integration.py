"""Process-wide external calendar integration with an explicit configured state."""

import enum
import logging
from datetime import datetime
from typing import List, Optional

from backend.app.core.exceptions import ExternalSyncError
from backend.app.core.settings import Settings, get_settings
from backend.app.services.calendar.client import BusyInterval, CalendarClient, GoogleCalendarClient

logger = logging.getLogger(__name__)


class SyncState(str, enum.Enum):
    CONFIGURED = "configured"
    NOT_CONFIGURED = "not_configured"


class CalendarIntegration:
    def __init__(self, client: Optional[CalendarClient] = None):
        self.client = client
        self.state = SyncState.CONFIGURED if client is not None else SyncState.NOT_CONFIGURED

    @property
    def is_configured(self) -> bool:
        return self.state is SyncState.CONFIGURED

    @classmethod
    def from_settings(cls, settings: Settings) -> "CalendarIntegration":
        if not (settings.google_refresh_token or settings.google_access_token):
            logger.info("Google Calendar credentials not set; external sync disabled")
            return cls()
        client = GoogleCalendarClient(
            calendar_id=settings.google_calendar_id,
            access_token=settings.google_access_token,
            refresh_token=settings.google_refresh_token,
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            base_url=settings.google_api_base_url,
            token_url=settings.google_token_url,
            timeout=settings.calendar_timeout_seconds,
            timezone_name=settings.studio_timezone,
        )
        return cls(client)

    def busy_intervals(self, start: datetime, end: datetime) -> List[BusyInterval]:
        """External busy time for the window; empty when unavailable."""
        if not self.is_configured:
            return []
        try:
            return self.client.list_busy_intervals(start, end)
        except ExternalSyncError as exc:
            logger.warning("External busy lookup failed, using internal bookings only: %s", exc.message)
            return []


_integration: Optional[CalendarIntegration] = None


def get_calendar_integration() -> CalendarIntegration:
    global _integration
    if _integration is None:
        _integration = CalendarIntegration.from_settings(get_settings())
    return _integration
