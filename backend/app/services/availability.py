"""Availability resolver: which lesson start times are free on a given day."""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from backend.app.core.time import from_storage, local_datetime, local_day_bounds, to_local, to_storage, utc_now
from backend.app.crud.crud_blackout import blackout_crud
from backend.app.crud.crud_booking import booking_crud
from backend.app.models.blackout import BlackoutRange
from backend.app.services.calendar.client import BusyInterval
from backend.app.services.calendar.integration import CalendarIntegration
from backend.app.services.policies import evaluate_blackout
from backend.app.services.policy_settings import ALLOWED_DURATIONS, PolicySettings

logger = logging.getLogger(__name__)

SLOT_STEP = timedelta(minutes=30)
LONGEST_LESSON = timedelta(minutes=max(ALLOWED_DURATIONS))
DEFAULT_SEARCH_DAYS = 14

Interval = Tuple[datetime, datetime]


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime
    available: bool
    reason: Optional[str] = None


def _overlaps(start: datetime, end: datetime, intervals: Iterable[Interval]) -> bool:
    return any(start < other_end and other_start < end for other_start, other_end in intervals)


class AvailabilityResolver:
    """Builds tagged slot lists from business hours, bookings, blackouts and external busy time.

    Reads only. The answer may be stale by the time a caller books; the
    booking service's atomic reserve is the authority on conflicts.
    """

    def __init__(self, db: Session, policy: PolicySettings, integration: Optional[CalendarIntegration] = None):
        self.db = db
        self.policy = policy
        self.integration = integration

    def resolve(self, day: date, duration_minutes: int) -> List[Slot]:
        self.policy.price_for(duration_minutes)
        window_start, window_end = local_day_bounds(day)
        busy = self._external_busy(window_start, window_end)
        bookings = self._booked_intervals(window_start, window_end)
        blackouts = blackout_crud.active_between(self.db, start=day, end=day)
        return self._slots_for_day(day, duration_minutes, bookings, busy, blackouts)

    def next_open_slots(
        self,
        after: datetime,
        duration_minutes: int,
        limit: int = 3,
        horizon_days: int = DEFAULT_SEARCH_DAYS,
        now: Optional[datetime] = None,
    ) -> List[Slot]:
        """First ``limit`` bookable slots starting after ``after``, scanning day by day."""
        now = now or utc_now()
        earliest = max(from_storage(to_storage(after)), now + timedelta(hours=self.policy.booking_advance_hours))
        first_day = to_local(earliest).date()
        last_day = first_day + timedelta(days=horizon_days - 1)

        window_start = local_day_bounds(first_day)[0]
        window_end = local_day_bounds(last_day)[1]
        busy = self._external_busy(window_start, window_end)
        bookings = self._booked_intervals(window_start, window_end)
        blackouts = blackout_crud.active_between(self.db, start=first_day, end=last_day)

        found: List[Slot] = []
        for offset in range(horizon_days):
            day = first_day + timedelta(days=offset)
            for slot in self._slots_for_day(day, duration_minutes, bookings, busy, blackouts):
                if slot.available and slot.start > earliest:
                    found.append(slot)
                    if len(found) >= limit:
                        return found
        return found

    def _slots_for_day(
        self,
        day: date,
        duration_minutes: int,
        bookings: Sequence[Interval],
        busy: Sequence[Interval],
        blackouts: Sequence[BlackoutRange],
    ) -> List[Slot]:
        opens = local_datetime(day, self.policy.business_hours_start)
        closes = local_datetime(day, self.policy.business_hours_end)
        duration = timedelta(minutes=duration_minutes)
        blackout = evaluate_blackout(day, blackouts)

        slots: List[Slot] = []
        cursor = opens
        while cursor + duration <= closes:
            slot_end = cursor + duration
            start_utc, end_utc = cursor.astimezone(UTC), slot_end.astimezone(UTC)
            if not blackout.allowed:
                reason = "blackout"
            elif _overlaps(start_utc, end_utc, bookings):
                reason = "booked"
            elif _overlaps(start_utc, end_utc, busy):
                reason = "external_busy"
            else:
                reason = None
            slots.append(Slot(start=cursor, end=slot_end, available=reason is None, reason=reason))
            cursor += SLOT_STEP
        return slots

    def _booked_intervals(self, start: datetime, end: datetime) -> List[Interval]:
        # A lesson that started before the window can still run into it
        rows = booking_crud.occupying_between(
            self.db, start=to_storage(start - LONGEST_LESSON), end=to_storage(end)
        )
        intervals = []
        for booking in rows:
            booked_start = from_storage(booking.lesson_date)
            intervals.append((booked_start, booked_start + timedelta(minutes=booking.duration)))
        return intervals

    def _external_busy(self, start: datetime, end: datetime) -> List[Interval]:
        if self.integration is None:
            return []
        intervals: List[BusyInterval] = self.integration.busy_intervals(start, end)
        return [(interval.start.astimezone(UTC), interval.end.astimezone(UTC)) for interval in intervals]
