"""Reconciles internal bookings with the external calendar.

The booking store is the source of truth. Pushes are best effort: a failure
is written to the sync log and the booking keeps its sync state so that a
later sweep retries it.
"""

import logging
import time as time_module
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backend.app.core.exceptions import ExternalSyncError
from backend.app.core.time import from_storage, to_local, to_storage, utc_now
from backend.app.db.session import SessionLocal
from backend.app.models.booking import ACTIVE_STATUSES, CALENDAR_SYNC_STATES, Booking
from backend.app.models.calendar_sync_log import CalendarSyncLog
from backend.app.models.user import User
from backend.app.services.calendar.client import EventDetails
from backend.app.services.calendar.integration import CalendarIntegration, get_calendar_integration
from backend.app.services.policy_settings import PolicySettingsProvider

logger = logging.getLogger(__name__)

INCREMENTAL_LIMIT = 10
FULL_LIMIT = 50
LOG_RETENTION_DAYS = 30
PULL_HORIZON_DAYS = 14
NEEDS_PUSH = ("unsynced", "stale")


@dataclass
class SweepResult:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    conflicts: int = 0
    pruned: int = 0


class CalendarReconciler:
    def __init__(
        self,
        db: Session,
        integration: CalendarIntegration,
        delay_seconds: float = 0.0,
        sleep: Callable[[float], None] = time_module.sleep,
    ):
        self.db = db
        self.integration = integration
        self.delay_seconds = delay_seconds
        self._sleep = sleep

    def sync_enabled(self) -> bool:
        """Credentials are present and the studio has not paused sync."""
        return self.integration.is_configured and PolicySettingsProvider(self.db).calendar_sync_enabled()

    def _log(
        self,
        action: str,
        status: str,
        booking_id: Optional[int] = None,
        external_event_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self.db.add(
            CalendarSyncLog(
                action=action,
                booking_id=booking_id,
                external_event_id=external_event_id,
                status=status,
                error_message=error_message,
            )
        )
        self.db.commit()

    def _event_details(self, booking: Booking) -> EventDetails:
        client = self.db.query(User).filter(User.id == booking.user_id).first()
        name = client.display_name if client else f"Client {booking.user_id}"
        start = to_local(booking.lesson_date)
        kind = booking.lesson_type.replace("_", " ")
        return EventDetails(
            summary=f"{booking.duration}-min {kind} lesson - {name}",
            start=start,
            end=start + timedelta(minutes=booking.duration),
            description=f"Booking #{booking.id} ({booking.status})",
        )

    def push_booking(self, booking_id: int) -> bool:
        """Bring one booking's external event in line with the store. Returns True when nothing is left to do."""
        if not self.sync_enabled():
            logger.debug("Calendar sync inactive; skipping push for booking %s", booking_id)
            return False
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None:
            return False

        snapshot = (booking.lesson_date, booking.status)
        event_id = booking.external_event_id
        if booking.status in ACTIVE_STATUSES and booking.calendar_sync_state in NEEDS_PUSH:
            action = "update" if event_id else "create"
        elif booking.calendar_sync_state == "pending_delete" and event_id:
            action = "delete"
        else:
            return True

        client = self.integration.client
        try:
            if action == "create":
                event_id = client.create_event(self._event_details(booking))
            elif action == "update":
                client.update_event(event_id, self._event_details(booking))
            else:
                client.delete_event(event_id)
        except ExternalSyncError as exc:
            self.db.rollback()
            logger.warning("Calendar %s for booking %s failed: %s", action, booking_id, exc.message)
            self._log(action, "error", booking_id, event_id, exc.message)
            return False

        # The booking may have moved while the call was in flight
        fresh = self.db.query(Booking).filter(Booking.id == booking_id).populate_existing().one()
        fresh.external_event_id = event_id
        if action == "delete":
            fresh.calendar_sync_state = "deleted"
        elif (fresh.lesson_date, fresh.status) == snapshot:
            fresh.calendar_sync_state = "synced"
        elif fresh.status in ACTIVE_STATUSES:
            fresh.calendar_sync_state = "stale"
        else:
            fresh.calendar_sync_state = "pending_delete"
        self.db.commit()
        self._log(action, "success", booking_id, event_id)
        return True

    def _push_many(self, bookings: List[Booking], result: SweepResult, delay: float) -> None:
        for index, booking in enumerate(bookings):
            if index and delay:
                self._sleep(delay)
            result.attempted += 1
            if self.push_booking(booking.id):
                result.succeeded += 1
            else:
                result.failed += 1

    def incremental_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utc_now()
        result = SweepResult()
        if not self.sync_enabled():
            return result
        created_since = to_storage(now - timedelta(hours=24))
        candidates = (
            self.db.query(Booking)
            .filter(
                Booking.status.in_(ACTIVE_STATUSES),
                or_(
                    (Booking.calendar_sync_state == "unsynced") & (Booking.created_at >= created_since),
                    Booking.calendar_sync_state == "stale",
                ),
            )
            .order_by(Booking.created_at.asc())
            .limit(INCREMENTAL_LIMIT)
            .all()
        )
        self._push_many(candidates, result, 0.0)
        logger.info("Incremental calendar sweep: %d pushed, %d failed", result.succeeded, result.failed)
        return result

    def prune_log(self, now: datetime) -> int:
        cutoff = to_storage(now - timedelta(days=LOG_RETENTION_DAYS))
        pruned = self.db.query(CalendarSyncLog).filter(CalendarSyncLog.sync_time < cutoff).delete(
            synchronize_session=False
        )
        self.db.commit()
        return pruned

    def full_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or utc_now()
        result = SweepResult()
        result.pruned = self.prune_log(now)
        if not self.sync_enabled():
            return result

        candidates = (
            self.db.query(Booking)
            .filter(
                or_(
                    Booking.status.in_(ACTIVE_STATUSES)
                    & Booking.calendar_sync_state.in_(NEEDS_PUSH)
                    & (Booking.lesson_date >= to_storage(now)),
                    Booking.calendar_sync_state == "pending_delete",
                )
            )
            .order_by(Booking.lesson_date.asc())
            .limit(FULL_LIMIT)
            .all()
        )
        self._push_many(candidates, result, self.delay_seconds)
        result.conflicts = self.detect_conflicts(now)
        logger.info(
            "Full calendar sweep: %d pushed, %d failed, %d conflicts, %d log rows pruned",
            result.succeeded,
            result.failed,
            result.conflicts,
            result.pruned,
        )
        return result

    def detect_conflicts(self, now: datetime) -> int:
        """Log external events that overlap an internal active booking."""
        window_end = now + timedelta(days=PULL_HORIZON_DAYS)
        try:
            intervals = self.integration.client.list_busy_intervals(now, window_end)
        except ExternalSyncError as exc:
            logger.warning("Calendar pull failed: %s", exc.message)
            self._log("pull", "error", error_message=exc.message)
            return 0

        bookings = (
            self.db.query(Booking)
            .filter(
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.lesson_date >= to_storage(now - timedelta(hours=2)),
                Booking.lesson_date < to_storage(window_end),
            )
            .all()
        )
        own_events = {booking.external_event_id for booking in bookings if booking.external_event_id}
        conflicts = 0
        for interval in intervals:
            if interval.event_id and interval.event_id in own_events:
                continue
            for booking in bookings:
                start = from_storage(booking.lesson_date)
                end = start + timedelta(minutes=booking.duration)
                if start < interval.end and interval.start < end:
                    conflicts += 1
                    self._log(
                        "pull_conflict",
                        "error",
                        booking.id,
                        interval.event_id,
                        f"External event '{interval.summary or 'busy'}' overlaps booking {booking.id}",
                    )
        self._log("pull", "success")
        return conflicts

    def status(self) -> Dict[str, Any]:
        counts = dict(
            self.db.query(Booking.calendar_sync_state, func.count(Booking.id))
            .group_by(Booking.calendar_sync_state)
            .all()
        )
        last_success = (
            self.db.query(func.max(CalendarSyncLog.sync_time)).filter(CalendarSyncLog.status == "success").scalar()
        )
        recent = (
            self.db.query(CalendarSyncLog)
            .order_by(CalendarSyncLog.sync_time.desc(), CalendarSyncLog.id.desc())
            .limit(10)
            .all()
        )
        return {
            "state": self.integration.state.value,
            "sync_enabled": PolicySettingsProvider(self.db).calendar_sync_enabled(),
            "last_successful_sync": from_storage(last_success) if last_success else None,
            "bookings_by_sync_state": {state: counts.get(state, 0) for state in CALENDAR_SYNC_STATES},
            "recent_errors": sum(1 for row in recent if row.status == "error"),
            "recent": recent,
        }

    def list_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Newest sync log rows with the lesson time and client name of their booking."""
        rows = (
            self.db.query(CalendarSyncLog, Booking.lesson_date, User)
            .outerjoin(Booking, CalendarSyncLog.booking_id == Booking.id)
            .outerjoin(User, Booking.user_id == User.id)
            .order_by(CalendarSyncLog.sync_time.desc(), CalendarSyncLog.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": log.id,
                "action": log.action,
                "booking_id": log.booking_id,
                "external_event_id": log.external_event_id,
                "status": log.status,
                "error_message": log.error_message,
                "sync_time": log.sync_time,
                "lesson_date": lesson_date,
                "client_name": client.display_name if client is not None else None,
            }
            for log, lesson_date, client in rows
        ]


def push_booking_in_background(booking_id: int) -> None:
    """Entry point for FastAPI background tasks; opens its own session."""
    db = SessionLocal()
    try:
        CalendarReconciler(db, get_calendar_integration()).push_booking(booking_id)
    finally:
        db.close()
