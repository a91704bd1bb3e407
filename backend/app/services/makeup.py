"""Make-up lesson requests and Saturday group sessions."""

import logging
from datetime import date, datetime, time
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.app.core.exceptions import ConflictError, NotFoundError, PolicyDenied, ValidationError
from backend.app.core.time import local_datetime, to_local, to_storage, utc_now
from backend.app.models.booking import Booking
from backend.app.models.makeup import MakeupLesson, SaturdaySession
from backend.app.models.user import User
from backend.app.services.booking_service import normalize_start
from backend.app.services.policies import evaluate_makeup
from backend.app.services.policy_settings import PolicySettings

logger = logging.getLogger(__name__)

ELIGIBLE_BOOKING_STATUSES = ("confirmed", "cancelled")
SATURDAY = 5


class MakeupService:
    def __init__(self, db: Session, policy: PolicySettings):
        self.db = db
        self.policy = policy

    def _get(self, makeup_id: int) -> MakeupLesson:
        makeup = self.db.query(MakeupLesson).filter(MakeupLesson.id == makeup_id).first()
        if makeup is None:
            raise NotFoundError("Make-up lesson not found", code="makeup_not_found")
        return makeup

    def pending_count(self, user_id: int) -> int:
        return (
            self.db.query(MakeupLesson)
            .filter(MakeupLesson.user_id == user_id, MakeupLesson.status == "pending")
            .count()
        )

    def request_makeup(self, client: User, original_booking_id: int, reason: str) -> MakeupLesson:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required", code="missing_reason")
        booking = (
            self.db.query(Booking)
            .filter(
                Booking.id == original_booking_id,
                Booking.user_id == client.id,
                Booking.status.in_(ELIGIBLE_BOOKING_STATUSES),
            )
            .first()
        )
        if booking is None:
            raise NotFoundError("Original booking not found or not eligible", code="booking_not_eligible")

        duplicate = (
            self.db.query(MakeupLesson)
            .filter(
                MakeupLesson.original_booking_id == booking.id,
                MakeupLesson.status.in_(("pending", "scheduled")),
            )
            .first()
        )
        if duplicate is not None:
            raise ValidationError("A make-up lesson is already open for this booking", code="duplicate_makeup")

        pending = self.pending_count(client.id)
        decision = evaluate_makeup(pending, self.policy.max_pending_makeups)
        if not decision.allowed:
            logger.warning("Make-up request by user %s denied: %s pending", client.id, pending)
            raise PolicyDenied(decision.reason, code=decision.code, details={"pending": pending})

        makeup = MakeupLesson(
            user_id=client.id,
            original_booking_id=booking.id,
            reason=reason.strip(),
            status="pending",
        )
        self.db.add(makeup)
        self.db.flush()

        # Recount with our row written; a concurrent request may have landed first
        open_for_booking = (
            self.db.query(MakeupLesson)
            .filter(
                MakeupLesson.original_booking_id == booking.id,
                MakeupLesson.status.in_(("pending", "scheduled")),
            )
            .count()
        )
        if open_for_booking > 1:
            self.db.rollback()
            raise ValidationError("A make-up lesson is already open for this booking", code="duplicate_makeup")
        others = self.pending_count(client.id) - 1
        decision = evaluate_makeup(others, self.policy.max_pending_makeups)
        if not decision.allowed:
            self.db.rollback()
            logger.warning("Make-up request by user %s denied on recount: %s pending", client.id, others)
            raise PolicyDenied(decision.reason, code=decision.code, details={"pending": others})

        self.db.commit()
        self.db.refresh(makeup)
        logger.info("Make-up lesson %s requested for booking %s", makeup.id, booking.id)
        return makeup

    def list_for_client(self, client: User) -> List[MakeupLesson]:
        return (
            self.db.query(MakeupLesson)
            .filter(MakeupLesson.user_id == client.id)
            .order_by(MakeupLesson.created_at.desc(), MakeupLesson.id.desc())
            .all()
        )

    def list_all(self, status: Optional[str] = None) -> List[MakeupLesson]:
        query = self.db.query(MakeupLesson)
        if status:
            query = query.filter(MakeupLesson.status == status)
        return query.order_by(MakeupLesson.created_at.desc(), MakeupLesson.id.desc()).all()

    def schedule(self, makeup_id: int, makeup_date: datetime) -> MakeupLesson:
        makeup = self._get(makeup_id)
        if makeup.status not in ("pending", "scheduled"):
            raise ValidationError(f"Cannot schedule a {makeup.status} make-up lesson", code="invalid_transition")
        makeup.makeup_date = to_storage(normalize_start(makeup_date))
        makeup.status = "scheduled"
        self.db.commit()
        self.db.refresh(makeup)
        return makeup

    def complete(self, makeup_id: int) -> MakeupLesson:
        makeup = self._get(makeup_id)
        if makeup.status == "completed":
            return makeup
        if makeup.status != "scheduled":
            raise ValidationError("Only scheduled make-up lessons can be completed", code="invalid_transition")
        makeup.status = "completed"
        self.db.commit()
        self.db.refresh(makeup)
        return makeup

    def expire(self, makeup_id: int) -> MakeupLesson:
        makeup = self._get(makeup_id)
        if makeup.status == "expired":
            return makeup
        if makeup.status != "pending":
            raise ValidationError("Only pending make-up lessons can expire", code="invalid_transition")
        makeup.status = "expired"
        self.db.commit()
        self.db.refresh(makeup)
        return makeup

    def expire_stale(self) -> int:
        """Expire pending requests whose original lesson predates the current academic year."""
        year_start = to_storage(local_datetime(self.policy.academic_year_start, time(0, 0)))
        stale = (
            self.db.query(MakeupLesson)
            .join(Booking, Booking.id == MakeupLesson.original_booking_id)
            .filter(MakeupLesson.status == "pending", Booking.lesson_date < year_start)
            .all()
        )
        for makeup in stale:
            makeup.status = "expired"
        if stale:
            self.db.commit()
            logger.info("Expired %d make-up requests from the previous academic year", len(stale))
        return len(stale)

    # Saturday sessions

    def create_session(
        self,
        session_date: date,
        start_time: time,
        end_time: time,
        max_students: Optional[int] = None,
    ) -> SaturdaySession:
        if session_date.weekday() != SATURDAY:
            raise ValidationError("Make-up group sessions are held on Saturdays", code="not_saturday")
        if end_time <= start_time:
            raise ValidationError("end_time must be after start_time", code="invalid_range")
        capacity = max_students if max_students is not None else self.policy.saturday_makeup_max_students
        if capacity < 1:
            raise ValidationError("max_students must be at least 1", code="invalid_capacity")
        session = SaturdaySession(
            session_date=session_date,
            start_time=start_time,
            end_time=end_time,
            max_students=capacity,
            current_students=0,
            status="available",
        )
        self.db.add(session)
        self.db.commit()
        self.db.refresh(session)
        return session

    def list_upcoming_sessions(self, today: Optional[date] = None) -> List[SaturdaySession]:
        today = today or to_local(utc_now()).date()
        return (
            self.db.query(SaturdaySession)
            .filter(SaturdaySession.session_date >= today, SaturdaySession.status == "available")
            .order_by(SaturdaySession.session_date.asc(), SaturdaySession.start_time.asc())
            .all()
        )

    def join_session(self, session_id: int, client: User, makeup_id: int) -> MakeupLesson:
        # The make-up moves out of pending exactly once, even across concurrent joins
        taken = (
            self.db.query(MakeupLesson)
            .filter(
                MakeupLesson.id == makeup_id,
                MakeupLesson.user_id == client.id,
                MakeupLesson.status == "pending",
            )
            .update({MakeupLesson.status: "scheduled"}, synchronize_session=False)
        )
        if taken == 0:
            self.db.rollback()
            raise NotFoundError("Make-up lesson not found or not available", code="makeup_not_found")

        # Seat taken only if one is still free at write time
        claimed = (
            self.db.query(SaturdaySession)
            .filter(
                SaturdaySession.id == session_id,
                SaturdaySession.status == "available",
                SaturdaySession.current_students < SaturdaySession.max_students,
            )
            .update(
                {SaturdaySession.current_students: SaturdaySession.current_students + 1},
                synchronize_session=False,
            )
        )
        if claimed == 0:
            self.db.rollback()
            raise ConflictError("Session not available or full", code="session_full")

        session = (
            self.db.query(SaturdaySession).filter(SaturdaySession.id == session_id).populate_existing().one()
        )
        if session.current_students >= session.max_students:
            session.status = "full"
        makeup = self.db.query(MakeupLesson).filter(MakeupLesson.id == makeup_id).populate_existing().one()
        makeup.saturday_session_id = session.id
        makeup.makeup_date = to_storage(local_datetime(session.session_date, session.start_time))
        self.db.commit()
        self.db.refresh(makeup)
        logger.info("Make-up lesson %s joined Saturday session %s", makeup.id, session.id)
        return makeup
