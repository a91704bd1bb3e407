"""Recurring weekly/biweekly commitments: creation with billing, and rolling materialization."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from backend.app.core.settings import get_settings
from backend.app.core.time import local_datetime, to_local, to_storage, utc_now
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.booking import ACTIVE_STATUSES, Booking
from backend.app.models.recurring import FREQUENCIES, LESSON_TYPES, RecurringCommitment
from backend.app.models.user import User
from backend.app.services.billing import build_billing_cycles, calculate_cycle_amount, lessons_per_month
from backend.app.services.booking_service import BookingService
from backend.app.services.calendar.integration import CalendarIntegration
from backend.app.services.policy_settings import PolicySettings

logger = logging.getLogger(__name__)

FREQUENCY_STEP = {"weekly": timedelta(days=7), "biweekly": timedelta(days=14)}
COMMITMENT_CANCELLED_REASON = "Recurring commitment cancelled"


@dataclass
class MaterializeResult:
    created: List[Booking] = field(default_factory=list)
    skipped: List[Tuple[date, str]] = field(default_factory=list)


def occurrence_dates(commitment: RecurringCommitment, start: date, end: date) -> List[date]:
    """Dates of the pattern falling within ``start``..``end`` and the commitment's own range."""
    step = FREQUENCY_STEP[commitment.frequency]
    first = commitment.start_date + timedelta(days=(commitment.day_of_week - commitment.start_date.weekday()) % 7)
    last = min(end, commitment.end_date)
    dates = []
    cursor = first
    while cursor <= last:
        if cursor >= start:
            dates.append(cursor)
        cursor += step
    return dates


class RecurringService:
    def __init__(self, db: Session, policy: PolicySettings, integration: Optional[CalendarIntegration] = None):
        self.db = db
        self.policy = policy
        self.bookings = BookingService(db, policy, integration)

    def _validate_pattern(self, duration: int, day_of_week: int, lesson_time: time, frequency: str) -> None:
        if frequency not in FREQUENCIES:
            raise ValidationError(
                f"Unsupported frequency {frequency}", code="invalid_frequency", details={"allowed": list(FREQUENCIES)}
            )
        if not 0 <= day_of_week <= 6:
            raise ValidationError("day_of_week must be between 0 (Monday) and 6 (Sunday)", code="invalid_day_of_week")
        end_of_lesson = (datetime.combine(date.min, lesson_time) + timedelta(minutes=duration)).time()
        if (
            lesson_time < self.policy.business_hours_start
            or end_of_lesson > self.policy.business_hours_end
            or end_of_lesson <= lesson_time
        ):
            raise ValidationError("Lesson must start and end within business hours", code="outside_business_hours")

    def create_commitment(
        self,
        client: User,
        duration: int,
        day_of_week: int,
        lesson_time: time,
        frequency: str,
        start_date: date,
        lesson_type: str = "regular",
        end_date: Optional[date] = None,
    ) -> RecurringCommitment:
        # Every check runs before the first write
        price = self.policy.price_for(duration)
        if lesson_type not in LESSON_TYPES:
            raise ValidationError(f"Unsupported lesson type {lesson_type}", code="invalid_lesson_type")
        self._validate_pattern(duration, day_of_week, lesson_time, frequency)
        end_date = end_date or self.policy.academic_year_end
        if start_date > end_date:
            raise ValidationError("start_date must be on or before end_date", code="invalid_range")

        commitment = RecurringCommitment(
            user_id=client.id,
            duration=duration,
            price=price,
            day_of_week=day_of_week,
            time=lesson_time,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            status="active",
            lesson_type=lesson_type,
        )
        try:
            self.db.add(commitment)
            self.db.flush()
            cycles = build_billing_cycles(commitment)
            self.db.add_all(cycles)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Recurring commitment for user %s rolled back", client.id, exc_info=True)
            raise
        self.db.refresh(commitment)
        logger.info(
            "Recurring commitment %s created for user %s with %d billing cycles", commitment.id, client.id, len(cycles)
        )
        return commitment

    def get_for_actor(self, commitment_id: int, actor: User) -> RecurringCommitment:
        commitment = self.db.query(RecurringCommitment).filter(RecurringCommitment.id == commitment_id).first()
        if commitment is None:
            raise NotFoundError("Recurring booking not found", code="recurring_not_found")
        if not actor.is_admin and commitment.user_id != actor.id:
            raise ForbiddenError("Not authorized to manage this recurring booking", code="not_owner")
        return commitment

    def list_for_client(self, client: User) -> List[RecurringCommitment]:
        return (
            self.db.query(RecurringCommitment)
            .filter(RecurringCommitment.user_id == client.id, RecurringCommitment.status.in_(("active", "paused")))
            .order_by(RecurringCommitment.day_of_week.asc(), RecurringCommitment.time.asc())
            .all()
        )

    def list_all(self, status: Optional[str] = None) -> List[RecurringCommitment]:
        query = self.db.query(RecurringCommitment)
        if status:
            query = query.filter(RecurringCommitment.status == status)
        return query.order_by(RecurringCommitment.day_of_week.asc(), RecurringCommitment.time.asc()).all()

    def update_commitment(
        self,
        commitment_id: int,
        actor: User,
        day_of_week: Optional[int] = None,
        lesson_time: Optional[time] = None,
        frequency: Optional[str] = None,
        today: Optional[date] = None,
    ) -> RecurringCommitment:
        commitment = self.get_for_actor(commitment_id, actor)
        if commitment.status not in ("active", "paused"):
            raise ValidationError(f"Cannot update a {commitment.status} recurring booking", code="invalid_transition")
        new_day = commitment.day_of_week if day_of_week is None else day_of_week
        new_time = commitment.time if lesson_time is None else lesson_time
        new_frequency = commitment.frequency if frequency is None else frequency
        self._validate_pattern(commitment.duration, new_day, new_time, new_frequency)

        frequency_changed = new_frequency != commitment.frequency
        commitment.day_of_week = new_day
        commitment.time = new_time
        commitment.frequency = new_frequency
        if frequency_changed:
            today = today or to_local(utc_now()).date()
            # Only cycles not yet billed follow the new frequency
            for cycle in (
                self.db.query(BillingCycle)
                .filter(
                    BillingCycle.recurring_booking_id == commitment.id,
                    BillingCycle.status == "pending",
                    BillingCycle.billing_date > today,
                )
                .all()
            ):
                cycle.lessons_count = lessons_per_month(new_frequency)
                cycle.total_amount = calculate_cycle_amount(commitment.price, new_frequency)
        self.db.commit()
        self.db.refresh(commitment)
        logger.info("Recurring commitment %s updated", commitment.id)
        return commitment

    def _set_status(self, commitment_id: int, actor: User, expected: str, target: str) -> RecurringCommitment:
        commitment = self.get_for_actor(commitment_id, actor)
        if commitment.status == target:
            return commitment
        if commitment.status != expected:
            raise ValidationError(
                f"Cannot change a {commitment.status} recurring booking to {target}", code="invalid_transition"
            )
        commitment.status = target
        self.db.commit()
        self.db.refresh(commitment)
        logger.info("Recurring commitment %s is now %s", commitment.id, target)
        return commitment

    def pause(self, commitment_id: int, actor: User) -> RecurringCommitment:
        return self._set_status(commitment_id, actor, "active", "paused")

    def resume(self, commitment_id: int, actor: User) -> RecurringCommitment:
        return self._set_status(commitment_id, actor, "paused", "active")

    def cancel(self, commitment_id: int, actor: User, now: Optional[datetime] = None) -> RecurringCommitment:
        now = now or utc_now()
        today = to_local(now).date()
        commitment = self.get_for_actor(commitment_id, actor)
        if commitment.status == "cancelled":
            return commitment
        commitment.status = "cancelled"

        for cycle in (
            self.db.query(BillingCycle)
            .filter(
                BillingCycle.recurring_booking_id == commitment.id,
                BillingCycle.status == "pending",
                BillingCycle.billing_date > today,
            )
            .all()
        ):
            cycle.status = "cancelled"

        released = (
            self.db.query(Booking)
            .filter(
                Booking.recurring_booking_id == commitment.id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.lesson_date > to_storage(now),
            )
            .all()
        )
        for booking in released:
            self.bookings.release(booking, COMMITMENT_CANCELLED_REASON, now)
        self.db.commit()
        self.db.refresh(commitment)
        for booking in released:
            self.bookings.events.publish(booking, "cancelled", {"reason": COMMITMENT_CANCELLED_REASON})
        logger.info("Recurring commitment %s cancelled; %d future lessons released", commitment.id, len(released))
        return commitment

    def _materialized_starts(self, commitment: RecurringCommitment) -> Set[datetime]:
        starts: Set[datetime] = set()
        for lesson_date, original_date in (
            self.db.query(Booking.lesson_date, Booking.original_date)
            .filter(Booking.recurring_booking_id == commitment.id)
            .all()
        ):
            starts.add(lesson_date)
            if original_date is not None:
                starts.add(original_date)
        return starts

    def materialize_occurrences(
        self,
        commitment_id: int,
        through: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> MaterializeResult:
        """Turn the pattern into dated bookings up to ``through`` (default: rolling window)."""
        now = now or utc_now()
        commitment = self.db.query(RecurringCommitment).filter(RecurringCommitment.id == commitment_id).first()
        if commitment is None:
            raise NotFoundError("Recurring booking not found", code="recurring_not_found")
        if commitment.status != "active":
            raise ValidationError(f"Cannot materialize a {commitment.status} recurring booking", code="invalid_transition")

        today = to_local(now).date()
        through = through or today + timedelta(days=get_settings().materialize_days_ahead)
        existing = self._materialized_starts(commitment)

        result = MaterializeResult()
        for day in occurrence_dates(commitment, today, through):
            start = local_datetime(day, commitment.time)
            if to_storage(start) in existing:
                continue
            try:
                result.created.append(self.bookings.create_occurrence(commitment, start, now=now))
            except (ValidationError, ConflictError) as exc:
                logger.info("Skipped %s occurrence of recurring booking %s: %s", day, commitment.id, exc.code)
                result.skipped.append((day, exc.code))
        return result

    def materialize_all_active(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        commitments = self.db.query(RecurringCommitment).filter(RecurringCommitment.status == "active").all()
        created = 0
        for commitment in commitments:
            created += len(self.materialize_occurrences(commitment.id, now=now).created)
        logger.info("Materialized %d lessons across %d recurring bookings", created, len(commitments))
        return created
