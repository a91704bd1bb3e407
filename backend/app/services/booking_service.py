"""Booking state machine.

Slot acquisition relies on the partial unique index over active lesson
starts: the new row is flushed and the database either accepts it or raises
``IntegrityError``. There is no separate "is this slot free" query before
the write, so two concurrent requests for the same start cannot both win.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, PolicyDenied, ValidationError
from backend.app.core.time import (
    ensure_aware,
    from_storage,
    local_month_bounds,
    studio_zone,
    to_local,
    to_storage,
    utc_now,
)
from backend.app.crud.crud_blackout import blackout_crud
from backend.app.crud.crud_booking import booking_crud
from backend.app.models.booking import ACTIVE_STATUSES, Booking
from backend.app.models.booking_event import EVENT_KINDS
from backend.app.models.payment import Payment
from backend.app.models.recurring import RecurringCommitment
from backend.app.models.user import User
from backend.app.services.availability import AvailabilityResolver
from backend.app.services.calendar.integration import CalendarIntegration
from backend.app.services.events import EventPublisher
from backend.app.services.policies import evaluate_blackout, evaluate_cancellation, evaluate_reschedule
from backend.app.services.policy_settings import PolicySettings

logger = logging.getLogger(__name__)

INSTRUCTOR_CANCELLATION = "instructor_cancellation"
LATE_CANCELLATION_REASON = "Late cancellation - automatic charge applied"
LATE_CANCELLATION_REFERENCE = "late_cancellation_fee"
PAYMENT_FAILED_REASON = "Payment failed"
ADMIN_SETTABLE_STATUSES = ("pending", "confirmed", "completed", "cancelled")


@dataclass
class CancellationOutcome:
    booking: Booking
    late_fee_charged: bool
    fee_payment: Optional[Payment] = None


def normalize_start(value: datetime) -> datetime:
    """Aware UTC start at whole-minute precision; naive input is studio-local."""
    return from_storage(to_storage(ensure_aware(value).replace(second=0, microsecond=0)))


class BookingService:
    def __init__(self, db: Session, policy: PolicySettings, integration: Optional[CalendarIntegration] = None):
        self.db = db
        self.policy = policy
        self.events = EventPublisher(db)
        self.resolver = AvailabilityResolver(db, policy, integration)

    # Lookups

    def get_for_actor(self, booking_id: int, actor: User) -> Booking:
        if actor.is_admin:
            booking = booking_crud.get(self.db, booking_id=booking_id)
        else:
            booking = booking_crud.get_for_user(self.db, booking_id=booking_id, user_id=actor.id)
        if booking is None:
            raise NotFoundError("Booking not found", code="booking_not_found")
        return booking

    def _get(self, booking_id: int) -> Booking:
        booking = booking_crud.get(self.db, booking_id=booking_id)
        if booking is None:
            raise NotFoundError("Booking not found", code="booking_not_found")
        return booking

    # Creation

    def create_booking(
        self,
        client: User,
        start_time: datetime,
        duration: int,
        notes: Optional[str] = None,
        *,
        lesson_type: str = "regular",
        now: Optional[datetime] = None,
    ) -> Booking:
        now = now or utc_now()
        start = normalize_start(start_time)
        price = self.policy.price_for(duration)
        self._check_start(start, duration, now)

        booking = Booking(
            user_id=client.id,
            lesson_date=to_storage(start),
            duration=duration,
            price=price,
            status="pending",
            payment_status="pending",
            notes=notes,
            lesson_type=lesson_type,
            reschedule_count=0,
            calendar_sync_state="unsynced",
        )
        self._reserve(booking, start, duration, now=now, is_new=True)
        logger.info("Booking %s created for user %s at %s", booking.id, client.id, start.isoformat())
        self.events.publish(booking, "created", {"lesson_date": start.isoformat(), "duration": duration})
        return booking

    def create_occurrence(self, commitment: RecurringCommitment, start_time: datetime, now: Optional[datetime] = None) -> Booking:
        """Materialize one dated lesson of a recurring commitment at its frozen price."""
        now = now or utc_now()
        start = normalize_start(start_time)
        if start <= now:
            raise ValidationError("Lesson start must be in the future", code="past_start")
        self._check_blackout(start)

        booking = Booking(
            user_id=commitment.user_id,
            lesson_date=to_storage(start),
            duration=commitment.duration,
            price=commitment.price,
            status="pending",
            payment_status="pending",
            lesson_type=commitment.lesson_type,
            recurring_booking_id=commitment.id,
            reschedule_count=0,
            calendar_sync_state="unsynced",
        )
        self._reserve(booking, start, commitment.duration, now=now, is_new=True, suggest_alternatives=False)
        self.events.publish(
            booking,
            "created",
            {"lesson_date": start.isoformat(), "duration": commitment.duration, "recurring_booking_id": commitment.id},
        )
        return booking

    def _check_start(self, start: datetime, duration: int, now: datetime) -> None:
        if start <= now:
            raise ValidationError("Lesson start must be in the future", code="past_start")
        notice = timedelta(hours=self.policy.booking_advance_hours)
        if start < now + notice:
            raise ValidationError(
                f"Lessons must be booked at least {self.policy.booking_advance_hours} hours in advance",
                code="advance_notice",
                details={"earliest_start": (now + notice).isoformat()},
            )
        self._check_blackout(start)

        local_start = to_local(start)
        local_end = local_start + timedelta(minutes=duration)
        if (
            local_start.time() < self.policy.business_hours_start
            or local_end.date() != local_start.date()
            or local_end.time() > self.policy.business_hours_end
        ):
            raise ValidationError(
                "Lesson must start and end within business hours",
                code="outside_business_hours",
                details={
                    "business_hours_start": self.policy.business_hours_start.strftime("%H:%M"),
                    "business_hours_end": self.policy.business_hours_end.strftime("%H:%M"),
                },
            )

    def _check_blackout(self, start: datetime) -> None:
        day = to_local(start).date()
        decision = evaluate_blackout(day, blackout_crud.active_between(self.db, start=day, end=day))
        if not decision.allowed:
            raise ValidationError(
                f"Lessons cannot be scheduled on {day.isoformat()}: {decision.reason}",
                code="blackout_date",
                details={"date": day.isoformat(), "reason": decision.reason},
            )

    def _reserve(
        self,
        booking: Booking,
        start: datetime,
        duration: int,
        *,
        now: datetime,
        is_new: bool,
        suggest_alternatives: bool = True,
    ) -> None:
        try:
            if is_new:
                self.db.add(booking)
            self.db.flush()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            details = {"start_time": start.isoformat()}
            if suggest_alternatives:
                alternatives = self.resolver.next_open_slots(start, duration, now=now)
                details["alternatives"] = [
                    {"start": slot.start.isoformat(), "end": slot.end.isoformat()} for slot in alternatives
                ]
            logger.info("Slot %s already held; request rejected", start.isoformat())
            raise ConflictError("That time slot is already booked", code="slot_conflict", details=details) from exc
        self.db.refresh(booking)

    # Payment signals

    def confirm_payment_success(self, booking_id: int) -> Booking:
        booking = self._get(booking_id)
        if booking.status == "confirmed":
            return booking
        if booking.status != "pending":
            raise ValidationError(
                f"Cannot confirm a {booking.status} booking", code="invalid_transition", details={"status": booking.status}
            )
        booking.status = "confirmed"
        booking.payment_status = "completed"
        self.db.commit()
        self.db.refresh(booking)
        self.events.publish(booking, "confirmed")
        return booking

    def confirm_payment_failure(self, booking_id: int, now: Optional[datetime] = None) -> Booking:
        now = now or utc_now()
        booking = self._get(booking_id)
        if booking.status == "cancelled" and booking.payment_status == "failed":
            return booking
        if booking.status != "pending":
            raise ValidationError(
                f"Cannot fail payment for a {booking.status} booking",
                code="invalid_transition",
                details={"status": booking.status},
            )
        booking.status = "cancelled"
        booking.payment_status = "failed"
        booking.cancellation_reason = PAYMENT_FAILED_REASON
        booking.cancelled_at = to_storage(now)
        self._mark_calendar_removal(booking)
        self.db.commit()
        self.db.refresh(booking)
        self.events.publish(booking, "cancelled", {"reason": PAYMENT_FAILED_REASON})
        return booking

    # Client/admin transitions

    def cancel_booking(
        self,
        booking_id: int,
        actor: User,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> CancellationOutcome:
        now = now or utc_now()
        booking = self.get_for_actor(booking_id, actor)
        if booking.status not in ACTIVE_STATUSES:
            raise ValidationError(
                "Only pending or confirmed bookings can be cancelled",
                code="invalid_transition",
                details={"status": booking.status},
            )
        if reason == INSTRUCTOR_CANCELLATION and not actor.is_admin:
            raise ForbiddenError("Only the studio can cancel on behalf of the instructor", code="forbidden_reason")

        if reason == INSTRUCTOR_CANCELLATION:
            late = False
        else:
            late = not evaluate_cancellation(booking.lesson_date, now, self.policy.cancellation_policy_hours).allowed

        fee_payment = None
        booking.status = "cancelled"
        booking.cancelled_at = to_storage(now)
        if late:
            booking.cancellation_reason = LATE_CANCELLATION_REASON
            # Charge intent only; capture belongs to the payment processor
            fee_payment = Payment(
                booking_id=booking.id,
                user_id=booking.user_id,
                amount=booking.price,
                method="automatic_charge",
                reference=LATE_CANCELLATION_REFERENCE,
                status="pending",
                notes=f"Late cancellation of lesson on {to_local(booking.lesson_date).isoformat()}",
            )
            self.db.add(fee_payment)
            logger.warning("Booking %s cancelled inside the policy window; late fee recorded", booking.id)
        else:
            booking.cancellation_reason = reason or ("Cancelled by studio" if actor.is_admin else "Cancelled by client")
        self._mark_calendar_removal(booking)
        self.db.commit()
        self.db.refresh(booking)
        if fee_payment is not None:
            self.db.refresh(fee_payment)

        self.events.publish(
            booking,
            "cancelled",
            {"reason": booking.cancellation_reason, "late_fee": str(booking.price) if late else None},
        )
        return CancellationOutcome(booking=booking, late_fee_charged=late, fee_payment=fee_payment)

    def reschedule_booking(
        self,
        booking_id: int,
        actor: User,
        new_start: datetime,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        now = now or utc_now()
        booking = self.get_for_actor(booking_id, actor)
        if booking.status not in ACTIVE_STATUSES:
            raise ValidationError(
                "Only pending or confirmed bookings can be rescheduled",
                code="invalid_transition",
                details={"status": booking.status},
            )
        start = normalize_start(new_start)
        previous = booking.lesson_date
        if to_storage(start) == previous:
            raise ValidationError("New time matches the current lesson time", code="same_time")

        if not actor.is_admin:
            local_original = to_local(previous)
            month_start, month_end = local_month_bounds(local_original.year, local_original.month)
            used = booking_crud.count_rescheduled_in_month(
                self.db,
                user_id=booking.user_id,
                month_start=to_storage(month_start),
                month_end=to_storage(month_end),
            )
            decision = evaluate_reschedule(
                previous, start, used, self.policy.max_reschedules_per_month, studio_zone()
            )
            if not decision.allowed:
                logger.warning("Reschedule of booking %s denied: %s", booking.id, decision.code)
                raise PolicyDenied(decision.reason, code=decision.code, details={"reschedules_used": used})

        self._check_start(start, booking.duration, now)

        if booking.original_date is None:
            booking.original_date = previous
        booking.lesson_date = to_storage(start)
        booking.reschedule_count = (booking.reschedule_count or 0) + 1
        if notes is not None:
            booking.notes = notes
        if booking.calendar_sync_state == "synced":
            booking.calendar_sync_state = "stale"
        self._reserve(booking, start, booking.duration, now=now, is_new=False)

        self.events.publish(
            booking,
            "rescheduled",
            {"from": from_storage(previous).isoformat(), "to": start.isoformat(), "count": booking.reschedule_count},
        )
        return booking

    def complete_booking(self, booking_id: int, now: Optional[datetime] = None) -> Booking:
        now = now or utc_now()
        booking = self._get(booking_id)
        if booking.status == "completed":
            return booking
        if booking.status != "confirmed":
            raise ValidationError(
                "Only confirmed bookings can be completed", code="invalid_transition", details={"status": booking.status}
            )
        if from_storage(booking.lesson_date) > now:
            raise ValidationError("Lesson has not started yet", code="not_started")
        booking.status = "completed"
        self.db.commit()
        self.db.refresh(booking)
        self.events.publish(booking, "completed")
        return booking

    def set_status(self, booking_id: int, status: str, reason: Optional[str] = None, now: Optional[datetime] = None) -> Booking:
        """Manual correction by the studio."""
        now = now or utc_now()
        if status not in ADMIN_SETTABLE_STATUSES:
            raise ValidationError(
                f"Unsupported status {status}", code="invalid_status", details={"allowed": list(ADMIN_SETTABLE_STATUSES)}
            )
        booking = self._get(booking_id)
        if booking.status == status:
            return booking
        was_active = booking.status in ACTIVE_STATUSES
        booking.status = status
        if status == "cancelled":
            booking.cancelled_at = to_storage(now)
            booking.cancellation_reason = reason or "Cancelled by studio"
            self._mark_calendar_removal(booking)
        elif status == "confirmed":
            booking.payment_status = "completed"
        if status in ACTIVE_STATUSES and not was_active:
            self._mark_calendar_restore(booking)
        start = from_storage(booking.lesson_date)
        # Reactivating a cancelled lesson must win the slot again
        self._reserve(booking, start, booking.duration, now=now, is_new=False, suggest_alternatives=False)
        if status in EVENT_KINDS:
            self.events.publish(booking, status, {"reason": reason, "manual": True})
        return booking

    def release(self, booking: Booking, reason: str, now: datetime) -> None:
        """Cancel without the cancellation policy gate. The caller commits and publishes."""
        booking.status = "cancelled"
        booking.cancelled_at = to_storage(now)
        booking.cancellation_reason = reason
        self._mark_calendar_removal(booking)

    def _mark_calendar_removal(self, booking: Booking) -> None:
        if booking.external_event_id:
            booking.calendar_sync_state = "pending_delete"

    def _mark_calendar_restore(self, booking: Booking) -> None:
        # The external event survives only if its delete never went out
        if booking.calendar_sync_state == "pending_delete" and booking.external_event_id:
            booking.calendar_sync_state = "stale"
        elif booking.calendar_sync_state in ("pending_delete", "deleted"):
            booking.calendar_sync_state = "unsynced"
            booking.external_event_id = None

    # Listing

    def list_for_client(self, client: User, status: Optional[str] = None) -> List[Booking]:
        return booking_crud.get_multi_for_user(self.db, user_id=client.id, status=status)

    def list_range(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None, status: Optional[str] = None
    ) -> List[Booking]:
        return booking_crud.get_range(
            self.db,
            start=to_storage(start) if start else None,
            end=to_storage(end) if end else None,
            status=status,
        )
