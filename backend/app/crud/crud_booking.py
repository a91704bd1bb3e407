"""CRUD/query helpers for bookings."""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from backend.app.models.booking import ACTIVE_STATUSES, Booking


class CRUDBooking:
    def get(self, db: Session, *, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    def get_for_user(self, db: Session, *, booking_id: int, user_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id, Booking.user_id == user_id).first()

    def get_multi_for_user(self, db: Session, *, user_id: int, status: Optional[str] = None) -> List[Booking]:
        query = db.query(Booking).filter(Booking.user_id == user_id)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.lesson_date.desc(), Booking.id.desc()).all()

    def get_range(
        self,
        db: Session,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> List[Booking]:
        query = db.query(Booking)
        if start is not None:
            query = query.filter(Booking.lesson_date >= start)
        if end is not None:
            query = query.filter(Booking.lesson_date < end)
        if status:
            query = query.filter(Booking.status == status)
        return query.order_by(Booking.lesson_date.asc(), Booking.id.asc()).all()

    def occupying_between(
        self, db: Session, *, start: datetime, end: datetime, statuses: Sequence[str] = ACTIVE_STATUSES
    ) -> List[Booking]:
        """Non-terminal bookings starting in ``[start, end)`` (naive UTC bounds)."""
        return (
            db.query(Booking)
            .filter(
                Booking.status.in_(statuses),
                Booking.lesson_date >= start,
                Booking.lesson_date < end,
            )
            .order_by(Booking.lesson_date.asc())
            .all()
        )

    def count_rescheduled_in_month(
        self, db: Session, *, user_id: int, month_start: datetime, month_end: datetime
    ) -> int:
        """Number of the client's bookings dated in the month that were already rescheduled."""
        return (
            db.query(Booking)
            .filter(
                Booking.user_id == user_id,
                Booking.reschedule_count > 0,
                Booking.lesson_date >= month_start,
                Booking.lesson_date < month_end,
            )
            .count()
        )


booking_crud = CRUDBooking()
