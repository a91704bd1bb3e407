"""Booking lifecycle events.

Events are recorded after the transition has committed. Recording is best
effort: a failure here is logged and never undoes or fails the transition.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models.booking import Booking
from backend.app.models.booking_event import EVENT_KINDS, BookingEvent

logger = logging.getLogger(__name__)


class EventPublisher:
    def __init__(self, db: Session):
        self.db = db

    def publish(self, booking: Booking, kind: str, details: Optional[Dict[str, Any]] = None) -> Optional[BookingEvent]:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown booking event kind {kind}")
        event = BookingEvent(booking_id=booking.id, user_id=booking.user_id, kind=kind, details=details or {})
        try:
            self.db.add(event)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.error("Failed to record %s event for booking %s", kind, booking.id, exc_info=True)
            return None
        logger.info("Booking %s %s", booking.id, kind)
        return event


def list_events_for_booking(db: Session, booking_id: int) -> List[BookingEvent]:
    return (
        db.query(BookingEvent)
        .filter(BookingEvent.booking_id == booking_id)
        .order_by(BookingEvent.created_at.asc(), BookingEvent.id.asc())
        .all()
    )


def list_events_since(db: Session, since: Optional[datetime] = None, limit: int = 200) -> List[BookingEvent]:
    query = db.query(BookingEvent)
    if since is not None:
        query = query.filter(BookingEvent.created_at >= since)
    return query.order_by(BookingEvent.created_at.asc(), BookingEvent.id.asc()).limit(limit).all()
