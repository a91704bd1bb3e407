"""Payment records: manual payment intents, completion signals and refunds.

Capture itself happens outside the studio backend; these records only track
what the payment collaborator reported.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from backend.app.core.exceptions import NotFoundError, PolicyDenied, ValidationError
from backend.app.core.time import to_storage, utc_now
from backend.app.models.booking import Booking
from backend.app.models.payment import Payment
from backend.app.models.user import User
from backend.app.services.booking_service import LATE_CANCELLATION_REFERENCE, BookingService
from backend.app.services.policies import evaluate_refund

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("venmo", "zelle", "card", "cash", "automatic_charge")


class PaymentService:
    def __init__(self, db: Session, bookings: BookingService):
        self.db = db
        self.bookings = bookings

    def _get(self, payment_id: int) -> Payment:
        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        if payment is None:
            raise NotFoundError("Payment not found", code="payment_not_found")
        return payment

    def create_payment(self, client: User, booking_id: int, method: str, reference: Optional[str] = None) -> Payment:
        if method not in PAYMENT_METHODS or method == "automatic_charge":
            raise ValidationError(f"Unsupported payment method {method}", code="invalid_method")
        booking = self.bookings.get_for_actor(booking_id, client)
        if booking.status != "pending":
            raise ValidationError("Only pending bookings accept payments", code="invalid_transition")
        payment = Payment(
            booking_id=booking.id,
            user_id=booking.user_id,
            amount=booking.price,
            method=method,
            reference=reference,
            status="pending",
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        return payment

    def list_for_client(self, client: User) -> List[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.user_id == client.id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .all()
        )

    def get_for_actor(self, payment_id: int, actor: User) -> Payment:
        payment = self._get(payment_id)
        if not actor.is_admin and payment.user_id != actor.id:
            raise NotFoundError("Payment not found", code="payment_not_found")
        return payment

    def complete_payment(self, payment_id: int, reference: Optional[str] = None, now: Optional[datetime] = None) -> Payment:
        """Record a successful payment and confirm the lesson it pays for."""
        now = now or utc_now()
        payment = self._get(payment_id)
        if payment.status == "completed":
            return payment
        if payment.status != "pending":
            raise ValidationError(f"Cannot complete a {payment.status} payment", code="invalid_transition")
        payment.status = "completed"
        payment.paid_at = to_storage(now)
        if reference:
            payment.reference = reference
        self.db.commit()
        self.db.refresh(payment)

        booking = self.db.query(Booking).filter(Booking.id == payment.booking_id).first()
        if payment.reference != LATE_CANCELLATION_REFERENCE and booking is not None and booking.status == "pending":
            self.bookings.confirm_payment_success(booking.id)
        return payment

    def fail_payment(self, payment_id: int, now: Optional[datetime] = None) -> Payment:
        payment = self._get(payment_id)
        if payment.status == "failed":
            return payment
        if payment.status != "pending":
            raise ValidationError(f"Cannot fail a {payment.status} payment", code="invalid_transition")
        payment.status = "failed"
        self.db.commit()
        self.db.refresh(payment)

        booking = self.db.query(Booking).filter(Booking.id == payment.booking_id).first()
        if payment.reference != LATE_CANCELLATION_REFERENCE and booking is not None and booking.status == "pending":
            self.bookings.confirm_payment_failure(booking.id, now=now)
        return payment

    def refund_payment(self, payment_id: int, reason: Optional[str]) -> Payment:
        payment = self._get(payment_id)
        if payment.status != "completed":
            raise ValidationError("Only completed payments can be refunded", code="invalid_transition")
        decision = evaluate_refund(reason)
        if not decision.allowed:
            logger.warning("Refund of payment %s denied for reason %s", payment.id, reason)
            raise PolicyDenied(decision.reason, code=decision.code)
        payment.status = "refunded"
        payment.refund_reason = reason
        booking = self.db.query(Booking).filter(Booking.id == payment.booking_id).first()
        if booking is not None:
            booking.payment_status = "refunded"
        self.db.commit()
        self.db.refresh(payment)
        logger.info("Payment %s refunded (%s)", payment.id, reason)
        return payment
