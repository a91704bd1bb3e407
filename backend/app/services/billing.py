"""Billing cycle utilities for recurring commitments."""

import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.core.time import first_of_next_month
from backend.app.models.billing_cycle import BillingCycle
from backend.app.models.recurring import RecurringCommitment

logger = logging.getLogger(__name__)

# Fixed approximation, not an exact count of weekday occurrences in the month
LESSONS_PER_MONTH = {"weekly": 4, "biweekly": 2}
BILLING_DAY = 1
DUE_DAY = 15


def lessons_per_month(frequency: str) -> int:
    try:
        return LESSONS_PER_MONTH[frequency]
    except KeyError:
        raise ValidationError(f"Unsupported frequency {frequency}", code="invalid_frequency") from None


def calculate_cycle_amount(price: Decimal | float, frequency: str) -> Decimal:
    amount = Decimal(str(price)) * lessons_per_month(frequency)
    return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def billing_months(start_date: date, end_date: date) -> List[Tuple[int, int]]:
    """(year, month) pairs from the start month through the end month, inclusive."""
    months = []
    cursor = date(start_date.year, start_date.month, 1)
    last = date(end_date.year, end_date.month, 1)
    while cursor <= last:
        months.append((cursor.year, cursor.month))
        cursor = first_of_next_month(cursor)
    return months


def build_billing_cycles(commitment: RecurringCommitment) -> List[BillingCycle]:
    lessons = lessons_per_month(commitment.frequency)
    amount = calculate_cycle_amount(commitment.price, commitment.frequency)
    return [
        BillingCycle(
            user_id=commitment.user_id,
            recurring_booking_id=commitment.id,
            cycle_year=year,
            cycle_month=month,
            lessons_count=lessons,
            total_amount=amount,
            status="pending",
            billing_date=date(year, month, BILLING_DAY),
            due_date=date(year, month, DUE_DAY),
        )
        for year, month in billing_months(commitment.start_date, commitment.end_date)
    ]


def determine_cycle_status(cycle: BillingCycle, today: date) -> str:
    if cycle.status in ("paid", "cancelled"):
        return cycle.status
    if today > cycle.due_date:
        return "overdue"
    return cycle.status


def mark_overdue_cycles(db: Session, today: date) -> int:
    cycles = (
        db.query(BillingCycle)
        .filter(BillingCycle.status == "pending", BillingCycle.due_date < today)
        .all()
    )
    for cycle in cycles:
        cycle.status = determine_cycle_status(cycle, today)
    if cycles:
        db.commit()
        logger.info("Marked %d billing cycles overdue", len(cycles))
    return len(cycles)


def mark_cycle_paid(
    db: Session,
    cycle_id: int,
    method: Optional[str],
    reference: Optional[str],
    today: date,
) -> BillingCycle:
    cycle = db.query(BillingCycle).filter(BillingCycle.id == cycle_id).first()
    if cycle is None:
        raise NotFoundError("Billing cycle not found", code="billing_cycle_not_found")
    if cycle.status == "cancelled":
        raise ValidationError("Cancelled billing cycles cannot be paid", code="invalid_transition")
    if cycle.status == "paid":
        return cycle
    cycle.status = "paid"
    cycle.paid_date = today
    cycle.payment_method = method
    cycle.payment_reference = reference
    db.commit()
    db.refresh(cycle)
    logger.info("Billing cycle %s marked paid", cycle.id)
    return cycle


def list_cycles_for_user(db: Session, user_id: int) -> List[BillingCycle]:
    return (
        db.query(BillingCycle)
        .filter(BillingCycle.user_id == user_id)
        .order_by(BillingCycle.cycle_year.desc(), BillingCycle.cycle_month.desc(), BillingCycle.id.desc())
        .all()
    )


def list_cycles_for_commitment(db: Session, commitment_id: int) -> List[BillingCycle]:
    return (
        db.query(BillingCycle)
        .filter(BillingCycle.recurring_booking_id == commitment_id)
        .order_by(BillingCycle.cycle_year.asc(), BillingCycle.cycle_month.asc())
        .all()
    )
