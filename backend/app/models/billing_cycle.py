"""Monthly billing obligation for a recurring commitment."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint

from backend.app.core.time import storage_now
from backend.app.db.base_class import Base

BILLING_STATUSES = ("pending", "paid", "overdue", "cancelled")


class BillingCycle(Base):
    __tablename__ = "billing_cycles"
    __table_args__ = (
        UniqueConstraint("recurring_booking_id", "cycle_year", "cycle_month", name="uq_billing_cycle_month"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    recurring_booking_id = Column(
        Integer, ForeignKey("recurring_bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    cycle_month = Column(Integer, nullable=False)
    cycle_year = Column(Integer, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    lessons_count = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    billing_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    paid_date = Column(Date, nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=storage_now)
    updated_at = Column(DateTime, nullable=False, default=storage_now, onupdate=storage_now)
