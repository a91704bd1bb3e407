"""FastAPI dependencies that build request-scoped services around the DB session."""

from fastapi import Depends
from sqlalchemy.orm import Session

from backend.app.db.session import get_db
from backend.app.services.availability import AvailabilityResolver
from backend.app.services.booking_service import BookingService
from backend.app.services.calendar.integration import CalendarIntegration, get_calendar_integration
from backend.app.services.calendar.reconciler import CalendarReconciler
from backend.app.services.makeup import MakeupService
from backend.app.services.payments import PaymentService
from backend.app.services.policy_settings import PolicySettings, PolicySettingsProvider
from backend.app.services.recurring import RecurringService


def get_integration() -> CalendarIntegration:
    return get_calendar_integration()


def get_policy_settings(db: Session = Depends(get_db)) -> PolicySettings:
    return PolicySettingsProvider(db).load()


def get_availability_resolver(
    db: Session = Depends(get_db),
    policy: PolicySettings = Depends(get_policy_settings),
    integration: CalendarIntegration = Depends(get_integration),
) -> AvailabilityResolver:
    return AvailabilityResolver(db, policy, integration)


def get_booking_service(
    db: Session = Depends(get_db),
    policy: PolicySettings = Depends(get_policy_settings),
    integration: CalendarIntegration = Depends(get_integration),
) -> BookingService:
    return BookingService(db, policy, integration)


def get_recurring_service(
    db: Session = Depends(get_db),
    policy: PolicySettings = Depends(get_policy_settings),
    integration: CalendarIntegration = Depends(get_integration),
) -> RecurringService:
    return RecurringService(db, policy, integration)


def get_makeup_service(
    db: Session = Depends(get_db), policy: PolicySettings = Depends(get_policy_settings)
) -> MakeupService:
    return MakeupService(db, policy)


def get_payment_service(
    db: Session = Depends(get_db), bookings: BookingService = Depends(get_booking_service)
) -> PaymentService:
    return PaymentService(db, bookings)


def get_reconciler(
    db: Session = Depends(get_db), integration: CalendarIntegration = Depends(get_integration)
) -> CalendarReconciler:
    return CalendarReconciler(db, integration)
