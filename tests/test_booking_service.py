from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from backend.app.core.exceptions import ConflictError, ForbiddenError, NotFoundError, PolicyDenied, ValidationError
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.models.blackout import BlackoutRange
from backend.app.models.booking_event import BookingEvent
from backend.app.models.payment import Payment
from backend.app.models.user import User
from backend.app.services.booking_service import LATE_CANCELLATION_REFERENCE, BookingService
from backend.app.services.policy_settings import PolicySettingsProvider

PACIFIC = ZoneInfo("America/Los_Angeles")
NOW = datetime(2025, 11, 1, 12, 0, tzinfo=UTC)
MONDAY_2PM = datetime(2025, 11, 10, 14, 0, tzinfo=PACIFIC)


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        PolicySettingsProvider(db).ensure_defaults()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_user(db, email, is_admin=False):
    user = User(email=email, hashed_password="x", is_active=True, is_admin=is_admin)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_service(db):
    return BookingService(db, PolicySettingsProvider(db).load())


def test_create_booking_is_pending_at_configured_price(db):
    client = make_user(db, "client@example.com")
    booking = make_service(db).create_booking(client, MONDAY_2PM, 60, now=NOW)

    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.price == Decimal("95.00")
    assert booking.lesson_date == datetime(2025, 11, 10, 22, 0)
    assert booking.calendar_sync_state == "unsynced"
    kinds = [event.kind for event in db.query(BookingEvent).filter(BookingEvent.booking_id == booking.id)]
    assert kinds == ["created"]


def test_booking_on_blackout_date_is_rejected(db):
    client = make_user(db, "client@example.com")
    db.add(BlackoutRange(start_date=date(2025, 11, 24), end_date=date(2025, 11, 29), reason="Thanksgiving Break"))
    db.commit()

    with pytest.raises(ValidationError) as exc:
        make_service(db).create_booking(client, datetime(2025, 11, 24, 14, 0, tzinfo=PACIFIC), 60, now=NOW)
    assert exc.value.code == "blackout_date"
    assert exc.value.details["reason"] == "Thanksgiving Break"


def test_inactive_blackout_does_not_block(db):
    client = make_user(db, "client@example.com")
    db.add(
        BlackoutRange(start_date=date(2025, 11, 24), end_date=date(2025, 11, 29), reason="Old", is_active=False)
    )
    db.commit()
    booking = make_service(db).create_booking(client, datetime(2025, 11, 24, 14, 0, tzinfo=PACIFIC), 60, now=NOW)
    assert booking.status == "pending"


@pytest.mark.parametrize(
    "start, duration, code",
    [
        (datetime(2025, 10, 30, 14, 0, tzinfo=PACIFIC), 60, "past_start"),
        (datetime(2025, 11, 1, 15, 0, tzinfo=PACIFIC), 60, "advance_notice"),
        (datetime(2025, 11, 10, 8, 30, tzinfo=PACIFIC), 60, "outside_business_hours"),
        (datetime(2025, 11, 10, 17, 30, tzinfo=PACIFIC), 60, "outside_business_hours"),
        (datetime(2025, 11, 10, 14, 0, tzinfo=PACIFIC), 50, "invalid_duration"),
    ],
)
def test_create_booking_rejects_invalid_requests(db, start, duration, code):
    client = make_user(db, "client@example.com")
    with pytest.raises(ValidationError) as exc:
        make_service(db).create_booking(client, start, duration, now=NOW)
    assert exc.value.code == code


def test_lesson_ending_at_close_is_accepted(db):
    client = make_user(db, "client@example.com")
    booking = make_service(db).create_booking(client, datetime(2025, 11, 10, 17, 0, tzinfo=PACIFIC), 60, now=NOW)
    assert booking.status == "pending"


def test_same_start_conflicts_and_offers_alternatives(db):
    first = make_user(db, "first@example.com")
    second = make_user(db, "second@example.com")
    service = make_service(db)
    service.create_booking(first, MONDAY_2PM, 60, now=NOW)

    with pytest.raises(ConflictError) as exc:
        service.create_booking(second, MONDAY_2PM, 60, now=NOW)
    assert exc.value.code == "slot_conflict"
    alternatives = exc.value.details["alternatives"]
    assert len(alternatives) == 3
    # 14:30 still overlaps the held lesson
    assert datetime.fromisoformat(alternatives[0]["start"]) == datetime(2025, 11, 10, 15, 0, tzinfo=PACIFIC)


def test_cancelled_slot_can_be_booked_again(db):
    first = make_user(db, "first@example.com")
    second = make_user(db, "second@example.com")
    service = make_service(db)
    booking = service.create_booking(first, MONDAY_2PM, 60, now=NOW)
    service.cancel_booking(booking.id, first, now=NOW)

    rebooked = service.create_booking(second, MONDAY_2PM, 60, now=NOW)
    assert rebooked.status == "pending"


def test_cancellation_exactly_at_policy_boundary_is_free(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)

    outcome = service.cancel_booking(booking.id, client, now=MONDAY_2PM - timedelta(hours=24))
    assert outcome.booking.status == "cancelled"
    assert outcome.late_fee_charged is False
    assert db.query(Payment).count() == 0


def test_late_cancellation_records_fee_and_still_cancels(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)

    now = MONDAY_2PM - timedelta(hours=24) + timedelta(minutes=1)
    outcome = service.cancel_booking(booking.id, client, now=now)
    assert outcome.booking.status == "cancelled"
    assert outcome.late_fee_charged is True
    assert outcome.fee_payment.method == "automatic_charge"
    assert outcome.fee_payment.reference == LATE_CANCELLATION_REFERENCE
    assert outcome.fee_payment.amount == Decimal("95.00")
    assert outcome.fee_payment.status == "pending"


def test_instructor_cancellation_never_charges(db):
    client = make_user(db, "client@example.com")
    admin = make_user(db, "admin@example.com", is_admin=True)
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)

    outcome = service.cancel_booking(
        booking.id, admin, reason="instructor_cancellation", now=MONDAY_2PM - timedelta(hours=1)
    )
    assert outcome.late_fee_charged is False
    assert outcome.booking.cancellation_reason == "instructor_cancellation"


def test_client_cannot_claim_instructor_cancellation(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)
    with pytest.raises(ForbiddenError):
        service.cancel_booking(booking.id, client, reason="instructor_cancellation", now=NOW)


def test_cancelling_twice_is_rejected(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)
    service.cancel_booking(booking.id, client, now=NOW)
    with pytest.raises(ValidationError) as exc:
        service.cancel_booking(booking.id, client, now=NOW)
    assert exc.value.code == "invalid_transition"


def test_reschedule_keeps_status_and_tracks_original(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)
    service.confirm_payment_success(booking.id)

    moved = service.reschedule_booking(booking.id, client, datetime(2025, 11, 12, 10, 0, tzinfo=PACIFIC), now=NOW)
    assert moved.status == "confirmed"
    assert moved.reschedule_count == 1
    assert moved.original_date == datetime(2025, 11, 10, 22, 0)

    again = service.reschedule_booking(booking.id, client, datetime(2025, 11, 13, 10, 0, tzinfo=PACIFIC), now=NOW)
    assert again.reschedule_count == 2
    assert again.original_date == datetime(2025, 11, 10, 22, 0)


def test_cross_month_reschedule_is_rejected(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, datetime(2025, 11, 27, 14, 0, tzinfo=PACIFIC), 60, now=NOW)

    with pytest.raises(PolicyDenied) as exc:
        service.reschedule_booking(booking.id, client, datetime(2025, 12, 2, 14, 0, tzinfo=PACIFIC), now=NOW)
    assert exc.value.code == "cross_month"
    db.refresh(booking)
    assert booking.reschedule_count == 0


def test_monthly_reschedule_limit(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    first = service.create_booking(client, MONDAY_2PM, 60, now=NOW)
    second = service.create_booking(client, datetime(2025, 11, 17, 14, 0, tzinfo=PACIFIC), 60, now=NOW)

    service.reschedule_booking(first.id, client, datetime(2025, 11, 11, 14, 0, tzinfo=PACIFIC), now=NOW)
    service.reschedule_booking(second.id, client, datetime(2025, 11, 18, 14, 0, tzinfo=PACIFIC), now=NOW)
    with pytest.raises(PolicyDenied) as exc:
        service.reschedule_booking(second.id, client, datetime(2025, 11, 19, 14, 0, tzinfo=PACIFIC), now=NOW)
    assert exc.value.code == "reschedule_limit"


def test_one_booking_moved_repeatedly_counts_once_toward_the_limit(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)

    for day in (11, 12, 13):
        moved = service.reschedule_booking(booking.id, client, datetime(2025, 11, day, 14, 0, tzinfo=PACIFIC), now=NOW)
    assert moved.reschedule_count == 3

    other = service.create_booking(client, datetime(2025, 11, 17, 14, 0, tzinfo=PACIFIC), 60, now=NOW)
    service.reschedule_booking(other.id, client, datetime(2025, 11, 18, 14, 0, tzinfo=PACIFIC), now=NOW)
    third = service.create_booking(client, datetime(2025, 11, 20, 14, 0, tzinfo=PACIFIC), 60, now=NOW)
    with pytest.raises(PolicyDenied) as exc:
        service.reschedule_booking(third.id, client, datetime(2025, 11, 21, 14, 0, tzinfo=PACIFIC), now=NOW)
    assert exc.value.code == "reschedule_limit"
    assert exc.value.details["reschedules_used"] == 2


def test_admin_bypasses_month_policy_but_not_conflicts(db):
    client = make_user(db, "client@example.com")
    other = make_user(db, "other@example.com")
    admin = make_user(db, "admin@example.com", is_admin=True)
    service = make_service(db)
    booking = service.create_booking(client, datetime(2025, 11, 27, 14, 0, tzinfo=PACIFIC), 60, now=NOW)
    service.create_booking(other, datetime(2025, 12, 3, 14, 0, tzinfo=PACIFIC), 60, now=NOW)

    moved = service.reschedule_booking(booking.id, admin, datetime(2025, 12, 2, 14, 0, tzinfo=PACIFIC), now=NOW)
    assert moved.reschedule_count == 1

    with pytest.raises(ConflictError):
        service.reschedule_booking(booking.id, admin, datetime(2025, 12, 3, 14, 0, tzinfo=PACIFIC), now=NOW)
    db.refresh(booking)
    assert booking.lesson_date == datetime(2025, 12, 2, 22, 0)


def test_reschedule_to_same_time_is_rejected(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)
    with pytest.raises(ValidationError) as exc:
        service.reschedule_booking(booking.id, client, MONDAY_2PM, now=NOW)
    assert exc.value.code == "same_time"


def test_payment_failure_cancels_pending_booking_once(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)

    failed = service.confirm_payment_failure(booking.id, now=NOW)
    assert failed.status == "cancelled"
    assert failed.payment_status == "failed"
    assert failed.cancellation_reason == "Payment failed"
    assert service.confirm_payment_failure(booking.id, now=NOW).status == "cancelled"


def test_complete_requires_confirmed_and_started(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)

    with pytest.raises(ValidationError) as exc:
        service.complete_booking(booking.id, now=MONDAY_2PM + timedelta(hours=1))
    assert exc.value.code == "invalid_transition"

    service.confirm_payment_success(booking.id)
    with pytest.raises(ValidationError) as exc:
        service.complete_booking(booking.id, now=NOW)
    assert exc.value.code == "not_started"

    assert service.complete_booking(booking.id, now=MONDAY_2PM + timedelta(hours=1)).status == "completed"


def test_client_cannot_see_another_clients_booking(db):
    owner = make_user(db, "owner@example.com")
    stranger = make_user(db, "stranger@example.com")
    service = make_service(db)
    booking = service.create_booking(owner, MONDAY_2PM, 60, now=NOW)
    with pytest.raises(NotFoundError) as exc:
        service.get_for_actor(booking.id, stranger)
    assert exc.value.code == "booking_not_found"


def test_admin_status_override_rejects_unknown_status(db):
    client = make_user(db, "client@example.com")
    service = make_service(db)
    booking = service.create_booking(client, MONDAY_2PM, 60, now=NOW)
    with pytest.raises(ValidationError):
        service.set_status(booking.id, "rescheduled")
    assert service.set_status(booking.id, "confirmed").payment_status == "completed"
