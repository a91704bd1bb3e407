from datetime import time, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from backend.app.core.time import local_datetime, to_local, utc_now
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.main import app
from backend.app.models.user import User
from backend.app.services.policy_settings import PolicySettingsProvider


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        PolicySettingsProvider(db).ensure_defaults()
    yield
    Base.metadata.drop_all(bind=engine)


def register_and_login(client: TestClient, email: str, password: str = "secret", admin: bool = False) -> dict:
    client.post("/auth/register", json={"email": email, "password": password})
    if admin:
        with SessionLocal() as db:
            user = db.query(User).filter(User.email == email).one()
            user.is_admin = True
            db.commit()
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def lesson_day(days_ahead: int = 7):
    return to_local(utc_now()).date() + timedelta(days=days_ahead)


def lesson_start(days_ahead: int = 7, hour: int = 14) -> str:
    return local_datetime(lesson_day(days_ahead), time(hour, 0)).isoformat()


def test_booking_requires_authentication():
    client = TestClient(app)
    response = client.post("/bookings", json={"start_time": lesson_start(), "duration": 60})
    assert response.status_code == 401


def test_create_and_list_booking():
    client = TestClient(app)
    headers = register_and_login(client, "client@example.com")

    response = client.post("/bookings", json={"start_time": lesson_start(), "duration": 60}, headers=headers)
    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["payment_status"] == "pending"
    assert Decimal(str(data["price"])) == Decimal("95.00")

    listed = client.get("/bookings", headers=headers)
    assert listed.status_code == 200
    assert [booking["id"] for booking in listed.json()] == [data["id"]]

    events = client.get(f"/bookings/{data['id']}/events", headers=headers)
    assert [event["kind"] for event in events.json()] == ["created"]


def test_double_booking_returns_409_with_alternatives():
    client = TestClient(app)
    first = register_and_login(client, "first@example.com")
    second = register_and_login(client, "second@example.com")
    payload = {"start_time": lesson_start(), "duration": 60}

    assert client.post("/bookings", json=payload, headers=first).status_code == 201
    response = client.post("/bookings", json=payload, headers=second)
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "slot_conflict"
    assert detail["details"]["alternatives"]


def test_invalid_duration_returns_400():
    client = TestClient(app)
    headers = register_and_login(client, "client@example.com")
    response = client.post("/bookings", json={"start_time": lesson_start(), "duration": 90}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_duration"


def test_blackout_created_by_admin_blocks_booking():
    client = TestClient(app)
    admin = register_and_login(client, "admin@example.com", admin=True)
    headers = register_and_login(client, "client@example.com")
    day = lesson_day().isoformat()

    created = client.post(
        "/admin/blackouts",
        json={"start_date": day, "end_date": day, "reason": "Studio maintenance"},
        headers=admin,
    )
    assert created.status_code == 201

    response = client.post("/bookings", json={"start_time": lesson_start(), "duration": 60}, headers=headers)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "blackout_date"

    public = client.get("/recurring/blackout-dates")
    assert [item["reason"] for item in public.json()] == ["Studio maintenance"]

    deactivated = client.post(f"/admin/blackouts/{created.json()['id']}/deactivate", headers=admin)
    assert deactivated.json()["is_active"] is False
    retry = client.post("/bookings", json={"start_time": lesson_start(), "duration": 60}, headers=headers)
    assert retry.status_code == 201


def test_availability_reflects_bookings():
    client = TestClient(app)
    headers = register_and_login(client, "client@example.com")
    client.post("/bookings", json={"start_time": lesson_start(hour=14), "duration": 60}, headers=headers)

    response = client.get(f"/availability/{lesson_day().isoformat()}", params={"duration": 60})
    assert response.status_code == 200
    slots = {slot["start"][11:16]: slot for slot in response.json()["slots"]}
    assert slots["14:00"]["available"] is False
    assert slots["14:00"]["reason"] == "booked"
    assert slots["15:00"]["available"] is True

    open_slots = client.get(f"/availability/{lesson_day().isoformat()}/open", params={"duration": 60})
    assert all(slot["available"] for slot in open_slots.json()["slots"])


def test_cancel_and_reschedule_flow():
    client = TestClient(app)
    headers = register_and_login(client, "client@example.com")
    booking = client.post(
        "/bookings", json={"start_time": lesson_start(days_ahead=10), "duration": 60}, headers=headers
    ).json()

    moved = client.put(
        f"/bookings/{booking['id']}/reschedule",
        json={"new_start": lesson_start(days_ahead=10, hour=16)},
        headers=headers,
    )
    assert moved.status_code == 200
    assert moved.json()["reschedule_count"] == 1

    cancelled = client.post(f"/bookings/{booking['id']}/cancel", json={"reason": "Travel"}, headers=headers)
    assert cancelled.status_code == 200
    body = cancelled.json()
    assert body["booking"]["status"] == "cancelled"
    assert body["late_fee_charged"] is False
    assert body["fee_payment"] is None


def test_other_client_gets_404():
    client = TestClient(app)
    owner = register_and_login(client, "owner@example.com")
    stranger = register_and_login(client, "stranger@example.com")
    booking = client.post("/bookings", json={"start_time": lesson_start(), "duration": 60}, headers=owner).json()
    response = client.get(f"/bookings/{booking['id']}", headers=stranger)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "booking_not_found"


def test_payment_completion_confirms_booking():
    client = TestClient(app)
    admin = register_and_login(client, "admin@example.com", admin=True)
    headers = register_and_login(client, "client@example.com")
    booking = client.post("/bookings", json={"start_time": lesson_start(), "duration": 60}, headers=headers).json()

    payment = client.post(
        "/payments", json={"booking_id": booking["id"], "method": "venmo", "reference": "@client"}, headers=headers
    )
    assert payment.status_code == 201
    assert client.put(f"/payments/{payment.json()['id']}/complete", headers=headers).status_code == 403

    completed = client.put(f"/payments/{payment.json()['id']}/complete", json={"reference": "VN-1"}, headers=admin)
    assert completed.status_code == 200
    assert client.get(f"/bookings/{booking['id']}", headers=headers).json()["status"] == "confirmed"

    refused = client.post(f"/payments/{payment.json()['id']}/refund", json={"reason": "changed_mind"}, headers=admin)
    assert refused.status_code == 422
    assert refused.json()["detail"]["code"] == "refund_not_allowed"


def test_admin_routes_require_admin():
    client = TestClient(app)
    headers = register_and_login(client, "client@example.com")
    assert client.get("/admin/bookings", headers=headers).status_code == 403
    assert client.get("/admin/settings", headers=headers).status_code == 403
    assert client.get("/admin/calendar/status", headers=headers).status_code == 403
