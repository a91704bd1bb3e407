from backend.app.models.booking import Booking
from backend.app.models.user import User


def test_user_model_has_columns():
    column_names = [column.name for column in User.__table__.columns]
    expected = {"id", "email", "first_name", "last_name", "phone", "hashed_password", "is_active", "is_admin"}
    assert expected.issubset(set(column_names))


def test_user_model_primary_key():
    pk_columns = [column.name for column in User.__table__.primary_key.columns]
    assert "id" in pk_columns


def test_display_name_falls_back_to_email():
    assert User(email="client@example.com").display_name == "client@example.com"
    assert User(email="client@example.com", first_name="Ana", last_name="Lopez").display_name == "Ana Lopez"


def test_booking_model_tracks_calendar_state():
    column_names = {column.name for column in Booking.__table__.columns}
    assert {"lesson_date", "duration", "price", "external_event_id", "calendar_sync_state"}.issubset(column_names)
