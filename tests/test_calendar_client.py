from datetime import UTC, datetime

import pytest
from httpx import MockTransport, Response

from backend.app.core.exceptions import ExternalSyncError
from backend.app.services.calendar.client import EventDetails, GoogleCalendarClient

BASE_URL = "https://calendar.test/v3"
TOKEN_URL = "https://oauth.test/token"
WINDOW = (datetime(2025, 11, 10, 8, 0, tzinfo=UTC), datetime(2025, 11, 11, 8, 0, tzinfo=UTC))


def make_client(handler, access_token="old-token", refresh_token="refresh-1"):
    return GoogleCalendarClient(
        calendar_id="studio",
        access_token=access_token,
        refresh_token=refresh_token,
        client_id="client-id",
        client_secret="client-secret",
        base_url=BASE_URL,
        token_url=TOKEN_URL,
        transport=MockTransport(handler),
    )


def test_requires_some_credential():
    with pytest.raises(ValueError):
        GoogleCalendarClient(calendar_id="studio")


def test_list_busy_intervals_skips_free_and_cancelled_events():
    captured = {}

    def handler(request):
        captured["params"] = dict(request.url.params)
        captured["auth"] = request.headers.get("Authorization")
        return Response(
            200,
            json={
                "items": [
                    {
                        "id": "evt-1",
                        "summary": "Dentist",
                        "start": {"dateTime": "2025-11-10T10:00:00-08:00"},
                        "end": {"dateTime": "2025-11-10T11:00:00-08:00"},
                    },
                    {"id": "evt-2", "transparency": "transparent", "start": {"date": "2025-11-10"}, "end": {"date": "2025-11-11"}},
                    {"id": "evt-3", "status": "cancelled", "start": {"date": "2025-11-10"}, "end": {"date": "2025-11-11"}},
                    {"id": "evt-4", "start": {"date": "2025-11-10"}, "end": {"date": "2025-11-11"}},
                ]
            },
        )

    intervals = make_client(handler).list_busy_intervals(*WINDOW)

    assert captured["auth"] == "Bearer old-token"
    assert captured["params"]["singleEvents"] == "true"
    assert [interval.event_id for interval in intervals] == ["evt-1", "evt-4"]
    assert intervals[0].start == datetime(2025, 11, 10, 18, 0, tzinfo=UTC)
    # All-day events block the whole studio-local day
    assert intervals[1].start == datetime(2025, 11, 10, 8, 0, tzinfo=UTC)


def test_expired_token_is_refreshed_and_call_retried_once():
    calls = []

    def handler(request):
        calls.append((request.method, str(request.url), request.headers.get("Authorization")))
        if str(request.url) == TOKEN_URL:
            assert b"grant_type=refresh_token" in request.content
            return Response(200, json={"access_token": "new-token"})
        if request.headers.get("Authorization") == "Bearer old-token":
            return Response(401, json={"error": "expired"})
        return Response(200, json={"id": "evt-9"})

    client = make_client(handler)
    details = EventDetails(
        summary="60-min regular lesson - Ana",
        start=datetime(2025, 11, 10, 22, 0, tzinfo=UTC),
        end=datetime(2025, 11, 10, 23, 0, tzinfo=UTC),
    )
    assert client.create_event(details) == "evt-9"
    assert [call[0] for call in calls] == ["POST", "POST", "POST"]
    assert calls[1][1] == TOKEN_URL
    assert calls[2][2] == "Bearer new-token"


def test_second_unauthorized_response_is_an_error():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return Response(200, json={"access_token": "still-bad"})
        return Response(401)

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).list_busy_intervals(*WINDOW)
    assert exc.value.code == "http_error"


def test_refresh_failure_is_an_auth_error():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return Response(400, json={"error": "invalid_grant"})
        return Response(401)

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).list_busy_intervals(*WINDOW)
    assert exc.value.code == "auth"


def test_delete_of_missing_event_succeeds():
    def handler(request):
        assert request.method == "DELETE"
        return Response(410)

    make_client(handler).delete_event("evt-gone")


def test_server_error_raises_external_sync_error():
    def handler(request):
        return Response(503, text="unavailable")

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).update_event(
            "evt-1",
            EventDetails(summary="x", start=WINDOW[0], end=WINDOW[1]),
        )
    assert exc.value.details["status_code"] == 503


def test_non_json_body_is_a_bad_response():
    def handler(request):
        return Response(200, text="<html>oops</html>")

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).list_busy_intervals(*WINDOW)
    assert exc.value.code == "bad_response"


def test_malformed_event_bounds_are_a_bad_response():
    def handler(request):
        return Response(200, json={"items": [{"id": "evt-1", "start": {"dateTime": "soon"}, "end": {}}]})

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).list_busy_intervals(*WINDOW)
    assert exc.value.code == "bad_response"


def test_created_event_without_id_is_a_bad_response():
    def handler(request):
        return Response(200, json={"status": "confirmed"})

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).create_event(EventDetails(summary="x", start=WINDOW[0], end=WINDOW[1]))
    assert exc.value.code == "bad_response"


def test_token_refresh_with_non_json_body_is_a_bad_response():
    def handler(request):
        if str(request.url) == TOKEN_URL:
            return Response(200, text="not json")
        return Response(401)

    with pytest.raises(ExternalSyncError) as exc:
        make_client(handler).list_busy_intervals(*WINDOW)
    assert exc.value.code == "bad_response"
