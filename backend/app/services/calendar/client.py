"""Google Calendar REST client used by the reconciler and the availability resolver."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Protocol

import httpx

from backend.app.core.exceptions import ExternalSyncError
from backend.app.core.time import studio_zone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    event_id: Optional[str] = None
    summary: Optional[str] = None


@dataclass(frozen=True)
class EventDetails:
    summary: str
    start: datetime
    end: datetime
    description: str = ""

    def to_payload(self, timezone_name: str) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "description": self.description,
            "start": {"dateTime": self.start.isoformat(), "timeZone": timezone_name},
            "end": {"dateTime": self.end.isoformat(), "timeZone": timezone_name},
        }


class CalendarClient(Protocol):
    def list_busy_intervals(self, start: datetime, end: datetime) -> List[BusyInterval]: ...

    def create_event(self, details: EventDetails) -> str: ...

    def update_event(self, event_id: str, details: EventDetails) -> None: ...

    def delete_event(self, event_id: str) -> None: ...


def _parse_event_bound(value: Dict[str, Any]) -> datetime:
    if "dateTime" in value:
        return datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00"))
    # All-day events carry only a date; they block the whole local day
    return datetime.combine(date.fromisoformat(value["date"]), time(0, 0), tzinfo=studio_zone())


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError as exc:
        raise ExternalSyncError("Calendar API returned a non-JSON body", code="bad_response") from exc
    if not isinstance(payload, dict):
        raise ExternalSyncError("Calendar API returned an unexpected body", code="bad_response")
    return payload


class GoogleCalendarClient:
    """Thin client for the Google Calendar v3 API.

    An expired access token is refreshed with the stored refresh token and the
    call is retried once. Any other failure surfaces as ``ExternalSyncError``.
    """

    def __init__(
        self,
        *,
        calendar_id: str,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: str = "https://www.googleapis.com/calendar/v3",
        token_url: str = "https://oauth2.googleapis.com/token",
        timeout: float = 10.0,
        timezone_name: str = "America/Los_Angeles",
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not access_token and not refresh_token:
            raise ValueError("An access token or refresh token must be provided")
        self.calendar_id = calendar_id
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._timeout = timeout
        self._timezone_name = timezone_name
        self._transport = transport

    @property
    def events_path(self) -> str:
        return f"/calendars/{self.calendar_id}/events"

    def refresh_access_token(self) -> str:
        if not self._refresh_token:
            raise ExternalSyncError("Calendar access token expired and no refresh token is configured", code="auth")
        data = {
            "client_id": self._client_id or "",
            "client_secret": self._client_secret or "",
            "refresh_token": self._refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                response = client.post(self._token_url, data=data)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExternalSyncError(f"Token refresh failed: {exc}", code="auth") from exc

        token = _json_body(response).get("access_token")
        if not token:
            raise ExternalSyncError("Token refresh response did not include an access token", code="auth")
        self._access_token = token
        logger.info("Refreshed Google Calendar access token")
        return token

    def _send(self, method: str, path: str, *, json_body=None, params=None) -> httpx.Response:
        if not self._access_token:
            self.refresh_access_token()
        with httpx.Client(
            timeout=self._timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        ) as client:
            return client.request(
                method,
                f"{self._base_url}{path}",
                json=json_body,
                params=params,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )

    def request(self, method: str, path: str, *, json_body=None, params=None, allow_status=()) -> httpx.Response:
        try:
            response = self._send(method, path, json_body=json_body, params=params)
            if response.status_code == 401:
                self.refresh_access_token()
                response = self._send(method, path, json_body=json_body, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Google Calendar %s %s failed: %s", method, path, exc)
            raise ExternalSyncError(f"Calendar request failed: {exc}", code="transport") from exc

        if response.status_code in allow_status:
            return response
        if response.status_code >= 400:
            logger.warning("Google Calendar %s %s returned %s", method, path, response.status_code)
            raise ExternalSyncError(
                f"Calendar API returned {response.status_code}",
                code="http_error",
                details={"status_code": response.status_code, "body": response.text[:500]},
            )
        return response

    def list_busy_intervals(self, start: datetime, end: datetime) -> List[BusyInterval]:
        params = {
            "timeMin": start.isoformat(),
            "timeMax": end.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        payload = _json_body(self.request("GET", self.events_path, params=params))
        intervals: List[BusyInterval] = []
        try:
            for item in payload.get("items", []):
                if item.get("status") == "cancelled" or item.get("transparency") == "transparent":
                    continue
                if "start" not in item or "end" not in item:
                    continue
                intervals.append(
                    BusyInterval(
                        start=_parse_event_bound(item["start"]),
                        end=_parse_event_bound(item["end"]),
                        event_id=item.get("id"),
                        summary=item.get("summary"),
                    )
                )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Google Calendar returned a malformed event list: %s", exc)
            raise ExternalSyncError("Calendar API returned a malformed event", code="bad_response") from exc
        return intervals

    def create_event(self, details: EventDetails) -> str:
        response = self.request("POST", self.events_path, json_body=details.to_payload(self._timezone_name))
        event_id = _json_body(response).get("id")
        if not event_id:
            raise ExternalSyncError("Calendar API created an event without an id", code="bad_response")
        return event_id

    def update_event(self, event_id: str, details: EventDetails) -> None:
        self.request("PUT", f"{self.events_path}/{event_id}", json_body=details.to_payload(self._timezone_name))

    def delete_event(self, event_id: str) -> None:
        # Already removed on the calendar side counts as deleted
        self.request("DELETE", f"{self.events_path}/{event_id}", allow_status=(404, 410))
