"""One-way mirror of reminder todos into the user's primary Google Calendar.

Talks to the Calendar v3 REST API directly with the OAuth access token
captured at Google login; tokens are refreshed with the stored refresh
token once they expire.
"""
import logging
from datetime import datetime, time, timedelta

import requests

from taskpilot.models.todo_model import ValidationError, parse_due_date, parse_due_time
from taskpilot.utils.db import to_object_id

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
CALENDAR_EVENTS_ENDPOINT = "https://www.googleapis.com/calendar/v3/calendars/primary/events"

ACTIONS = ("create", "update", "delete")


class CalendarError(Exception):
    """The calendar provider rejected a request or could not be reached."""


class CalendarAccessError(CalendarError):
    """The user has no usable Google Calendar credentials."""


def build_event_from_todo(todo, time_zone="UTC"):
    due_date = todo.get("due_date")
    if not due_date:
        raise CalendarError("Todo has no due date to place on the calendar")
    try:
        day = parse_due_date(due_date)
        at = parse_due_time(todo.get("due_time")) or time(9, 0)
    except ValidationError as exc:
        raise CalendarError(str(exc)) from exc
    start = datetime.combine(day, at)
    end = start + timedelta(hours=1)

    severity = todo.get("severity") or "medium"
    if severity in ("critical", "high"):
        overrides = [
            {"method": "popup", "minutes": 60},
            {"method": "popup", "minutes": 15},
            {"method": "email", "minutes": 60},
        ]
    else:
        overrides = [{"method": "popup", "minutes": 60}]

    return {
        "summary": f"[TODO] {todo.get('title')}",
        "description": todo.get("description") or f"Todo item with {severity} priority",
        "start": {"dateTime": start.isoformat(), "timeZone": time_zone},
        "end": {"dateTime": end.isoformat(), "timeZone": time_zone},
        "reminders": {"useDefault": False, "overrides": overrides},
    }


class GoogleCalendarClient:
    def __init__(self, access_token, session=None, timeout=10):
        self.access_token = access_token
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method, url, **kwargs):
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            resp = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise CalendarError(f"Calendar request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise CalendarError(f"Calendar API returned {resp.status_code}: {resp.text[:200]}")
        return resp

    def create_event(self, event):
        resp = self._request("POST", CALENDAR_EVENTS_ENDPOINT, json=event)
        return resp.json().get("id")

    def update_event(self, event_id, event):
        self._request("PUT", f"{CALENDAR_EVENTS_ENDPOINT}/{event_id}", json=event)

    def delete_event(self, event_id):
        self._request("DELETE", f"{CALENDAR_EVENTS_ENDPOINT}/{event_id}")

    def list_events(self, time_min=None, time_max=None):
        params = {
            "timeMin": time_min or datetime.utcnow().isoformat() + "Z",
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        if time_max:
            params["timeMax"] = time_max
        resp = self._request("GET", CALENDAR_EVENTS_ENDPOINT, params=params)
        return resp.json().get("items", [])


class CalendarMirror:
    def __init__(self, db, config, session=None):
        self.db = db
        self.config = config
        self.session = session or requests.Session()

    def access_token_for(self, user_id):
        """Return a valid access token for ``user_id`` or None."""
        user = self.db.users.find_one({"_id": to_object_id(user_id)})
        tokens = (user or {}).get("google_tokens") or {}
        access_token = tokens.get("access_token")
        if not access_token:
            return None

        expires_at = tokens.get("expires_at")
        if expires_at and expires_at <= datetime.utcnow():
            return self._refresh(user["_id"], tokens)
        return access_token

    def _refresh(self, user_oid, tokens):
        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            return None
        data = {
            "client_id": self.config.get("GOOGLE_CLIENT_ID"),
            "client_secret": self.config.get("GOOGLE_CLIENT_SECRET"),
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            resp = self.session.post(GOOGLE_TOKEN_ENDPOINT, data=data, timeout=10)
            resp.raise_for_status()
            token_json = resp.json()
        except requests.RequestException as exc:
            logger.warning("Refreshing Google access token failed: %s", exc)
            return None

        access_token = token_json.get("access_token")
        if not access_token:
            return None
        self.db.users.update_one(
            {"_id": user_oid},
            {
                "$set": {
                    "google_tokens.access_token": access_token,
                    "google_tokens.expires_at": token_expiry(token_json),
                }
            },
        )
        return access_token

    def client_for(self, user_id):
        access_token = self.access_token_for(user_id)
        if not access_token:
            raise CalendarAccessError("Google Calendar access not available")
        return GoogleCalendarClient(access_token, session=self.session)

    def sync(self, todo, action):
        """Push one todo to the calendar. Returns a small result dict or None.

        Raises ValueError for an unknown action and CalendarError when the
        provider call fails.
        """
        if action not in ACTIONS:
            raise ValueError(f"Invalid action: {action}")
        client = self.client_for(todo["user_id"])
        time_zone = self.config.get("CALENDAR_TIME_ZONE", "UTC")
        event_id = todo.get("google_calendar_event_id")

        if action == "create":
            if todo.get("category") != "reminder":
                return None
            new_id = client.create_event(build_event_from_todo(todo, time_zone))
            self._set_event_id(todo, new_id)
            return {"eventId": new_id}

        if action == "update":
            if not event_id or todo.get("category") != "reminder":
                return None
            client.update_event(event_id, build_event_from_todo(todo, time_zone))
            return {"updated": True}

        if not event_id:
            return None
        client.delete_event(event_id)
        self._set_event_id(todo, None)
        return {"deleted": True}

    def _set_event_id(self, todo, event_id):
        self.db.todos.update_one(
            {"_id": todo["_id"]},
            {"$set": {"google_calendar_event_id": event_id, "updated_at": datetime.utcnow()}},
        )
        todo["google_calendar_event_id"] = event_id

    def mirror(self, todo, action):
        """Best-effort :meth:`sync`; failures are logged and never raised."""
        try:
            return self.sync(todo, action)
        except CalendarAccessError:
            logger.info("Skipping calendar %s for todo %s: no Google access", action, todo.get("_id"))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to %s calendar event for todo %s: %s", action, todo.get("_id"), exc)
        return None


def token_expiry(token_json):
    expires_in = token_json.get("expires_in")
    if not expires_in:
        return None
    # Treat the token as expired a minute before Google does.
    return datetime.utcnow() + timedelta(seconds=int(expires_in) - 60)
