from datetime import datetime, timedelta

import pytest
import requests

from taskpilot.services.calendar_service import (
    CALENDAR_EVENTS_ENDPOINT,
    GOOGLE_TOKEN_ENDPOINT,
    CalendarAccessError,
    CalendarError,
    CalendarMirror,
    GoogleCalendarClient,
    build_event_from_todo,
)

from .fakes import FakeDatabase, FakeResponse, FakeSession

CONFIG = {
    "GOOGLE_CLIENT_ID": "cid",
    "GOOGLE_CLIENT_SECRET": "secret",
    "CALENDAR_TIME_ZONE": "Europe/Berlin",
}


def make_todo(db, user_id, **overrides):
    doc = {
        "title": "Dentist",
        "description": None,
        "due_date": "2026-10-20",
        "due_time": "14:30",
        "category": "reminder",
        "severity": "medium",
        "completed": False,
        "user_id": user_id,
        "google_calendar_event_id": None,
    }
    doc.update(overrides)
    todo_id = db.todos.insert_one(doc).inserted_id
    return db.todos.find_one({"_id": todo_id})


@pytest.fixture()
def db():
    return FakeDatabase()


@pytest.fixture()
def user_id(db):
    return str(
        db.users.insert_one(
            {"email": "ada@example.com", "google_tokens": {"access_token": "tok", "refresh_token": "r"}}
        ).inserted_id
    )


def test_event_from_timed_todo():
    event = build_event_from_todo(
        {"title": "Dentist", "due_date": "2026-10-20", "due_time": "14:30", "severity": "low"},
        "Europe/Berlin",
    )
    assert event["summary"] == "[TODO] Dentist"
    assert event["description"] == "Todo item with low priority"
    assert event["start"] == {"dateTime": "2026-10-20T14:30:00", "timeZone": "Europe/Berlin"}
    assert event["end"] == {"dateTime": "2026-10-20T15:30:00", "timeZone": "Europe/Berlin"}
    assert event["reminders"] == {"useDefault": False, "overrides": [{"method": "popup", "minutes": 60}]}


def test_event_defaults_to_nine_to_ten():
    event = build_event_from_todo({"title": "Pay rent", "due_date": "2026-10-20", "description": "Rent"})
    assert event["start"]["dateTime"] == "2026-10-20T09:00:00"
    assert event["end"]["dateTime"] == "2026-10-20T10:00:00"
    assert event["description"] == "Rent"


def test_late_event_ends_on_the_next_day():
    event = build_event_from_todo({"title": "Late", "due_date": "2026-10-20", "due_time": "23:30"})
    assert event["start"]["dateTime"] == "2026-10-20T23:30:00"
    assert event["end"]["dateTime"] == "2026-10-21T00:30:00"


def test_event_rejects_malformed_due_date():
    with pytest.raises(CalendarError):
        build_event_from_todo({"title": "Bad", "due_date": "20-10-2026"})


@pytest.mark.parametrize("severity", ["critical", "high"])
def test_severe_todos_get_three_reminders(severity):
    event = build_event_from_todo({"title": "x", "due_date": "2026-10-20", "severity": severity})
    assert event["reminders"]["overrides"] == [
        {"method": "popup", "minutes": 60},
        {"method": "popup", "minutes": 15},
        {"method": "email", "minutes": 60},
    ]


def test_event_requires_due_date():
    with pytest.raises(CalendarError):
        build_event_from_todo({"title": "x"})


def test_client_sends_bearer_token():
    session = FakeSession([FakeResponse(200, {"id": "evt1"})])
    client = GoogleCalendarClient("tok", session=session)
    assert client.create_event({"summary": "x"}) == "evt1"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", CALENDAR_EVENTS_ENDPOINT)
    assert kwargs["headers"] == {"Authorization": "Bearer tok"}


def test_client_wraps_http_and_network_errors():
    with pytest.raises(CalendarError):
        GoogleCalendarClient("tok", session=FakeSession([FakeResponse(403, {})])).delete_event("e")
    with pytest.raises(CalendarError):
        GoogleCalendarClient("tok", session=FakeSession(error=requests.ConnectionError("down"))).list_events()


def test_sync_create_stores_event_id(db, user_id):
    todo = make_todo(db, user_id)
    session = FakeSession([FakeResponse(200, {"id": "evt1"})])
    result = CalendarMirror(db, CONFIG, session=session).sync(todo, "create")

    assert result == {"eventId": "evt1"}
    assert db.todos.find_one({"_id": todo["_id"]})["google_calendar_event_id"] == "evt1"
    sent = session.calls[0][2]["json"]
    assert sent["start"]["timeZone"] == "Europe/Berlin"


def test_sync_create_ignores_normal_todos(db, user_id):
    todo = make_todo(db, user_id, category="normal")
    session = FakeSession()
    assert CalendarMirror(db, CONFIG, session=session).sync(todo, "create") is None
    assert session.calls == []


def test_sync_update_and_delete(db, user_id):
    todo = make_todo(db, user_id, google_calendar_event_id="evt1")
    session = FakeSession()
    mirror = CalendarMirror(db, CONFIG, session=session)

    assert mirror.sync(todo, "update") == {"updated": True}
    assert session.calls[-1][:2] == ("PUT", f"{CALENDAR_EVENTS_ENDPOINT}/evt1")

    assert mirror.sync(todo, "delete") == {"deleted": True}
    assert session.calls[-1][:2] == ("DELETE", f"{CALENDAR_EVENTS_ENDPOINT}/evt1")
    assert db.todos.find_one({"_id": todo["_id"]})["google_calendar_event_id"] is None


def test_sync_update_without_event_is_noop(db, user_id):
    todo = make_todo(db, user_id)
    assert CalendarMirror(db, CONFIG, session=FakeSession()).sync(todo, "update") is None


def test_sync_rejects_unknown_action(db, user_id):
    with pytest.raises(ValueError):
        CalendarMirror(db, CONFIG, session=FakeSession()).sync(make_todo(db, user_id), "move")


def test_sync_without_tokens_raises_access_error(db):
    no_google = str(db.users.insert_one({"email": "bob@example.com"}).inserted_id)
    with pytest.raises(CalendarAccessError):
        CalendarMirror(db, CONFIG, session=FakeSession()).sync(make_todo(db, no_google), "create")


def test_mirror_swallows_provider_failure(db, user_id):
    todo = make_todo(db, user_id)
    session = FakeSession(error=requests.ConnectionError("down"))
    assert CalendarMirror(db, CONFIG, session=session).mirror(todo, "create") is None
    assert db.todos.find_one({"_id": todo["_id"]})["google_calendar_event_id"] is None


def test_expired_token_is_refreshed(db):
    uid = db.users.insert_one(
        {
            "email": "ada@example.com",
            "google_tokens": {
                "access_token": "old",
                "refresh_token": "r",
                "expires_at": datetime.utcnow() - timedelta(minutes=5),
            },
        }
    ).inserted_id
    session = FakeSession([FakeResponse(200, {"access_token": "new", "expires_in": 3600})])
    mirror = CalendarMirror(db, CONFIG, session=session)

    assert mirror.access_token_for(str(uid)) == "new"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", GOOGLE_TOKEN_ENDPOINT)
    assert kwargs["data"]["grant_type"] == "refresh_token"
    stored = db.users.find_one({"_id": uid})["google_tokens"]
    assert stored["access_token"] == "new"
    assert stored["expires_at"] > datetime.utcnow()


def test_failed_refresh_means_no_access(db):
    uid = db.users.insert_one(
        {
            "email": "ada@example.com",
            "google_tokens": {
                "access_token": "old",
                "refresh_token": "r",
                "expires_at": datetime.utcnow() - timedelta(minutes=5),
            },
        }
    ).inserted_id
    session = FakeSession([FakeResponse(400, {"error": "invalid_grant"})])
    assert CalendarMirror(db, CONFIG, session=session).access_token_for(str(uid)) is None
