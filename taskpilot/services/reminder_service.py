"""Reminder scheduler.

Two APScheduler jobs on one background scheduler:

- a daily digest at ``digest_hour`` local time listing each user's
  incomplete todos due today, most severe first;
- a due-soon check every ``check_interval`` that sends a pre-due
  notification roughly one hour before a todo's due time.

Pre-due notifications are de-duplicated through an :class:`ExpiringRegistry`
keyed by todo and due instant, so editing a todo's due time arms a fresh
reminder while the same instant never fires twice.

Both jobs read the time from an injected clock, so tests call them directly
with a fixed clock instead of waiting on the wall clock.
"""
import logging
import threading
from collections import defaultdict
from datetime import datetime, timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from taskpilot.models.notification_model import DAILY, PRE_DUE, Notification
from taskpilot.models.todo_model import due_datetime, sort_by_severity
from taskpilot.utils.clock import SystemClock
from taskpilot.utils.db import serialize_doc

logger = logging.getLogger(__name__)

PRE_DUE_LEAD = timedelta(hours=1)
TRIGGER_WINDOW = timedelta(minutes=1)
DEDUPE_TTL = timedelta(hours=1)

SEVERITY_EMOJI = {"critical": "🔴", "high": "🟠", "medium": "🟡", "low": "🟢"}

DIGEST_JOB = "daily-digest"
CHECK_JOB = "due-soon-check"


class ExpiringRegistry:
    """Map of key -> value where every entry carries its own expiry time."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries = {}

    def add(self, key, value, expires_at):
        with self._lock:
            self._entries[key] = (value, expires_at)

    def __contains__(self, key):
        with self._lock:
            return key in self._entries

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def purge(self, now):
        with self._lock:
            expired = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def values(self):
        with self._lock:
            return [value for value, _ in self._entries.values()]

    def clear(self):
        with self._lock:
            self._entries.clear()


def digest_message(todos):
    lines = ["Good morning! Here are your todos for today:", ""]
    for index, todo in enumerate(sort_by_severity(todos), start=1):
        emoji = SEVERITY_EMOJI.get(todo.get("severity"), "⚪")
        time_info = f" at {todo['due_time']}" if todo.get("due_time") else ""
        lines.append(f"{index}. {emoji} {todo.get('title')}{time_info}")
    return "\n".join(lines) + "\n"


def format_clock_time(moment):
    return moment.strftime("%I:%M %p").lstrip("0")


class ReminderScheduler:
    def __init__(
        self,
        db,
        hub,
        clock=None,
        digest_hour=9,
        check_interval=timedelta(seconds=60),
    ):
        self.db = db
        self.hub = hub
        self.clock = clock or SystemClock()
        self.digest_hour = digest_hour
        self.check_interval = check_interval
        self.sent = ExpiringRegistry()
        self.scheduler = None

    # -- lifecycle ---------------------------------------------------------

    def start(self):
        if self.running:
            return
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            self.send_daily_digest,
            CronTrigger(hour=self.digest_hour, minute=0),
            id=DIGEST_JOB,
            coalesce=True,
        )
        scheduler.add_job(
            self.check_due_soon,
            IntervalTrigger(seconds=int(self.check_interval.total_seconds())),
            id=CHECK_JOB,
            coalesce=True,
        )
        scheduler.start()
        self.scheduler = scheduler
        logger.info("Reminder scheduler started; next digest at %s", _iso(self.next_digest_at))

    def stop(self):
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
        logger.info("Reminder scheduler stopped")

    @property
    def running(self):
        return self.scheduler is not None and self.scheduler.running

    def _next_run(self, job_id):
        if not self.running:
            return None
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @property
    def next_digest_at(self):
        return self._next_run(DIGEST_JOB)

    @property
    def next_check_at(self):
        return self._next_run(CHECK_JOB)

    # -- jobs --------------------------------------------------------------

    def send_daily_digest(self, now=None, user_id=None):
        now = now or self.clock.now()
        today = now.date().isoformat()
        query = {"due_date": today, "completed": False}
        if user_id is not None:
            query["user_id"] = user_id
        try:
            todos = list(self.db.todos.find(query))
        except Exception:
            logger.exception("Error fetching daily todos")
            return []

        by_owner = defaultdict(list)
        for doc in todos:
            by_owner[doc.get("user_id")].append(serialize_doc(doc))

        sent = []
        for owner, owned in by_owner.items():
            ordered = sort_by_severity(owned)
            notification = Notification(
                id=f"daily-{today}",
                kind=DAILY,
                user_id=owner,
                title=f"Daily Reminder - {len(ordered)} todos today",
                message=digest_message(ordered),
                todo=ordered[0],
                scheduled_time=now,
            )
            self.hub.publish(notification)
            sent.append(notification)
        return sent

    def check_due_soon(self, now=None):
        now = now or self.clock.now()
        self.sent.purge(now)
        try:
            todos = list(self.db.todos.find({"completed": False, "due_time": {"$ne": None}}))
        except Exception:
            logger.exception("Error fetching todos for reminders")
            return []

        sent = []
        for doc in todos:
            due = due_datetime(doc)
            if due is None:
                continue
            reminder_at = due - PRE_DUE_LEAD
            if abs(now - reminder_at) >= TRIGGER_WINDOW:
                continue
            key = f"pre-due-{doc['_id']}-{due.isoformat()}"
            if key in self.sent:
                continue
            notification = self._pre_due(doc, due, now)
            self.hub.publish(notification)
            self.sent.add(key, notification, now + DEDUPE_TTL)
            sent.append(notification)
        return sent

    def _pre_due(self, doc, due, now):
        todo = serialize_doc(doc)
        return Notification(
            id=f"pre-due-{todo['id']}",
            kind=PRE_DUE,
            user_id=doc.get("user_id"),
            title=f"Reminder: {todo['title']}",
            message=f'Your todo "{todo["title"]}" is due in 1 hour at {format_clock_time(due)}',
            todo=todo,
            scheduled_time=now,
        )

    def scheduled_notifications(self):
        return self.sent.values()


def _iso(value):
    return value.isoformat() if isinstance(value, datetime) else None


def describe(scheduler):
    return {
        "running": scheduler.running,
        "next_digest_at": _iso(scheduler.next_digest_at),
        "next_check_at": _iso(scheduler.next_check_at),
        "pending_dedupe_entries": len(scheduler.sent),
    }
