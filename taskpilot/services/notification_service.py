import logging
import threading
from collections import defaultdict, deque

logger = logging.getLogger(__name__)


class NotificationHub:
    """In-process fan-out for reminder notifications.

    Every published notification is logged, kept in its owner's bounded
    inbox (served to the browser by the notifications blueprint) and passed
    to each subscriber. Users who granted native notification permission get
    ``show_native`` set so the client raises a system alert.
    """

    def __init__(self, inbox_size=50):
        self._lock = threading.Lock()
        self._inboxes = defaultdict(lambda: deque(maxlen=inbox_size))
        self._permissions = set()
        self._subscribers = []

    def subscribe(self, callback):
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def set_permission(self, user_id, granted):
        with self._lock:
            if granted:
                self._permissions.add(user_id)
            else:
                self._permissions.discard(user_id)

    def has_permission(self, user_id):
        with self._lock:
            return user_id in self._permissions

    def publish(self, notification):
        notification.show_native = self.has_permission(notification.user_id)
        logger.info(
            "Sending %s notification %s to user %s: %s",
            notification.kind,
            notification.id,
            notification.user_id,
            notification.title,
        )
        with self._lock:
            inbox = self._inboxes[notification.user_id]
            # A re-sent digest replaces the earlier one with the same id.
            for existing in list(inbox):
                if existing.id == notification.id:
                    inbox.remove(existing)
            inbox.append(notification)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(notification)
            except Exception:
                logger.exception("Notification subscriber %r failed", callback)

    def list_for(self, user_id):
        with self._lock:
            return list(self._inboxes.get(user_id, ()))

    def clear(self, user_id):
        with self._lock:
            self._inboxes.pop(user_id, None)
