from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

DAILY = "daily"
PRE_DUE = "pre_due"


@dataclass
class Notification:
    id: str
    kind: str  # daily | pre_due
    user_id: str
    title: str
    message: str
    todo: Optional[dict] = None
    scheduled_time: datetime = field(default_factory=datetime.now)
    show_native: bool = False

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.kind,
            "user_id": self.user_id,
            "title": self.title,
            "message": self.message,
            "todo": self.todo,
            "scheduled_time": self.scheduled_time.isoformat(),
            "show_native": self.show_native,
        }
