from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time
from typing import Optional

CATEGORIES = ("normal", "reminder", "custom")
SEVERITIES = ("low", "medium", "high", "critical")

DEFAULT_CATEGORY = "normal"
DEFAULT_SEVERITY = "medium"

# Lower rank sorts first: critical, high, medium, low.
SEVERITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}

# Fields a client may set on create/update; everything else is server-owned.
EDITABLE_FIELDS = (
    "title",
    "description",
    "due_date",
    "due_time",
    "category",
    "severity",
    "completed",
    "image_url",
    "voice_note_url",
)


@dataclass
class Todo:
    title: str
    user_id: str
    description: Optional[str] = None
    due_date: Optional[str] = None  # YYYY-MM-DD
    # Optional separate due time in HH:MM (24h) for reminder scheduling
    due_time: Optional[str] = None
    category: str = DEFAULT_CATEGORY  # normal | reminder | custom
    severity: str = DEFAULT_SEVERITY  # low | medium | high | critical
    completed: bool = False
    image_url: Optional[str] = None
    voice_note_url: Optional[str] = None
    google_calendar_event_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_document(self):
        return asdict(self)


class ValidationError(ValueError):
    """Raised when a todo payload contains an invalid value."""


def parse_due_date(value):
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError("Invalid due_date format, expected YYYY-MM-DD")


def parse_due_time(value):
    if value in (None, ""):
        return None
    try:
        parsed = time.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("Invalid due_time format, expected HH:MM")
    return parsed.replace(second=0, microsecond=0)


def clean_fields(payload, partial=False):
    """Validate and normalise the editable fields of a request payload.

    With ``partial`` only the keys present in ``payload`` are returned,
    which is what an update needs. Otherwise defaults are filled in.
    """
    fields = {}
    for key in EDITABLE_FIELDS:
        if key in payload:
            fields[key] = payload[key]

    if not partial and "title" not in fields:
        raise ValidationError("Title is required")
    if "title" in fields:
        title = (fields["title"] or "").strip() if isinstance(fields["title"], str) else ""
        if not title:
            raise ValidationError("Title is required")
        fields["title"] = title

    if "due_date" in fields:
        parsed = parse_due_date(fields["due_date"])
        if parsed is None and partial:
            raise ValidationError("due_date cannot be cleared")
        fields["due_date"] = parsed.isoformat() if parsed else None
    if "due_time" in fields:
        parsed = parse_due_time(fields["due_time"])
        fields["due_time"] = parsed.strftime("%H:%M") if parsed else None

    if "category" in fields:
        if fields["category"] in (None, "") and not partial:
            fields["category"] = DEFAULT_CATEGORY
        elif fields["category"] not in CATEGORIES:
            raise ValidationError(f"category must be one of: {', '.join(CATEGORIES)}")
    if "severity" in fields:
        if fields["severity"] in (None, "") and not partial:
            fields["severity"] = DEFAULT_SEVERITY
        elif fields["severity"] not in SEVERITIES:
            raise ValidationError(f"severity must be one of: {', '.join(SEVERITIES)}")
    if "completed" in fields and not isinstance(fields["completed"], bool):
        raise ValidationError("completed must be a boolean")

    if not partial:
        fields.setdefault("category", DEFAULT_CATEGORY)
        fields.setdefault("severity", DEFAULT_SEVERITY)
        fields.setdefault("completed", False)
    return fields


def due_datetime(todo):
    """Combine a todo's due date and due time into a naive local datetime.

    Returns None when either part is missing or malformed.
    """
    if not todo.get("due_date") or not todo.get("due_time"):
        return None
    try:
        return datetime.combine(parse_due_date(todo["due_date"]), parse_due_time(todo["due_time"]))
    except ValidationError:
        return None


def sort_by_severity(todos):
    """Stable sort: critical first, unknown severities last."""
    return sorted(todos, key=lambda t: SEVERITY_RANK.get(t.get("severity"), len(SEVERITY_RANK)))
