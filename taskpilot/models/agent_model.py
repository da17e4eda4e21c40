from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Agent:
    """A categorization rule record, keyed by the category it handles."""

    category: str
    name: str
    description: str = ""
    prompt_template: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def from_document(cls, doc):
        return cls(
            category=doc["category"],
            name=doc.get("name") or doc["category"],
            description=doc.get("description") or "",
            prompt_template=doc.get("prompt_template") or "",
            created_at=doc.get("created_at") or datetime.utcnow(),
        )

    def to_document(self):
        return {
            "category": self.category,
            "name": self.name,
            "description": self.description,
            "prompt_template": self.prompt_template,
            "created_at": self.created_at,
        }

    def to_dict(self):
        doc = self.to_document()
        doc["created_at"] = self.created_at.isoformat()
        return doc


DEFAULT_AGENTS = {
    "normal": Agent(
        category="normal",
        name="Default Agent",
        description="Basic task processing",
        prompt_template="Process this todo item with standard rules",
    ),
    "reminder": Agent(
        category="reminder",
        name="Reminder Agent",
        description="Time-bound tasks mirrored to the calendar",
        prompt_template="Schedule this todo and attach reminders",
    ),
    "custom": Agent(
        category="custom",
        name="Custom Agent",
        description="Specialized handling",
        prompt_template="Process this todo with custom rules",
    ),
}
