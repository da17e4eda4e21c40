"""Rule-based todo agent.

Guesses a category and severity for a draft todo from keyword matches and
suggests small enhancements (a due time, a description, a step breakdown).
Nothing here learns or persists: identical input text always produces the
same response.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from taskpilot.models.agent_model import DEFAULT_AGENTS, Agent

logger = logging.getLogger(__name__)

URGENT_KEYWORDS = ["urgent", "asap", "immediately", "emergency", "critical", "deadline"]
REMINDER_KEYWORDS = ["remind", "appointment", "meeting", "call", "email", "follow up"]
HIGH_PRIORITY_KEYWORDS = ["important", "priority", "must", "need", "required"]
TIME_KEYWORDS = ["today", "tomorrow", "this week", "next week", "morning", "afternoon"]

# Token -> suggested HH:MM for reminders without a due time.
TIME_OF_DAY = [("morning", "09:00"), ("afternoon", "14:00"), ("evening", "18:00")]
DEFAULT_REMINDER_TIME = "10:00"

BREAKDOWNS = [
    (("project", "build", "create"),
     ["Plan and design", "Gather requirements", "Implementation", "Testing and review"]),
    (("research", "study", "learn"),
     ["Define research scope", "Gather sources", "Analyze information", "Document findings"]),
    (("meeting", "presentation"),
     ["Prepare agenda", "Create materials", "Send invitations", "Conduct meeting"]),
]
GENERIC_BREAKDOWN = ["Break down into smaller tasks", "Set priorities", "Execute step by step"]

LONG_TITLE = 50
LONG_DESCRIPTION = 100


@dataclass
class Analysis:
    category: str
    severity: str
    keywords: List[str]


@dataclass
class AgentResponse:
    category: str
    severity: str
    suggestions: Dict[str, object] = field(default_factory=dict)
    reasoning: str = ""

    def to_dict(self):
        return {
            "category": self.category,
            "severity": self.severity,
            "suggestions": dict(self.suggestions),
            "reasoning": self.reasoning,
        }


def default_response():
    return AgentResponse(
        category="normal",
        severity="medium",
        suggestions={},
        reasoning="Default categorization applied due to processing error.",
    )


class AgentRegistry:
    """Lookup table of agent records keyed by category.

    Built once at startup from the ``todo_agents`` collection and handed to
    :class:`TodoAgentService`; never a module-level singleton.
    """

    def __init__(self, agents=None):
        self._agents: Dict[str, Agent] = {}
        for agent in agents or []:
            self._agents[agent.category] = agent

    @classmethod
    def load(cls, db):
        try:
            agents = [Agent.from_document(doc) for doc in db.todo_agents.find({})]
        except Exception:
            logger.exception("Error loading agents")
            agents = []
        logger.info("Loaded %d agent record(s)", len(agents))
        return cls(agents)

    def get(self, category) -> Optional[Agent]:
        return self._agents.get(category)

    def all(self):
        return list(self._agents.values())

    def upsert(self, db, agent):
        fields = agent.to_document()
        created_at = fields.pop("created_at")
        db.todo_agents.update_one(
            {"category": agent.category},
            {"$set": fields, "$setOnInsert": {"created_at": created_at}},
            upsert=True,
        )
        stored = db.todo_agents.find_one({"category": agent.category})
        if stored is not None:
            agent = Agent.from_document(stored)
        self._agents[agent.category] = agent
        return agent


class TodoAgentService:
    def __init__(self, registry: AgentRegistry):
        self.registry = registry

    def process_todo(self, title, description=None, due_date=None, due_time=None) -> AgentResponse:
        todo = {
            "title": title or "",
            "description": description or "",
            "due_date": due_date,
            "due_time": due_time,
        }
        try:
            analysis = self.analyze(todo)
            agent = self.registry.get(analysis.category) or DEFAULT_AGENTS[analysis.category]
            return self.execute(agent, todo, analysis)
        except Exception:
            logger.exception("Error processing todo %r", title)
            return default_response()

    def analyze(self, todo) -> Analysis:
        text = f"{todo['title']} {todo['description']}".lower()
        keywords = text.split()

        category = "normal"
        if any(kw in text for kw in REMINDER_KEYWORDS) or todo.get("due_time"):
            category = "reminder"

        if any(kw in text for kw in URGENT_KEYWORDS):
            severity = "critical"
        elif any(kw in text for kw in HIGH_PRIORITY_KEYWORDS):
            severity = "high"
        elif any(kw in text for kw in TIME_KEYWORDS):
            severity = "medium"
        else:
            severity = "low"

        return Analysis(category=category, severity=severity, keywords=keywords)

    def execute(self, agent, todo, analysis) -> AgentResponse:
        if agent.category == "normal":
            return self._normal(todo, analysis)
        if agent.category == "reminder":
            return self._reminder(todo, analysis)
        return self._custom(analysis)

    def _normal(self, todo, analysis):
        suggestions = {}
        if len(todo["title"]) > LONG_TITLE or len(todo["description"]) > LONG_DESCRIPTION:
            suggestions["breakdown"] = suggest_breakdown(todo["title"])
        if not todo["description"] and analysis.severity == "high":
            suggestions["description_enhancement"] = (
                f"High priority task: {todo['title']}. Consider adding more details "
                "about requirements and expected outcomes."
            )
        return AgentResponse(
            category="normal",
            severity=analysis.severity,
            suggestions=suggestions,
            reasoning=(
                "Categorized as normal task based on content analysis. "
                f"Severity: {analysis.severity} due to keyword patterns."
            ),
        )

    def _reminder(self, todo, analysis):
        suggestions = {}
        if not todo.get("due_time"):
            suggestions["due_time"] = DEFAULT_REMINDER_TIME
            for token, hhmm in TIME_OF_DAY:
                if token in analysis.keywords:
                    suggestions["due_time"] = hhmm
                    break
        if not todo["description"]:
            suggestions["description_enhancement"] = (
                f"Reminder: {todo['title']}. This will create a calendar event with notifications."
            )
        return AgentResponse(
            category="reminder",
            severity=analysis.severity,
            suggestions=suggestions,
            reasoning=(
                "Categorized as reminder based on time-sensitive keywords and due time. "
                "Will create calendar event with notifications."
            ),
        )

    def _custom(self, analysis):
        return AgentResponse(
            category="custom",
            severity=analysis.severity,
            suggestions={},
            reasoning="Processed by custom agent for specialized handling.",
        )


def suggest_breakdown(title):
    words = title.lower().split()
    for triggers, steps in BREAKDOWNS:
        if any(w in words for w in triggers):
            return list(steps)
    return list(GENERIC_BREAKDOWN)


def apply_suggestions(fields, response: AgentResponse, provided):
    """Fill fields the client left out with the agent's suggestions.

    ``provided`` is the set of keys present in the original request.
    """
    if "category" not in provided:
        fields["category"] = response.category
    if "severity" not in provided:
        fields["severity"] = response.severity
    suggested_time = response.suggestions.get("due_time")
    if suggested_time and not fields.get("due_time"):
        fields["due_time"] = suggested_time
    enhancement = response.suggestions.get("description_enhancement")
    if enhancement and not fields.get("description"):
        fields["description"] = enhancement
    return fields
