"""Session record stored per customer identity."""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone

from app.core.conversation.context import INITIAL_SENTINEL
from app.core.conversation.steps import ConversationStep, INITIAL_STEP


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class SessionData:
    """
    Conversation state for one customer.

    The context is kept as the encoded string so that whatever a handler
    stored comes back byte-for-byte.
    """

    identity: str
    step: ConversationStep = INITIAL_STEP
    context: str = INITIAL_SENTINEL
    last_activity: datetime = field(default_factory=_utcnow)

    def to_json(self) -> str:
        """Convert to JSON string for Redis storage."""
        return json.dumps({
            "identity": self.identity,
            "step": self.step.value,
            "context": self.context,
            "last_activity": self.last_activity.isoformat(),
        })

    @classmethod
    def from_json(cls, json_str: str) -> "SessionData":
        """Create from JSON string."""
        data = json.loads(json_str)
        return cls(
            identity=data["identity"],
            step=ConversationStep(data["step"]),
            context=data["context"],
            last_activity=datetime.fromisoformat(data["last_activity"]),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return json.loads(self.to_json())
