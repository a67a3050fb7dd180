"""Handler request/response types."""

from dataclasses import dataclass
from typing import Optional

from .context import Context
from .steps import ConversationStep

# Tokens that return to the main menu from any step
MENU_TOKENS = frozenset({"0", "MENU", "MAIN"})


def parse_choice(text: str) -> Optional[int]:
    """Parse a numeric menu choice, None when the text is not an integer."""
    try:
        return int(text.strip())
    except ValueError:
        return None


@dataclass(frozen=True)
class HandlerRequest:
    """One inbound message as seen by a step handler."""

    identity: str
    text: str
    choice: Optional[int]
    step: ConversationStep
    context: Context

    @property
    def command(self) -> str:
        """Upper-cased, trimmed text for keyword matching."""
        return self.text.strip().upper()

    @property
    def is_empty(self) -> bool:
        """Empty input asks the handler to render its step."""
        return not self.text.strip()

    @property
    def wants_menu(self) -> bool:
        return self.command in MENU_TOKENS


@dataclass(frozen=True)
class HandlerResponse:
    """
    What a handler decided.

    An empty message with a next step asks the dispatcher to render that
    step immediately. context=None keeps the current context.
    """

    message: str
    next_step: Optional[ConversationStep]
    context: Optional[Context] = None
    clear_context: bool = False
