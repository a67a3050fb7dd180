"""Helpers shared by step handlers."""

from typing import Optional, Sequence, TypeVar

from app.core.conversation import response
from app.core.conversation.context import Ready
from app.core.conversation.registry import HandlerDeps
from app.core.conversation.steps import ConversationStep
from app.core.conversation.types import HandlerRequest, HandlerResponse

T = TypeVar("T")


def back_to_menu(deps: HandlerDeps, note: Optional[str] = None) -> HandlerResponse:
    """Show the main menu, optionally after a short note."""
    return HandlerResponse(
        message=response.with_note(note, response.main_menu(deps.settings)),
        next_step=ConversationStep.MAIN_MENU,
        context=Ready(),
    )


def go_to(step: ConversationStep, **kwargs) -> HandlerResponse:
    """Silent transition; the dispatcher renders the target step."""
    return HandlerResponse(message="", next_step=step, **kwargs)


def pick(request: HandlerRequest, options: Sequence[T]) -> Optional[T]:
    """The option chosen by a 1-based numeric reply, if in range."""
    if request.choice is None or not 1 <= request.choice <= len(options):
        return None
    return options[request.choice - 1]


def is_back(request: HandlerRequest) -> bool:
    return request.command == "BACK"


def is_yes(request: HandlerRequest) -> bool:
    return request.command in {"YES", "Y", "CONFIRM"}


def is_no(request: HandlerRequest) -> bool:
    return request.command in {"NO", "N", "CANCEL"}
