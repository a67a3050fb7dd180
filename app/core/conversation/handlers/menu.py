"""Main menu, service overview, FAQ and the fallback handler."""

from app.core.conversation import response
from app.core.conversation.context import Initial, Ready
from app.core.conversation.registry import HandlerDeps
from app.core.conversation.steps import ConversationStep
from app.core.conversation.types import HandlerRequest, HandlerResponse
from .common import back_to_menu, go_to

MAIN_MENU_OPTIONS = {
    1: ConversationStep.VIEW_SERVICES,
    2: ConversationStep.SELECT_SERVICE,
    3: ConversationStep.VIEW_MY_BOOKINGS,
    4: ConversationStep.CANCEL_INPUT,
    5: ConversationStep.FAQ,
}


async def handle_main_menu(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    """Render the menu on first view, otherwise route the numeric choice."""
    if isinstance(request.context, Initial) or request.is_empty or request.wants_menu:
        return back_to_menu(deps)

    target = MAIN_MENU_OPTIONS.get(request.choice)
    if target is None:
        return back_to_menu(deps, "⚠️ Please choose an option from 1 to 5.")

    return go_to(target, clear_context=True)


async def handle_view_services(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    if request.command in {"1", "BOOK"}:
        return go_to(ConversationStep.SELECT_SERVICE, clear_context=True)

    services = await deps.catalog.active_services()
    note = None if request.is_empty else "⚠️ I didn't understand that."
    return HandlerResponse(
        message=response.with_note(note, response.services_overview(services, deps.settings)),
        next_step=ConversationStep.VIEW_SERVICES,
        context=Ready(),
    )


async def handle_faq(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    if request.is_empty:
        return HandlerResponse(response.faq_menu(), ConversationStep.FAQ, context=Ready())

    if request.choice is not None and 1 <= request.choice <= len(response.FAQ_ENTRIES):
        question, topic = response.FAQ_ENTRIES[request.choice - 1]
        answer = f"*{question}*\n{response.faq_answer(topic, deps.settings)}"
        return HandlerResponse(
            message=response.with_note(answer, response.faq_menu()),
            next_step=ConversationStep.FAQ,
            context=Ready(),
        )

    return HandlerResponse(
        message=response.with_note(
            response.invalid_number(len(response.FAQ_ENTRIES)), response.faq_menu()
        ),
        next_step=ConversationStep.FAQ,
    )


async def handle_fallback(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    """
    Serves any step without a registered handler.

    Menu tokens go home; anything else asks for the current step to be
    rendered again.
    """
    if request.wants_menu:
        return go_to(ConversationStep.MAIN_MENU, clear_context=True)
    return go_to(request.step)
