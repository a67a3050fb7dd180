"""Viewing and cancelling existing bookings."""

import logging

from app.core.conversation import response
from app.core.conversation.context import CancelPending, Ready
from app.core.conversation.registry import HandlerDeps
from app.core.conversation.steps import ConversationStep
from app.core.conversation.types import HandlerRequest, HandlerResponse
from app.core.scheduling.ledger import LedgerError, is_valid_booking_code
from app.models.database import BookingStatus
from .common import back_to_menu, go_to, is_no, is_yes

logger = logging.getLogger(__name__)


def normalize_code(text: str) -> str:
    """Accept 'bk1234', '#BK1234', '1234' and the like as BK1234."""
    digits = text.strip().upper().replace("#", "").replace("BK", "").replace(" ", "")
    return f"BK{digits}"


async def handle_view_my_bookings(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    bookings = await deps.ledger.customer_reservations(request.identity)
    note = None if request.is_empty else "⚠️ Reply 0 for the main menu."
    return HandlerResponse(
        message=response.with_note(note, response.my_bookings(bookings, deps.now().date())),
        next_step=ConversationStep.VIEW_MY_BOOKINGS,
        context=Ready(),
    )


async def handle_cancel_input(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    if request.is_empty:
        return HandlerResponse(response.CANCEL_PROMPT, ConversationStep.CANCEL_INPUT, context=Ready())

    code = normalize_code(request.text)
    if not is_valid_booking_code(code):
        return HandlerResponse(response.INVALID_CODE, ConversationStep.CANCEL_INPUT)

    booking = await deps.ledger.get_by_code(code)
    if booking is None:
        return HandlerResponse(response.code_not_found(code), ConversationStep.CANCEL_INPUT)

    if booking.customer_identity != request.identity:
        logger.warning(f"{request.identity} looked up booking {code} owned by another customer")
        return back_to_menu(deps, response.NOT_OWNER)
    if booking.status == BookingStatus.CANCELLED:
        return back_to_menu(deps, response.already_cancelled(code))
    if booking.status != BookingStatus.CONFIRMED:
        return back_to_menu(deps, response.not_cancellable(code, booking.status.value))

    return HandlerResponse(
        message=response.confirm_cancel(booking, deps.now().date()),
        next_step=ConversationStep.CANCEL_CONFIRM,
        context=CancelPending(code),
    )


async def handle_cancel_confirm(request: HandlerRequest, deps: HandlerDeps) -> HandlerResponse:
    context = request.context
    if not isinstance(context, CancelPending):
        return go_to(ConversationStep.CANCEL_INPUT, clear_context=True)

    if is_no(request):
        return back_to_menu(deps, response.KEEP_BOOKING)

    if not is_yes(request):
        booking = await deps.ledger.get_by_code(context.booking_code)
        if booking is None:
            raise LookupError(f"Booking {context.booking_code} vanished during cancellation")
        note = None if request.is_empty else response.YES_OR_NO
        return HandlerResponse(
            message=response.with_note(note, response.confirm_cancel(booking, deps.now().date())),
            next_step=ConversationStep.CANCEL_CONFIRM,
        )

    result = await deps.ledger.cancel_reservation(context.booking_code, request.identity)
    if result.success:
        return back_to_menu(deps, response.cancelled(context.booking_code))

    messages = {
        LedgerError.NOT_FOUND: response.code_not_found(context.booking_code),
        LedgerError.NOT_OWNER: response.NOT_OWNER,
        LedgerError.ALREADY_CANCELLED: response.already_cancelled(context.booking_code),
    }
    return back_to_menu(
        deps, messages.get(result.error_code, result.message or response.GENERIC_ERROR)
    )
